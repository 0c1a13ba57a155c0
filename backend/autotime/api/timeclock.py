"""Time Clock API: manual clock in/out and session status.

Rules:
- At most one open regular session per worker.
- At most one open overtime session per worker per day.
- Clock-out is conditional on the session still being open, so a manual
  clock-out and a geofence auto clock-out can race without either
  overwriting the other.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import update
from sqlalchemy.orm import Session

from autotime.core.database import get_db
from autotime.models.timeclock import ShiftSession
from autotime.models.worker import Worker, Job
from autotime.schemas.timeclock import ClockInRequest, ClockOutRequest
from autotime.services.errors import GeofenceError
from autotime.services.geofence_engine import GeofenceEngine
from autotime.services.window_gate import as_utc, auto_clockout_armed

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/timeclock", tags=["timeclock"])


# ── Clock In ─────────────────────────────────────────────────────────

@router.post("/clock-in")
def clock_in(payload: ClockInRequest, db: Session = Depends(get_db)):
    """Start a regular or overtime session."""
    worker = db.get(Worker, payload.worker_id)
    if not worker or not worker.is_active:
        raise HTTPException(status_code=404, detail="Worker not found")
    job = db.get(Job, payload.job_id)
    if not job or not job.is_active:
        raise HTTPException(status_code=404, detail="Job not found")

    now = datetime.now(timezone.utc)
    today = now.date()

    open_query = db.query(ShiftSession).filter(
        ShiftSession.worker_id == worker.id,
        ShiftSession.clock_out.is_(None),
        ShiftSession.is_overtime.is_(payload.is_overtime),
    )
    if payload.is_overtime:
        open_query = open_query.filter(ShiftSession.work_date == today)

    if open_query.first():
        kind = "an overtime" if payload.is_overtime else "a"
        raise HTTPException(status_code=400, detail=f"Already clocked in to {kind} session. Clock out first.")

    entry = ShiftSession(
        worker_id=worker.id,
        job_id=job.id,
        work_date=today,
        clock_in=now,
        clock_in_lat=payload.latitude,
        clock_in_lng=payload.longitude,
        is_overtime=payload.is_overtime,
        notes=payload.note,
        source="manual",
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)

    logger.info(f"Worker {worker.id} clocked in to job {job.id} (session {entry.id}, overtime={entry.is_overtime})")
    return {
        "id": entry.id,
        "status": "clocked_in",
        "clock_in": as_utc(entry.clock_in).isoformat(),
        "is_overtime": entry.is_overtime,
        "message": f"Clocked in at {now.strftime('%I:%M %p')} UTC, {job.name}",
    }


# ── Clock Out ────────────────────────────────────────────────────────

@router.post("/clock-out")
def clock_out(payload: ClockOutRequest, db: Session = Depends(get_db)):
    """Manually close an open session."""
    entry = db.query(ShiftSession).filter(
        ShiftSession.id == payload.shift_session_id,
        ShiftSession.worker_id == payload.worker_id,
    ).first()
    if not entry:
        raise HTTPException(status_code=404, detail="Shift session not found")

    now = datetime.now(timezone.utc)
    hours_worked = max(0.0, (now - as_utc(entry.clock_in)).total_seconds() / 3600.0)
    notes = entry.notes
    if payload.note:
        notes = (notes + " | " + payload.note) if notes else payload.note

    result = db.execute(
        update(ShiftSession)
        .where(ShiftSession.id == entry.id, ShiftSession.clock_out.is_(None))
        .values(
            clock_out=now,
            clock_out_lat=payload.latitude,
            clock_out_lng=payload.longitude,
            total_hours=hours_worked,
            notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount == 0:
        db.refresh(entry)
        detail = "Already auto clocked-out." if entry.auto_clocked_out else "Not clocked in."
        raise HTTPException(status_code=409, detail=detail)

    logger.info(f"Worker {entry.worker_id} clocked out of session {entry.id} ({hours_worked:.2f}h)")
    return {
        "id": entry.id,
        "status": "clocked_out",
        "clock_out": now.isoformat(),
        "hours_worked": round(hours_worked, 2),
        "message": f"Clocked out at {now.strftime('%I:%M %p')} UTC, {hours_worked:.1f} hours",
    }


# ── Current Status ───────────────────────────────────────────────────

@router.get("/status/{worker_id}")
def get_status(worker_id: int, db: Session = Depends(get_db)):
    """Open session for a worker and whether geofence auto clock-out is armed."""
    active = db.query(ShiftSession).filter(
        ShiftSession.worker_id == worker_id,
        ShiftSession.clock_out.is_(None),
    ).order_by(ShiftSession.clock_in.desc()).first()

    if not active:
        return {"status": "not_clocked_in"}

    now = datetime.now(timezone.utc)
    try:
        armed = auto_clockout_armed(active, active.worker, now)
    except GeofenceError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "status": "clocked_in",
        "entry_id": active.id,
        "job_id": active.job_id,
        "clock_in": as_utc(active.clock_in).isoformat(),
        "is_overtime": active.is_overtime,
        "hours_elapsed": round((now - as_utc(active.clock_in)).total_seconds() / 3600.0, 2),
        "auto_clockout_armed": armed,
        "geofence_state": GeofenceEngine(db).state_of(active),
    }

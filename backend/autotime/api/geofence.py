"""Geofence API: location ingestion and cron-triggered sweeps.

Flow:
- The client posts a GPS fix every ~45s while clocked in.
- A reliable exit inside the armed window starts a 4 min grace + 60s race
  buffer; a deferred task then re-entry-checks and auto clocks out.
- The sweeps (Celery beat, or an external cron hitting these endpoints)
  finish any exit the deferred task missed and enforce the 3h OT cap.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from autotime.core.config import settings
from autotime.core.database import get_db
from autotime.models.timeclock import ShiftSession
from autotime.schemas.geofence import LocationFix, LocationStatus, GeofenceEventOut
from autotime.services.errors import GeofenceError
from autotime.services.event_log import GeofenceEventLog
from autotime.services.geofence_engine import GeofenceEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/geofence", tags=["geofence"])


def get_exit_scheduler():
    """Deferred resolution backend (Celery). Overridden in tests."""
    from autotime.tasks.async_tasks import DeferredExitScheduler
    return DeferredExitScheduler()


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    if settings.CRON_SECRET and x_cron_secret != settings.CRON_SECRET:
        raise HTTPException(status_code=401, detail="Invalid cron secret")


# ── Location Ingestion ───────────────────────────────────────────────

@router.post("/track-location", response_model=LocationStatus, response_model_exclude_none=True)
def track_location(
    payload: LocationFix,
    db: Session = Depends(get_db),
    scheduler=Depends(get_exit_scheduler),
):
    """Record a GPS fix and run exit detection for the worker's open session."""
    engine = GeofenceEngine(db, scheduler=scheduler)
    try:
        return engine.report_fix(
            worker_id=payload.worker_id,
            shift_session_id=payload.shift_session_id,
            latitude=payload.latitude,
            longitude=payload.longitude,
            accuracy=payload.accuracy,
            timestamp=payload.timestamp,
        )
    except GeofenceError as e:
        logger.warning(f"Rejected fix for session {payload.shift_session_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))


# ── Sweeps ───────────────────────────────────────────────────────────

@router.post("/sweep/exits", dependencies=[Depends(verify_cron_secret)])
def sweep_exits(db: Session = Depends(get_db)):
    """Resolve exit_detected events older than the grace + buffer cutoff."""
    return GeofenceEngine(db).sweep_expired_exits()


@router.post("/sweep/overtime", dependencies=[Depends(verify_cron_secret)])
def sweep_overtime(db: Session = Depends(get_db)):
    """Auto clock-out overtime sessions that hit the hard cap."""
    return GeofenceEngine(db).sweep_overtime_sessions()


# ── Diagnostics ──────────────────────────────────────────────────────

@router.get("/sessions/{session_id}/events", response_model=List[GeofenceEventOut])
def session_events(session_id: int, db: Session = Depends(get_db)):
    """Ordered geofence event log for one shift session."""
    if db.get(ShiftSession, session_id) is None:
        raise HTTPException(status_code=404, detail="Shift session not found")
    return GeofenceEventLog(db).events_for_session(session_id)

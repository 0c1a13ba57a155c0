"""Geofence auto clock-out engine.

One state machine per shift session, reachable from three entry points that
share the same classifier, event log and finalizer:

- ``report_fix``: a client-reported GPS fix. Logs it, voids a pending exit on
  re-entry, and on a reliable exit records ``exit_detected`` and schedules a
  deferred resolution GRACE_MINUTES + RACE_BUFFER_SECONDS later.
- ``sweep_expired_exits``: periodic backstop that resolves exits whose
  deferred resolution never ran (worker process died, broker down, ...).
- ``sweep_overtime_sessions``: periodic overtime hard cap.

States (derived from the event log, see ``GeofenceEventLog``)::

    MONITORING -> EXIT_PENDING -> RESOLVED_REENTRY  (back to MONITORING)
                               -> RESOLVED_FINALIZED (terminal)

No locks are taken anywhere. Every path that closes a session goes through
``ClockOutFinalizer.finalize``, whose conditional update makes concurrent
resolutions of the same session harmless.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autotime.core.config import settings
from autotime.models.geofence import GeofenceEvent, GeofenceEventType
from autotime.models.timeclock import ShiftSession
from autotime.services.errors import GeofenceError, InvalidJobGeofence
from autotime.services.event_log import GeofenceEventLog
from autotime.services.finalizer import (
    ClockOutFinalizer,
    REASON_GEOFENCE_EXIT,
    REASON_OT_GEOFENCE_EXIT,
    REASON_OT_TIME_LIMIT,
)
from autotime.services.geo import distance_meters, safe_out_threshold, is_reliable_exit
from autotime.services.window_gate import (
    as_utc,
    auto_clockout_armed,
    overtime_cap_reached,
    overtime_cap_time,
    utcnow,
)

logger = logging.getLogger(__name__)

MONITORING = "monitoring"
EXIT_PENDING = "exit_pending"
RESOLVED_FINALIZED = "resolved_finalized"
MANUAL_CLOCKOUT = "manual_clockout"


def resolution_delay() -> timedelta:
    """Time from exit detection to finalize eligibility (grace + race buffer)."""
    return timedelta(minutes=settings.GRACE_MINUTES, seconds=settings.RACE_BUFFER_SECONDS)


class GeofenceEngine:
    """Geofence exit detection and automatic clock-out.

    ``scheduler`` is any object with ``schedule(session_id, exit_event_id,
    delay_seconds)`` and ``cancel(session_id, exit_event_id)``. Without one,
    pending exits are resolved by the periodic sweep only.
    """

    def __init__(self, db: Session, scheduler=None, tz=None):
        self.db = db
        self.scheduler = scheduler
        self.tz = tz
        self.events = GeofenceEventLog(db)
        self.finalizer = ClockOutFinalizer(db, tz=tz)

    # ── Location ingestion ───────────────────────────────────────────────

    def report_fix(
        self,
        worker_id: int,
        shift_session_id: int,
        latitude: float,
        longitude: float,
        accuracy: float,
        timestamp: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = as_utc(now) or utcnow()
        fix_at = as_utc(timestamp) or now
        if fix_at > now:
            fix_at = now  # clamp client clock skew

        session = self.db.query(ShiftSession).filter(
            ShiftSession.id == shift_session_id,
            ShiftSession.worker_id == worker_id,
        ).first()

        if session is None:
            logger.debug(f"Fix from worker {worker_id} for unknown session {shift_session_id}")
            return {"status": "not_clocked_in"}
        if not session.is_open:
            return self._closed_status(session)

        job = session.job
        if job is None or job.latitude is None or job.longitude is None or not job.geofence_radius:
            raise InvalidJobGeofence(session.job_id)

        radius = job.geofence_radius
        distance = distance_meters(latitude, longitude, job.latitude, job.longitude)
        threshold = safe_out_threshold(radius)
        geo = {"distance": round(distance, 2), "threshold": threshold}

        fix = self.events.record(
            session,
            GeofenceEventType.LOCATION_FIX,
            timestamp=fix_at,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            distance=distance,
            radius=radius,
            threshold=threshold,
        )

        pending = self.events.pending_exit(session.id)
        if pending is not None:
            exit_at = as_utc(pending.timestamp)
            if distance < radius and fix_at > exit_at:
                self._record_re_entry(session, pending, fix)
                return {"status": "re_entered", **geo}
            return {
                "status": "exit_pending",
                "finalize_after": (exit_at + resolution_delay()).isoformat(),
                **geo,
            }

        # A fix older than the last resolution must not open a new exit
        last_resolved = self.events.last_resolution_at(session.id)
        if last_resolved is not None and fix_at <= last_resolved:
            logger.debug(f"Stale fix for session {session.id} ({fix_at.isoformat()}), not evaluated")
            return {"status": "stale_fix", **geo}

        if not auto_clockout_armed(session, session.worker, fix_at, self.tz):
            logger.debug(f"Session {session.id} outside auto clock-out window")
            return {"status": "outside_window", **geo}

        if not is_reliable_exit(distance, accuracy, radius, threshold):
            return {"status": "inside_fence", **geo}

        exit_event = self.events.record_from(fix, session, GeofenceEventType.EXIT_DETECTED, fix_at)
        due_at = fix_at + resolution_delay()
        logger.info(
            f"Exit detected for session {session.id} (worker {worker_id}): "
            f"distance={distance:.1f}m accuracy={accuracy}m threshold={threshold}m, "
            f"resolving at {due_at.isoformat()}"
        )
        self._schedule(session.id, exit_event.id, max(0.0, (due_at - now).total_seconds()))

        return {
            "status": "exit_detected",
            "grace_period_minutes": settings.GRACE_MINUTES,
            "finalize_after": due_at.isoformat(),
            **geo,
        }

    # ── Grace / race resolution ──────────────────────────────────────────

    def resolve_exit(self, shift_session_id: int, now: Optional[datetime] = None) -> dict:
        """Drive a session's pending exit to re-entry or auto clock-out.

        Safe to call any number of times, from any process, at any moment.
        """
        now = as_utc(now) or utcnow()

        session = self.db.get(ShiftSession, shift_session_id)
        if session is None:
            return {"status": "not_clocked_in"}
        if not session.is_open:
            return self._closed_status(session)

        # The overtime cap takes priority over any geofence exit
        if session.is_overtime and overtime_cap_reached(session.clock_in, now):
            return self._finalize_overtime_cap(session)

        pending = self.events.pending_exit(session.id)
        if pending is None:
            return {"status": "no_pending_exit"}

        due_at = as_utc(pending.timestamp) + resolution_delay()
        if now < due_at:
            return {"status": "exit_pending", "finalize_after": due_at.isoformat()}

        re_entry_fix = self._find_re_entry(session, pending)
        if re_entry_fix is not None:
            self._record_re_entry(session, re_entry_fix=re_entry_fix, pending=pending)
            return {"status": "re_entered"}

        reason = REASON_OT_GEOFENCE_EXIT if session.is_overtime else REASON_GEOFENCE_EXIT
        exit_context = {
            "distance": pending.distance_from_center,
            "accuracy": pending.accuracy,
            "threshold": pending.safe_out_threshold,
            "radius": pending.job_radius,
        }
        result = self.finalizer.finalize(session.id, now, reason, exit_context)
        if result.already_closed:
            self.db.expire(session)
            return self._closed_status(session)

        self.events.record_from(pending, session, GeofenceEventType.EXIT_CONFIRMED, result.clock_out)
        return {
            "status": "auto_clocked_out",
            "clock_out": result.clock_out.isoformat(),
            "total_hours": round(result.total_hours, 2),
        }

    # ── Periodic sweeps ──────────────────────────────────────────────────

    def sweep_expired_exits(self, now: Optional[datetime] = None) -> dict:
        """Resolve every pending exit whose grace + buffer window has elapsed."""
        now = as_utc(now) or utcnow()
        cutoff = now - resolution_delay()
        exits = self.events.expired_pending_exits(cutoff)
        if not exits:
            logger.debug("No expired exit_detected events to process")
            return {"status": "no_pending_exits", "checked": 0}

        logger.info(f"Found {len(exits)} expired exits to review (cutoff {cutoff.isoformat()})")
        outcomes = {"auto_clocked_out": 0, "re_entered": 0, "skipped": 0, "failed": 0}
        for exit_event in exits:
            try:
                outcome = self.resolve_exit(exit_event.clock_entry_id, now=now)
            except (GeofenceError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error(f"Sweep failed for session {exit_event.clock_entry_id}: {e}", exc_info=True)
                outcomes["failed"] += 1
                continue

            status = outcome["status"]
            if status in ("auto_clocked_out", "re_entered"):
                outcomes[status] += 1
            else:
                outcomes["skipped"] += 1

        return {"status": "processed", "checked": len(exits), **outcomes}

    def sweep_overtime_sessions(self, now: Optional[datetime] = None) -> dict:
        """Close open overtime sessions that reached the hard cap."""
        now = as_utc(now) or utcnow()
        active = (
            self.db.query(ShiftSession)
            .filter(ShiftSession.is_overtime.is_(True), ShiftSession.clock_out.is_(None))
            .all()
        )
        logger.debug(f"Found {len(active)} active OT sessions")

        closed = 0
        for session in active:
            if not overtime_cap_reached(session.clock_in, now):
                continue
            try:
                outcome = self._finalize_overtime_cap(session)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"OT cap failed for session {session.id}: {e}", exc_info=True)
                continue
            if outcome["status"] == "auto_clocked_out":
                closed += 1

        return {"status": "success", "checked": len(active), "processed": closed}

    # ── Inspection ───────────────────────────────────────────────────────

    def state_of(self, session: ShiftSession) -> str:
        if not session.is_open:
            return MANUAL_CLOCKOUT if session.is_manual_clockout else RESOLVED_FINALIZED
        if self.events.pending_exit(session.id) is not None:
            return EXIT_PENDING
        return MONITORING

    # ── Internal Helpers ─────────────────────────────────────────────────

    def _find_re_entry(self, session: ShiftSession, pending: GeofenceEvent) -> Optional[GeofenceEvent]:
        """Latest fix after the exit that is back inside the plain radius."""
        fixes = self.events.fixes_after(session.id, pending.timestamp, settings.REENTRY_LOOKBACK_FIXES)
        for fix in fixes:
            radius = fix.job_radius or pending.job_radius
            if fix.distance_from_center is not None and radius and fix.distance_from_center < radius:
                return fix
        return None

    def _record_re_entry(self, session: ShiftSession, pending: GeofenceEvent, re_entry_fix: GeofenceEvent):
        self.events.record_from(re_entry_fix, session, GeofenceEventType.RE_ENTRY, re_entry_fix.timestamp)
        logger.info(
            f"Re-entry for session {session.id}: {re_entry_fix.distance_from_center:.1f}m "
            f"(radius {re_entry_fix.job_radius}m), exit {pending.id} voided"
        )
        self._cancel(session.id, pending.id)

    def _finalize_overtime_cap(self, session: ShiftSession) -> dict:
        cap_at = overtime_cap_time(session.clock_in)
        result = self.finalizer.finalize(session.id, cap_at, REASON_OT_TIME_LIMIT)
        if result.already_closed:
            self.db.expire(session)
            return self._closed_status(session)
        return {
            "status": "auto_clocked_out",
            "clock_out": result.clock_out.isoformat(),
            "total_hours": round(result.total_hours, 2),
        }

    def _closed_status(self, session: ShiftSession) -> dict:
        if session.auto_clocked_out:
            return {
                "status": "auto_clocked_out",
                "clock_out": as_utc(session.clock_out).isoformat(),
                "total_hours": round(session.total_hours, 2) if session.total_hours is not None else None,
                "auto_clockout_type": session.auto_clockout_type,
            }
        return {"status": "manual_clockout", "clock_out": as_utc(session.clock_out).isoformat()}

    def _schedule(self, session_id: int, exit_event_id: int, delay_seconds: float):
        if self.scheduler is None:
            return
        try:
            self.scheduler.schedule(session_id, exit_event_id, delay_seconds)
        except Exception as e:
            # The periodic sweep still resolves the exit
            logger.warning(f"Could not schedule exit resolution for session {session_id}: {e}")

    def _cancel(self, session_id: int, exit_event_id: int):
        if self.scheduler is None:
            return
        try:
            self.scheduler.cancel(session_id, exit_event_id)
        except Exception as e:
            logger.warning(f"Could not cancel exit resolution for session {session_id}: {e}")

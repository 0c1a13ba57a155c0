import logging
from datetime import datetime
from typing import Optional

from autotime.celery_app import celery_app
from autotime.core.database import SessionLocal
from autotime.services.geofence_engine import GeofenceEngine
from autotime.services.window_gate import as_utc, utcnow

logger = logging.getLogger(__name__)

# Minimum delay before an early resolution runs again
MIN_RETRY_SECONDS = 1.0


def exit_task_id(session_id: int, exit_event_id: int) -> str:
    return f"geofence-exit-{session_id}-{exit_event_id}"


def retry_delay(finalize_after: str, now: Optional[datetime] = None) -> float:
    """Seconds until a pending exit becomes resolvable."""
    due_at = as_utc(datetime.fromisoformat(finalize_after))
    now = as_utc(now) or utcnow()
    return max(MIN_RETRY_SECONDS, (due_at - now).total_seconds())


class DeferredExitScheduler:
    """Schedules the grace + race-buffer resolution as a delayed Celery task.

    The wait happens in the broker (countdown), so no worker is blocked while
    an exit is pending. Cancelling on re-entry is best effort: the task
    re-reads the event log and does nothing if the exit was already voided.
    """

    def schedule(self, session_id: int, exit_event_id: int, delay_seconds: float):
        resolve_pending_exit.apply_async(
            args=[session_id],
            countdown=delay_seconds,
            task_id=exit_task_id(session_id, exit_event_id),
        )

    def cancel(self, session_id: int, exit_event_id: int):
        celery_app.control.revoke(exit_task_id(session_id, exit_event_id))


@celery_app.task(bind=True, name="resolve_pending_exit", max_retries=10)
def resolve_pending_exit(self, session_id: int):
    """
    Deferred grace/race check for one session's pending exit.
    Re-queued when it runs before the exit is due (worker clock behind the API host).
    """
    db = SessionLocal()
    try:
        result = GeofenceEngine(db).resolve_exit(session_id)
    finally:
        db.close()

    if result["status"] == "exit_pending":
        delay = retry_delay(result["finalize_after"])
        logger.info(f"Exit for session {session_id} not due yet, retrying in {delay:.1f}s")
        raise self.retry(countdown=delay)
    return result


@celery_app.task(name="sweep_expired_exits")
def sweep_expired_exits():
    """
    Periodic backstop: resolve exits whose deferred task never ran
    """
    db = SessionLocal()
    try:
        return GeofenceEngine(db).sweep_expired_exits()
    finally:
        db.close()


@celery_app.task(name="sweep_overtime_sessions")
def sweep_overtime_sessions():
    """
    Periodic overtime hard cap
    """
    db = SessionLocal()
    try:
        return GeofenceEngine(db).sweep_overtime_sessions()
    finally:
        db.close()

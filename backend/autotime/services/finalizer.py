"""Clock-out finalizer: the only place the engine closes a shift session.

The clock-out is a compare-and-swap: ``UPDATE ... WHERE id = :id AND
clock_out IS NULL``. Whoever writes first wins; every later writer (a manual
clock-out, the deferred resolver, an overlapping sweep) affects zero rows and
gets an ``already closed`` result, which is an expected outcome, not an error.

The clock-out is committed before the audit row and the notification are
written. Those two are best effort and never roll back a committed clock-out.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from autotime.core.config import settings
from autotime.models.geofence import AutoClockoutAudit
from autotime.models.timeclock import ShiftSession, AutoClockoutType
from autotime.services.notifications import NotificationService, dedupe_key
from autotime.services.window_gate import as_utc, site_timezone, utcnow

logger = logging.getLogger(__name__)

REASON_GEOFENCE_EXIT = "geofence_exit"
REASON_OT_GEOFENCE_EXIT = "ot_geofence_exit"
REASON_OT_TIME_LIMIT = "ot_3hour_limit"

# reason -> (auto_clockout_type, dedupe reason tag, notification type)
REASONS = {
    REASON_GEOFENCE_EXIT: (AutoClockoutType.GEOFENCE, "auto_clockout", "geofence_auto_clockout"),
    REASON_OT_GEOFENCE_EXIT: (AutoClockoutType.GEOFENCE, "ot_auto_clockout", "overtime_auto_clockout"),
    REASON_OT_TIME_LIMIT: (AutoClockoutType.TIME_LIMIT, "ot_auto_clockout", "overtime_auto_clockout"),
}


@dataclass
class FinalizeResult:
    session_id: int
    closed: bool
    clock_out: Optional[datetime] = None
    total_hours: Optional[float] = None
    reason: Optional[str] = None

    @property
    def already_closed(self) -> bool:
        return not self.closed


class ClockOutFinalizer:

    def __init__(self, db: Session, tz=None):
        self.db = db
        self.tz = tz
        self.notifications = NotificationService(db)

    def finalize(
        self,
        session_id: int,
        clock_out_time: datetime,
        reason: str,
        exit_context: Optional[dict] = None,
    ) -> FinalizeResult:
        if reason not in REASONS:
            raise ValueError(f"Unknown auto clock-out reason: {reason}")
        clockout_type, reason_tag, notification_type = REASONS[reason]

        session = self.db.get(ShiftSession, session_id)
        if session is None:
            logger.warning(f"Finalize requested for unknown session {session_id}")
            return FinalizeResult(session_id=session_id, closed=False, reason=reason)

        clock_out = as_utc(clock_out_time)
        total_hours = max(0.0, (clock_out - as_utc(session.clock_in)).total_seconds() / 3600.0)
        if reason == REASON_OT_TIME_LIMIT:
            total_hours = float(settings.OT_MAX_HOURS)
        elif session.is_overtime:
            total_hours = min(total_hours, float(settings.OT_MAX_HOURS))

        # Conditional write: succeeds only if nobody closed the session first
        result = self.db.execute(
            update(ShiftSession)
            .where(ShiftSession.id == session_id, ShiftSession.clock_out.is_(None))
            .values(
                clock_out=clock_out,
                auto_clocked_out=True,
                auto_clockout_type=clockout_type.value,
                total_hours=total_hours,
                geofence_exit_data=exit_context,
                source="system_auto",
                notes=self._clockout_note(reason, clock_out),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount == 0:
            logger.info(f"Session {session_id} already closed, auto clock-out ({reason}) not applied")
            return FinalizeResult(session_id=session_id, closed=False, reason=reason)

        logger.info(
            f"Auto clocked-out session {session_id} (worker {session.worker_id}) "
            f"at {clock_out.isoformat()} reason={reason} hours={total_hours:.2f}"
        )

        job_name = session.job.name if session.job else "Unknown Job"
        self._write_audit(session, reason, total_hours, job_name, exit_context)
        self._send_notification(
            session, reason, notification_type,
            dedupe_key(session.worker_id, session.work_date, reason_tag),
            clock_out, total_hours, job_name, exit_context,
        )

        return FinalizeResult(
            session_id=session_id,
            closed=True,
            clock_out=clock_out,
            total_hours=total_hours,
            reason=reason,
        )

    # ── Internal Helpers ─────────────────────────────────────────────────

    def _local_time(self, value: datetime) -> str:
        return as_utc(value).astimezone(site_timezone(self.tz)).strftime("%I:%M %p")

    def _clockout_note(self, reason: str, clock_out: datetime) -> str:
        if reason == REASON_OT_TIME_LIMIT:
            return f"Auto clocked-out after {settings.OT_MAX_HOURS}-hour OT limit"
        if reason == REASON_OT_GEOFENCE_EXIT:
            return "Auto clocked-out - left site during OT"
        return f"Auto clocked-out by geofence grace expiry at {self._local_time(clock_out)}"

    def _write_audit(self, session, reason, total_hours, job_name, exit_context):
        if reason == REASON_GEOFENCE_EXIT and exit_context:
            notes = (
                f"Geofence auto-clockout for {job_name}. "
                f"Distance: {exit_context['distance']:.2f}m, Threshold: {exit_context['threshold']}m"
            )
        elif reason == REASON_OT_TIME_LIMIT:
            notes = f"OT auto-clockout: {settings.OT_MAX_HOURS}-hour limit reached. Hours: {total_hours:.2f}"
        else:
            notes = f"OT auto-clockout: Left geofence at {job_name}. Hours: {total_hours:.2f}"

        try:
            self.db.add(AutoClockoutAudit(
                worker_id=session.worker_id,
                clock_entry_id=session.id,
                shift_date=session.work_date,
                reason=reason,
                performed=True,
                decided_by="system",
                notes=notes,
                decided_at=utcnow(),
            ))
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Audit write failed for session {session.id} ({reason}): {e}", exc_info=True)

    def _send_notification(self, session, reason, notification_type, key,
                           clock_out, total_hours, job_name, exit_context):
        at = self._local_time(clock_out)
        if reason == REASON_GEOFENCE_EXIT:
            title = "Auto Clocked-Out: Geofence Exit"
            distance = f"{exit_context['distance']:.0f}m" if exit_context else "unknown"
            body = (
                f"You were automatically clocked out at {at} because you left the {job_name} site.\n\n"
                f"Reason: Left Job Site Geofence\n"
                f"Distance: {distance} from center\n"
                f"Clock-Out Time: {at}\n"
                f"Total Hours: {total_hours:.2f}\n\n"
                f"Need a correction? Submit a Time Amendment from your timesheet."
            )
        elif reason == REASON_OT_TIME_LIMIT:
            title = "Overtime Auto Clock-Out"
            body = (
                f"You were automatically clocked out after {settings.OT_MAX_HOURS} hours of overtime at {job_name}.\n\n"
                f"Clock-Out Time: {at}\n"
                f"Total OT Hours: {total_hours:.2f}\n\n"
                f"Need more time? Submit a Time Amendment from your timesheet to extend your overtime hours."
            )
        else:
            title = "Overtime Auto Clock-Out"
            body = (
                f"You were automatically clocked out because you left the {job_name} site during overtime.\n\n"
                f"Reason: Left Job Site (Geofence)\n"
                f"Clock-Out Time: {at}\n"
                f"Total OT Hours: {total_hours:.2f}\n\n"
                f"Need a correction? Submit a Time Amendment from your timesheet."
            )

        try:
            self.notifications.notify(session.worker_id, title, body, notification_type, key)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Notification failed for session {session.id} ({reason}): {e}", exc_info=True)

"""Append-only geofence event log.

A session's exit state is derived entirely from its events:

- no ``exit_detected``                        -> monitoring
- latest ``exit_detected`` with no ``re_entry`` or ``exit_confirmed`` at or
  after its timestamp                         -> exit pending
- otherwise                                   -> resolved
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, exists, func
from sqlalchemy.orm import Session, aliased

from autotime.models.geofence import GeofenceEvent, GeofenceEventType
from autotime.models.timeclock import ShiftSession
from autotime.services.window_gate import as_utc

logger = logging.getLogger(__name__)

RESOLUTION_TYPES = (GeofenceEventType.RE_ENTRY.value, GeofenceEventType.EXIT_CONFIRMED.value)


class GeofenceEventLog:

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        session: ShiftSession,
        event_type: GeofenceEventType,
        timestamp: datetime,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        accuracy: Optional[float] = None,
        distance: Optional[float] = None,
        radius: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> GeofenceEvent:
        event = GeofenceEvent(
            worker_id=session.worker_id,
            clock_entry_id=session.id,
            shift_date=session.work_date,
            event_type=GeofenceEventType(event_type).value,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            distance_from_center=distance,
            job_radius=radius,
            safe_out_threshold=threshold,
            timestamp=as_utc(timestamp),
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event

    def record_from(self, source: GeofenceEvent, session: ShiftSession,
                    event_type: GeofenceEventType, timestamp: datetime) -> GeofenceEvent:
        """Record a transition event carrying the fix data of ``source``."""
        return self.record(
            session,
            event_type,
            timestamp=timestamp,
            latitude=source.latitude,
            longitude=source.longitude,
            accuracy=source.accuracy,
            distance=source.distance_from_center,
            radius=source.job_radius,
            threshold=source.safe_out_threshold,
        )

    def events_for_session(self, session_id: int) -> List[GeofenceEvent]:
        return (
            self.db.query(GeofenceEvent)
            .filter(GeofenceEvent.clock_entry_id == session_id)
            .order_by(GeofenceEvent.timestamp, GeofenceEvent.id)
            .all()
        )

    def last_resolution_at(self, session_id: int) -> Optional[datetime]:
        latest = (
            self.db.query(func.max(GeofenceEvent.timestamp))
            .filter(
                GeofenceEvent.clock_entry_id == session_id,
                GeofenceEvent.event_type.in_(RESOLUTION_TYPES),
            )
            .scalar()
        )
        return as_utc(latest)

    def pending_exit(self, session_id: int) -> Optional[GeofenceEvent]:
        """Latest unresolved ``exit_detected`` for the session, if any."""
        latest_exit = (
            self.db.query(GeofenceEvent)
            .filter(
                GeofenceEvent.clock_entry_id == session_id,
                GeofenceEvent.event_type == GeofenceEventType.EXIT_DETECTED.value,
            )
            .order_by(GeofenceEvent.timestamp.desc(), GeofenceEvent.id.desc())
            .first()
        )
        if latest_exit is None:
            return None

        resolved_at = self.last_resolution_at(session_id)
        if resolved_at is not None and resolved_at >= as_utc(latest_exit.timestamp):
            return None
        return latest_exit

    def fixes_after(self, session_id: int, after: datetime, limit: int) -> List[GeofenceEvent]:
        """Most recent ``limit`` location fixes strictly after ``after``, newest first."""
        return (
            self.db.query(GeofenceEvent)
            .filter(
                GeofenceEvent.clock_entry_id == session_id,
                GeofenceEvent.event_type == GeofenceEventType.LOCATION_FIX.value,
                GeofenceEvent.timestamp > as_utc(after),
            )
            .order_by(GeofenceEvent.timestamp.desc(), GeofenceEvent.id.desc())
            .limit(limit)
            .all()
        )

    def expired_pending_exits(self, cutoff: datetime) -> List[GeofenceEvent]:
        """Unresolved exits older than ``cutoff`` on sessions that are still open.

        One event per session (the earliest), oldest first.
        """
        later = aliased(GeofenceEvent)
        resolved = exists().where(
            and_(
                later.clock_entry_id == GeofenceEvent.clock_entry_id,
                later.event_type.in_(RESOLUTION_TYPES),
                later.timestamp >= GeofenceEvent.timestamp,
            )
        )
        rows = (
            self.db.query(GeofenceEvent)
            .join(ShiftSession, ShiftSession.id == GeofenceEvent.clock_entry_id)
            .filter(
                GeofenceEvent.event_type == GeofenceEventType.EXIT_DETECTED.value,
                GeofenceEvent.timestamp < as_utc(cutoff),
                ShiftSession.clock_out.is_(None),
                ~resolved,
            )
            .order_by(GeofenceEvent.timestamp, GeofenceEvent.id)
            .all()
        )

        seen = set()
        pending = []
        for row in rows:
            if row.clock_entry_id in seen:
                continue
            seen.add(row.clock_entry_id)
            pending.append(row)
        return pending

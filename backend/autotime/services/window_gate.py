"""When is geofence auto clock-out armed?

- Normal shifts: only during the last hour before the worker's scheduled
  shift_end, inclusive at both ends. shift_end is a local wall-clock time and
  is always resolved against the current local date, never the date the
  shift began, so a session carried over midnight is judged against today's
  schedule.
- Overtime sessions: always armed, and independently capped at
  OT_MAX_HOURS after clock-in.
"""
import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional

import pytz

from autotime.core.config import settings
from autotime.services.errors import InvalidShiftEnd

SHIFT_END_RE = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def site_timezone(tz=None):
    if tz is None:
        tz = settings.SITE_TIMEZONE
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def parse_shift_end(raw: Optional[str]) -> Optional[time]:
    """Parse "HH:MM" or "HH:MM:SS" (seconds ignored).

    Returns None when no shift_end is configured; raises InvalidShiftEnd
    when one is configured but malformed.
    """
    raw = (raw or "").strip()
    if not raw:
        return None

    match = SHIFT_END_RE.match(raw)
    if not match:
        raise InvalidShiftEnd(raw)

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidShiftEnd(raw)
    return time(hour, minute)


def shift_end_on_day_of(at: datetime, shift_end: time, tz=None) -> datetime:
    """Scheduled shift end (UTC) on the local calendar day containing ``at``."""
    zone = site_timezone(tz)
    local_at = as_utc(at).astimezone(zone)
    local_end = zone.localize(datetime.combine(local_at.date(), shift_end))
    return local_end.astimezone(timezone.utc)


def in_last_hour_window(at: datetime, shift_end: time, tz=None) -> bool:
    end = shift_end_on_day_of(at, shift_end, tz)
    start = end - timedelta(minutes=settings.AUTO_WINDOW_MINUTES)
    return start <= as_utc(at) <= end


def overtime_cap_time(clock_in: datetime) -> datetime:
    return as_utc(clock_in) + timedelta(hours=settings.OT_MAX_HOURS)


def overtime_cap_reached(clock_in: datetime, now: datetime) -> bool:
    return as_utc(now) >= overtime_cap_time(clock_in)


def auto_clockout_armed(session, worker, at: datetime, tz=None) -> bool:
    """Is geofence-exit auto clock-out active for this session at ``at``?"""
    if session.is_overtime:
        return True

    shift_end = parse_shift_end(worker.shift_end if worker is not None else None)
    if shift_end is None:
        return False
    return in_last_hour_window(at, shift_end, tz)

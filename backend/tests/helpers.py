"""Shared test helpers."""

import math
from datetime import datetime, timezone

from autotime.services.geo import EARTH_RADIUS_METERS

JOB_LAT = 51.5
JOB_LNG = -0.12


def point_at(distance_m: float):
    """Coordinates ``distance_m`` due north of the test job site center."""
    return JOB_LAT + math.degrees(distance_m / EARTH_RADIUS_METERS), JOB_LNG


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeScheduler:
    """Records deferred exit resolutions instead of queueing Celery tasks."""

    def __init__(self):
        self.scheduled = []
        self.cancelled = []

    def schedule(self, session_id, exit_event_id, delay_seconds):
        self.scheduled.append((session_id, exit_event_id, delay_seconds))

    def cancel(self, session_id, exit_event_id):
        self.cancelled.append((session_id, exit_event_id))

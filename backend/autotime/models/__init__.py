from autotime.models.worker import Worker, Job
from autotime.models.timeclock import ShiftSession, AutoClockoutType
from autotime.models.geofence import GeofenceEvent, GeofenceEventType, AutoClockoutAudit
from autotime.models.notification import Notification

__all__ = [
    "Worker",
    "Job",
    "ShiftSession",
    "AutoClockoutType",
    "GeofenceEvent",
    "GeofenceEventType",
    "AutoClockoutAudit",
    "Notification",
]

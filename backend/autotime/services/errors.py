class GeofenceError(Exception):
    """Bad input for a single geofence request. Maps to HTTP 400."""


class InvalidShiftEnd(GeofenceError):
    def __init__(self, raw):
        self.raw = raw
        super().__init__(f"shift_end must be in HH:MM or HH:MM:SS format (got {raw!r})")


class InvalidJobGeofence(GeofenceError):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} has no usable geofence (latitude, longitude and radius are required)")

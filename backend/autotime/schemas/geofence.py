from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class LocationFix(BaseModel):
    worker_id: int
    shift_session_id: int
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float = Field(..., ge=0)
    timestamp: Optional[datetime] = None


class LocationStatus(BaseModel):
    """Client UX feedback only, never authoritative state."""
    status: str
    distance: Optional[float] = None
    threshold: Optional[float] = None
    grace_period_minutes: Optional[int] = None
    finalize_after: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    total_hours: Optional[float] = None
    auto_clockout_type: Optional[str] = None


class GeofenceEventOut(BaseModel):
    id: int
    worker_id: int
    clock_entry_id: int
    event_type: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    distance_from_center: Optional[float] = None
    job_radius: Optional[int] = None
    safe_out_threshold: Optional[float] = None
    timestamp: datetime

    class Config:
        from_attributes = True

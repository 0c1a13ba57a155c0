"""Reference data read by the geofence engine: workers and job sites.

Both tables are administered elsewhere; the engine only reads them.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float
from sqlalchemy.sql import func
from autotime.core.database import Base


class Worker(Base):
    __tablename__ = "workers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)

    # Scheduled shift, local wall-clock time in settings.SITE_TIMEZONE.
    # Stored as text ("HH:MM" or "HH:MM:SS") and validated on read.
    shift_start = Column(String, nullable=True)
    shift_end = Column(String, nullable=True)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Job(Base):
    """A job site with a circular geofence."""
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)

    # Site center
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Geofence radius in meters (50, 100, 200, 300, 400 or 500)
    geofence_radius = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

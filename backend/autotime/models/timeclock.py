"""Shift session model (one clock-in / clock-out period).

A session is open while clock_out is NULL. Closing is terminal: the only
writes that set clock_out are conditional on it still being NULL, whether
they come from a manual clock-out or from the geofence engine.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Date, Float, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from autotime.core.database import Base


class AutoClockoutType(str, enum.Enum):
    NONE = "none"
    GEOFENCE = "geofence"
    TIME_LIMIT = "time_limit"


class ShiftSession(Base):
    """Individual clock-in / clock-out record."""
    __tablename__ = "clock_entries"

    id = Column(Integer, primary_key=True, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)

    # Date the shift started (UTC)
    work_date = Column(Date, nullable=False, index=True)

    # Clock times
    clock_in = Column(DateTime(timezone=True), nullable=False)
    clock_out = Column(DateTime(timezone=True), nullable=True, index=True)

    # GPS at clock in / out
    clock_in_lat = Column(Float, nullable=True)
    clock_in_lng = Column(Float, nullable=True)
    clock_out_lat = Column(Float, nullable=True)
    clock_out_lng = Column(Float, nullable=True)

    is_overtime = Column(Boolean, default=False, nullable=False)

    # Automatic clock-out bookkeeping
    auto_clocked_out = Column(Boolean, default=False, nullable=False)
    auto_clockout_type = Column(String, default=AutoClockoutType.NONE.value, nullable=False)
    geofence_exit_data = Column(JSON, nullable=True)  # distance / accuracy / threshold / radius

    total_hours = Column(Float, nullable=True)
    source = Column(String, default="manual")  # manual, system_auto
    notes = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    worker = relationship("Worker", backref="clock_entries")
    job = relationship("Job")

    @property
    def is_open(self) -> bool:
        return self.clock_out is None

    @property
    def is_manual_clockout(self) -> bool:
        return self.clock_out is not None and not self.auto_clocked_out

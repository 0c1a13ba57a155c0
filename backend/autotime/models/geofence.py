"""Geofence event log and auto clock-out audit trail.

Both tables are append-only: rows are inserted and never updated or deleted.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Date, Float, Text, Index
from sqlalchemy.sql import func
from autotime.core.database import Base


class GeofenceEventType(str, enum.Enum):
    LOCATION_FIX = "location_fix"
    EXIT_DETECTED = "exit_detected"
    RE_ENTRY = "re_entry"
    EXIT_CONFIRMED = "exit_confirmed"


class GeofenceEvent(Base):
    """One observation for a shift session."""
    __tablename__ = "geofence_events"

    id = Column(Integer, primary_key=True, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False, index=True)
    clock_entry_id = Column(Integer, ForeignKey("clock_entries.id"), nullable=False)
    shift_date = Column(Date, nullable=False)

    event_type = Column(String, nullable=False, index=True)

    # Fix
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)  # meters

    # Classification inputs, frozen at the time of the event
    distance_from_center = Column(Float, nullable=True)
    job_radius = Column(Integer, nullable=True)
    safe_out_threshold = Column(Float, nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_geofence_events_entry_ts", "clock_entry_id", "timestamp"),
    )


class AutoClockoutAudit(Base):
    """One row per automatic clock-out decision."""
    __tablename__ = "auto_clockout_audit"

    id = Column(Integer, primary_key=True, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False, index=True)
    clock_entry_id = Column(Integer, ForeignKey("clock_entries.id"), nullable=True)
    shift_date = Column(Date, nullable=False)

    reason = Column(String, nullable=False)  # geofence_exit, ot_geofence_exit, ot_3hour_limit
    performed = Column(Boolean, default=True, nullable=False)
    decided_by = Column(String, default="system", nullable=False)
    notes = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=False)

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Text
from sqlalchemy.sql import func
from autotime.core.database import Base


class Notification(Base):
    """In-app notification for a worker.

    dedupe_key is unique: a second insert for the same logical event fails
    at the database and is treated as already delivered.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    type = Column(String, nullable=False)
    dedupe_key = Column(String, unique=True, nullable=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

from pydantic import BaseModel, Field
from typing import Optional


class ClockInRequest(BaseModel):
    worker_id: int
    job_id: int
    is_overtime: bool = False
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    note: Optional[str] = None


class ClockOutRequest(BaseModel):
    worker_id: int
    shift_session_id: int
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    note: Optional[str] = None

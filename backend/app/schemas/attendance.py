"""
Attendance schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.class_enums import AttendanceStatus


class CheckInRequest(BaseModel):
    member_id: int = Field(..., gt=0)
    class_id: Optional[int] = Field(None, gt=0, description="Omit for a plain gym check-in")
    notes: Optional[str] = Field(None, max_length=500)


class CheckInResponse(BaseModel):
    attendance_id: int
    remaining_tokens: int


class CheckOutResponse(BaseModel):
    attendance_id: int
    check_in: datetime
    check_out: datetime
    duration: int = Field(..., description="Whole minutes, rounded half-up")


class AttendanceResponse(BaseModel):
    id: int
    member_id: int
    class_id: Optional[int] = None
    check_in: datetime
    check_out: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    status: AttendanceStatus
    token_used: int
    notes: Optional[str] = None
    recorded_by_id: Optional[int] = None

    class Config:
        from_attributes = True


class AttendanceStats(BaseModel):
    total_visits: int
    total_hours: float
    tokens_spent: int
    average_visit_hours: float

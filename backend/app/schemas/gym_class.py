"""
Class schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.class_enums import WeekDay

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    gym_id: int
    trainer_id: Optional[int] = None
    day: WeekDay
    start_time: str = Field(..., pattern=HHMM, description="HH:MM")
    duration_minutes: int = Field(..., ge=15, le=480)
    max_capacity: int = Field(..., ge=1, le=500)
    token_cost: int = Field(..., ge=0)


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    trainer_id: Optional[int] = None
    day: Optional[WeekDay] = None
    start_time: Optional[str] = Field(None, pattern=HHMM)
    duration_minutes: Optional[int] = Field(None, ge=15, le=480)
    max_capacity: Optional[int] = Field(None, ge=1, le=500)
    token_cost: Optional[int] = Field(None, ge=0)


class ClassResponse(BaseModel):
    id: int
    gym_id: int
    trainer_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    day: WeekDay
    start_time: str
    end_time: str
    duration_minutes: int
    max_capacity: int
    current_enrollment: int
    token_cost: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EnrollResponse(BaseModel):
    attendance_id: int
    class_id: int
    current_enrollment: int
    remaining_tokens: int


class LeaveClassRequest(BaseModel):
    """Admins name the member to remove; members leave for themselves."""
    member_id: Optional[int] = None

"""
Gym Pydantic schemas.

Defines request and response models for gym management.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class GymCreate(BaseModel):
    """
    Schema for creating a gym (admin only).

    Also creates the GYM-role owner account from owner_* fields.
    """
    name: str = Field(..., min_length=2, max_length=100, description="Gym name")
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=20)
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: str = Field("Sri Lanka", min_length=1, max_length=100)
    pincode: Optional[str] = Field(None, max_length=20)
    weekday_open: str = Field("06:00", pattern=HHMM)
    weekday_close: str = Field("22:00", pattern=HHMM)
    weekend_open: str = Field("08:00", pattern=HHMM)
    weekend_close: str = Field("20:00", pattern=HHMM)

    owner_name: str = Field(..., min_length=2, max_length=50)
    owner_email: EmailStr
    owner_password: str = Field(..., min_length=6)


class GymUpdate(BaseModel):
    """Schema for updating an existing gym."""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    street: Optional[str] = Field(None, min_length=1, max_length=200)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, min_length=1, max_length=100)
    pincode: Optional[str] = Field(None, max_length=20)
    weekday_open: Optional[str] = Field(None, pattern=HHMM)
    weekday_close: Optional[str] = Field(None, pattern=HHMM)
    weekend_open: Optional[str] = Field(None, pattern=HHMM)
    weekend_close: Optional[str] = Field(None, pattern=HHMM)


class GymResponse(BaseModel):
    """Schema for gym response."""
    id: int
    owner_id: int
    name: str
    email: str
    phone: str
    street: str
    city: str
    state: Optional[str]
    country: str
    pincode: Optional[str]
    full_address: str
    weekday_open: str
    weekday_close: str
    weekend_open: str
    weekend_close: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class GymStats(BaseModel):
    gym_id: int
    total_members: int
    active_members: int
    total_classes: int
    active_classes: int
    check_ins_today: int

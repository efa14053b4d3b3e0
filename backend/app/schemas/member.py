"""
Member profile schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class MemberResponse(BaseModel):
    id: int
    user_id: int
    membership_number: str
    token_balance: int
    is_active: bool
    gym_id: Optional[int] = None
    last_check_in: Optional[datetime] = None
    check_in_count: int
    emergency_contact_name: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MemberDetail(MemberResponse):
    """Member with the owning user's contact details."""
    name: str
    email: str
    phone: Optional[str] = None


class MemberProfileUpdate(BaseModel):
    """Fields a member may change on their own profile. Balance is never writable here."""
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    gym_id: Optional[int] = None
    emergency_contact_name: Optional[str] = Field(None, max_length=100)
    emergency_contact_relationship: Optional[str] = Field(None, max_length=50)
    emergency_contact_phone: Optional[str] = Field(None, max_length=20)


class MemberAdminUpdate(MemberProfileUpdate):
    notes: Optional[str] = Field(None, max_length=500)

"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from backend.app.models.enums import UserRole


class UserRegister(BaseModel):
    """
    Schema for member self-registration.

    Used by POST /auth/register endpoint. Always creates a MEMBER; gym
    accounts are created by an admin together with their gym.
    """
    name: str = Field(..., min_length=2, max_length=50, description="Full name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")
    phone: Optional[str] = Field(default=None, max_length=20)
    role: Optional[UserRole] = Field(default=UserRole.MEMBER, description="Only 'member' is accepted")
    gym_id: Optional[int] = Field(default=None, description="Home gym")


class UserLogin(BaseModel):
    """Schema for user login (POST /auth/login)."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    success: bool = True
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int = Field(..., description="User ID")
    name: str
    email: str = Field(..., description="Email address")
    role: UserRole = Field(..., description="User role")
    member_id: Optional[int] = Field(default=None, description="Member profile ID (members only)")
    token_balance: Optional[int] = None


class UserResponse(BaseModel):
    """
    Schema for user information response.

    Used by GET /auth/me endpoint.
    """
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MeResponse(UserResponse):
    member_id: Optional[int] = None
    membership_number: Optional[str] = None
    token_balance: Optional[int] = None
    gym_id: Optional[int] = None

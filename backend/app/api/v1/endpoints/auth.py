"""
Authentication API endpoints.

Provides register, login, logout and current-user endpoints.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.models.member import Member
from backend.app.models.gym import Gym
from backend.app.models.enums import UserRole
from backend.app.schemas.auth import UserRegister, UserLogin, TokenResponse, MeResponse
from backend.app.schemas.common import DataResponse, MessageResponse
from backend.app.core.datetime_utils import utcnow
from backend.app.core.exceptions import (
    AuthenticationError, InsufficientPermissionsError, ResourceNotFoundError, ValidationError
)
from backend.app.core.security import verify_password
from backend.app.core.jwt import create_access_token
from backend.app.core.dependencies import get_current_user
from backend.app.core.token_revocation import revoke_token
from backend.app.services.audit import log_auth_event, AuditAction
from backend.app.services.membership import register_member

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


def _issue_token(user: User) -> str:
    return create_access_token(email=user.email, user_id=user.id, role=user.role.value)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new member.

    - ADMIN and GYM roles cannot be created via this endpoint.
    - The member starts with the configured token grant, recorded in the ledger.
    """
    if user_data.role == UserRole.ADMIN:
        raise InsufficientPermissionsError("Admin users cannot be registered via API")
    if user_data.role == UserRole.GYM:
        raise ValidationError("Gym accounts are created by an administrator together with the gym")

    if user_data.gym_id is not None:
        gym = await db.get(Gym, user_data.gym_id)
        if not gym or not gym.is_active:
            raise ResourceNotFoundError("Gym", user_data.gym_id)

    user, member = await register_member(
        db,
        name=user_data.name,
        email=user_data.email,
        password=user_data.password,
        phone=user_data.phone,
        gym_id=user_data.gym_id,
    )

    await log_auth_event(
        db=db,
        action=AuditAction.USER_REGISTERED,
        user_id=user.id,
        email=user.email,
        ip_address=_client_ip(request),
        metadata={"membership_number": member.membership_number}
    )

    return TokenResponse(
        access_token=_issue_token(user),
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        member_id=member.id,
        token_balance=member.token_balance,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.

    Logs successful and failed login attempts for security monitoring.
    """
    ip_address = _client_ip(request)
    result = await db.execute(select(User).where(func.lower(User.email) == credentials.email.lower()))
    user = result.scalar_one_or_none()

    if not user:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=None,
            email=credentials.email,
            ip_address=ip_address,
            metadata={"reason": "User not found"}
        )
        raise AuthenticationError("Invalid credentials")

    if not verify_password(credentials.password, user.hashed_password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            email=user.email,
            ip_address=ip_address,
            metadata={"reason": "Invalid password"}
        )
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            email=user.email,
            ip_address=ip_address,
            metadata={"reason": "Account is inactive/blocked"}
        )
        raise InsufficientPermissionsError("Inactive user account")

    user.last_login = utcnow()
    await db.commit()

    member = None
    if user.role == UserRole.MEMBER:
        member = (await db.execute(select(Member).where(Member.user_id == user.id))).scalar_one_or_none()

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        email=user.email,
        ip_address=ip_address
    )

    return TokenResponse(
        access_token=_issue_token(user),
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        member_id=member.id if member else None,
        token_balance=member.token_balance if member else None,
    )


@router.get("/me", response_model=DataResponse[MeResponse])
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated user information.

    Members also get their membership number and token balance.
    """
    user = await db.get(User, current_user["user_id"])
    if not user:
        raise ResourceNotFoundError("User", current_user["user_id"])

    data = MeResponse.model_validate(user)
    if user.role == UserRole.MEMBER:
        member = (await db.execute(select(Member).where(Member.user_id == user.id))).scalar_one_or_none()
        if member:
            data.member_id = member.id
            data.membership_number = member.membership_number
            data.token_balance = member.token_balance
            data.gym_id = member.gym_id

    return DataResponse(data=data)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the presented token."""
    await revoke_token(current_user["token"], current_user["user_id"])

    await log_auth_event(
        db=db,
        action=AuditAction.LOGOUT,
        user_id=current_user["user_id"],
        email=current_user.get("sub"),
        ip_address=_client_ip(request)
    )

    return MessageResponse(message="Logged out successfully")

"""
Admin API Endpoints.

User management, audit trail, dashboard statistics and ledger reconciliation.
"""

from dataclasses import asdict
from typing import Optional, List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.models.enums import UserRole
from backend.app.schemas.admin import (
    UserListItem, BlockUserRequest, UnblockUserRequest,
    AdminActionResponse, AuditLogResponse, DashboardStats
)
from backend.app.schemas.common import DataResponse, ListResponse
from backend.app.schemas.token import BalanceDriftResponse
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError, InsufficientPermissionsError
from backend.app.core.guards import authorize, Resource, Action
from backend.app.core.token_revocation import revoke_all_user_tokens, clear_user_token_revocation
from backend.app.domain.tokens.ledger_service import TokenLedgerService
from backend.app.services.audit import log_admin_action, AuditAction, get_audit_trail
from backend.app.services.pagination import Page, paginate
from backend.app.services.reporting import dashboard_stats

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users", response_model=ListResponse[UserListItem])
async def list_users(
    search: Optional[str] = Query(None, description="Match name or email"),
    role: Optional[UserRole] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    admin: dict = Depends(authorize(Resource.USERS, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    """List users (admin-only), newest first."""
    query = select(User)
    if search:
        term = f"%{search}%"
        query = query.where(or_(User.name.ilike(term), User.email.ilike(term)))
    if role:
        query = query.where(User.role == role)
    query = query.order_by(User.created_at.desc(), User.id.desc())

    result = await paginate(db, query, page, limit)
    return result.envelope([UserListItem.model_validate(user) for user in result.items])


@router.get("/users/{user_id}", response_model=DataResponse[UserListItem])
async def get_user(
    user_id: int,
    admin: dict = Depends(authorize(Resource.USERS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    user = await db.get(User, user_id)
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return DataResponse(data=UserListItem.model_validate(user))


@router.post("/users/{user_id}/block", response_model=AdminActionResponse)
async def block_user(
    user_id: int,
    request: BlockUserRequest,
    admin: dict = Depends(authorize(Resource.USERS, Action.BLOCK)),
    db: AsyncSession = Depends(get_db)
):
    """
    Block a user and revoke all their active tokens (admin-only).

    This immediately terminates all user sessions.
    """
    target_user = await db.get(User, user_id)
    if not target_user:
        raise ResourceNotFoundError("User", user_id)

    if target_user.role == UserRole.ADMIN:
        raise InsufficientPermissionsError("Cannot block another admin user")

    if not target_user.is_active:
        raise ValidationError("User is already blocked")

    target_user.is_active = False
    await db.commit()

    await revoke_all_user_tokens(user_id)

    audit_log = await log_admin_action(
        db=db,
        admin_id=admin["user_id"],
        admin_email=admin["sub"],
        action=AuditAction.USER_BLOCKED,
        target_user_id=target_user.id,
        target_email=target_user.email,
        metadata={"reason": request.reason} if request.reason else None
    )

    return AdminActionResponse(
        success=True,
        message=f"User '{target_user.email}' has been blocked",
        user_id=user_id,
        action=AuditAction.USER_BLOCKED,
        audit_log_id=audit_log.id
    )


@router.post("/users/{user_id}/unblock", response_model=AdminActionResponse)
async def unblock_user(
    user_id: int,
    request: UnblockUserRequest,
    admin: dict = Depends(authorize(Resource.USERS, Action.BLOCK)),
    db: AsyncSession = Depends(get_db)
):
    """
    Unblock a user and clear token revocations (admin-only).

    User will be able to login again and generate new tokens.
    """
    target_user = await db.get(User, user_id)
    if not target_user:
        raise ResourceNotFoundError("User", user_id)

    if target_user.is_active:
        raise ValidationError("User is already active")

    target_user.is_active = True
    await db.commit()

    await clear_user_token_revocation(user_id)

    audit_log = await log_admin_action(
        db=db,
        admin_id=admin["user_id"],
        admin_email=admin["sub"],
        action=AuditAction.USER_UNBLOCKED,
        target_user_id=target_user.id,
        target_email=target_user.email,
        metadata={"reason": request.reason} if request.reason else None
    )

    return AdminActionResponse(
        success=True,
        message=f"User '{target_user.email}' has been unblocked",
        user_id=user_id,
        action=AuditAction.USER_UNBLOCKED,
        audit_log_id=audit_log.id
    )


@router.get("/audit-logs", response_model=ListResponse[AuditLogResponse])
async def audit_trail(
    target_user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    admin: dict = Depends(authorize(Resource.AUDIT, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail, most recent first."""
    logs, total = await get_audit_trail(db, target_user_id=target_user_id, action=action, page=page, limit=limit)
    result = Page(items=logs, total=total, page=page, limit=limit)
    return result.envelope([AuditLogResponse.model_validate(log) for log in logs])


@router.get("/stats", response_model=DataResponse[DashboardStats])
async def get_dashboard_stats(
    admin: dict = Depends(authorize(Resource.STATS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    """Member/gym counts, token usage by type and the five latest ledger entries."""
    return DataResponse(data=DashboardStats(**await dashboard_stats(db)))


@router.get("/tokens/reconcile", response_model=DataResponse[List[BalanceDriftResponse]])
async def reconcile_balances(
    admin: dict = Depends(authorize(Resource.STATS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    """Members whose cached balance differs from their ledger sum. Read-only."""
    drifts = await TokenLedgerService.reconcile(db)
    return DataResponse(data=[BalanceDriftResponse(**asdict(drift)) for drift in drifts])

"""
Audit logging service for tracking security events and admin actions.

Provides centralized logging for compliance and security monitoring.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    USER_BLOCKED = "USER_BLOCKED"
    USER_UNBLOCKED = "USER_UNBLOCKED"
    USER_REGISTERED = "USER_REGISTERED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    GYM_CREATED = "GYM_CREATED"
    GYM_UPDATED = "GYM_UPDATED"
    GYM_DEACTIVATED = "GYM_DEACTIVATED"

    MEMBER_UPDATED = "MEMBER_UPDATED"
    MEMBER_ACTIVATED = "MEMBER_ACTIVATED"
    MEMBER_DEACTIVATED = "MEMBER_DEACTIVATED"

    CLASS_CREATED = "CLASS_CREATED"
    CLASS_UPDATED = "CLASS_UPDATED"
    CLASS_DEACTIVATED = "CLASS_DEACTIVATED"
    CLASS_LEFT = "CLASS_LEFT"

    TOKENS_ADDED = "TOKENS_ADDED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    PACKAGE_PURCHASED = "PACKAGE_PURCHASED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_email: Optional[str] = None,
    target_user_id: Optional[int] = None,
    target_email: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log a security or admin event to the audit log.

    Commits on its own, so call it after the business transaction has been
    committed.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_email: Email of actor
        target_user_id: ID of user being acted upon (if applicable)
        target_email: Email of target
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=action,
        target_user_id=target_user_id,
        target_email=target_email,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_admin_action(
    db: AsyncSession,
    admin_id: int,
    admin_email: str,
    action: str,
    target_user_id: int,
    target_email: str,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an admin action against another user (block, unblock, ...)."""
    return await log_event(
        db=db,
        action=action,
        actor_id=admin_id,
        actor_email=admin_email,
        target_user_id=target_user_id,
        target_email=target_email,
        metadata=metadata
    )


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    email: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an authentication event (login success/failure, logout)."""
    return await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_email=email,
        ip_address=ip_address,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    target_user_id: Optional[int] = None,
    action: Optional[str] = None,
    page: int = 1,
    limit: int = 50
) -> tuple[list[AuditLog], int]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        (page of AuditLog instances most recent first, total matching rows)
    """
    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))

    if target_user_id:
        query = query.where(AuditLog.target_user_id == target_user_id)
        count_query = count_query.where(AuditLog.target_user_id == target_user_id)

    if action:
        query = query.where(AuditLog.action == action)
        count_query = count_query.where(AuditLog.action == action)

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all()), total

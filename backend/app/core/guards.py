"""
Security guards for role-based and ownership-based access control.

Role checks come from one declarative policy table keyed by
(role, resource, action). Each grant has a scope: ALL lets the role act on
any record, OWN restricts it to the caller's own records, which the
OwnershipGuard enforces once the target record is known.
"""

import enum
from typing import Dict, Tuple, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import InsufficientPermissionsError
from backend.app.models.enums import UserRole
from backend.app.models.gym import Gym
from backend.app.models.member import Member


class Scope(str, enum.Enum):
    ALL = "all"
    OWN = "own"


class Resource:
    USERS = "users"
    AUDIT = "audit"
    STATS = "stats"
    GYMS = "gyms"
    MEMBERS = "members"
    CLASSES = "classes"
    ATTENDANCE = "attendance"
    PAYMENTS = "payments"
    TOKENS = "tokens"
    REPORTS = "reports"


class Action:
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DEACTIVATE = "deactivate"
    BLOCK = "block"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    ENROLL = "enroll"
    LEAVE = "leave"
    REFUND = "refund"
    PURCHASE = "purchase"
    CREDIT = "credit"
    EXPORT = "export"


_R, _A = Resource, Action

POLICY: Dict[Tuple[UserRole, str, str], Scope] = {
    # Gym operators
    (UserRole.GYM, _R.GYMS, _A.LIST): Scope.ALL,
    (UserRole.GYM, _R.GYMS, _A.READ): Scope.ALL,
    (UserRole.GYM, _R.GYMS, _A.UPDATE): Scope.OWN,
    (UserRole.GYM, _R.MEMBERS, _A.LIST): Scope.ALL,
    (UserRole.GYM, _R.MEMBERS, _A.READ): Scope.ALL,
    (UserRole.GYM, _R.CLASSES, _A.LIST): Scope.ALL,
    (UserRole.GYM, _R.CLASSES, _A.READ): Scope.ALL,
    (UserRole.GYM, _R.CLASSES, _A.CREATE): Scope.OWN,
    (UserRole.GYM, _R.CLASSES, _A.UPDATE): Scope.OWN,
    (UserRole.GYM, _R.ATTENDANCE, _A.LIST): Scope.ALL,
    (UserRole.GYM, _R.ATTENDANCE, _A.READ): Scope.ALL,
    (UserRole.GYM, _R.ATTENDANCE, _A.CHECK_IN): Scope.ALL,
    (UserRole.GYM, _R.ATTENDANCE, _A.CHECK_OUT): Scope.ALL,
    (UserRole.GYM, _R.TOKENS, _A.READ): Scope.ALL,
    (UserRole.GYM, _R.TOKENS, _A.LIST): Scope.ALL,
    (UserRole.GYM, _R.REPORTS, _A.EXPORT): Scope.OWN,

    # Members: their own records only
    (UserRole.MEMBER, _R.GYMS, _A.LIST): Scope.ALL,
    (UserRole.MEMBER, _R.GYMS, _A.READ): Scope.ALL,
    (UserRole.MEMBER, _R.MEMBERS, _A.READ): Scope.OWN,
    (UserRole.MEMBER, _R.MEMBERS, _A.UPDATE): Scope.OWN,
    (UserRole.MEMBER, _R.CLASSES, _A.LIST): Scope.ALL,
    (UserRole.MEMBER, _R.CLASSES, _A.READ): Scope.ALL,
    (UserRole.MEMBER, _R.CLASSES, _A.ENROLL): Scope.OWN,
    (UserRole.MEMBER, _R.CLASSES, _A.LEAVE): Scope.OWN,
    (UserRole.MEMBER, _R.ATTENDANCE, _A.CHECK_IN): Scope.OWN,
    (UserRole.MEMBER, _R.ATTENDANCE, _A.CHECK_OUT): Scope.OWN,
    (UserRole.MEMBER, _R.ATTENDANCE, _A.READ): Scope.OWN,
    (UserRole.MEMBER, _R.PAYMENTS, _A.LIST): Scope.OWN,
    (UserRole.MEMBER, _R.PAYMENTS, _A.READ): Scope.OWN,
    (UserRole.MEMBER, _R.PAYMENTS, _A.PURCHASE): Scope.OWN,
    (UserRole.MEMBER, _R.TOKENS, _A.READ): Scope.OWN,
    (UserRole.MEMBER, _R.TOKENS, _A.LIST): Scope.OWN,
}


def resolve_scope(role: str, resource: str, action: str) -> Optional[Scope]:
    """Scope granted to `role` for (resource, action), or None if denied. Admins get ALL."""
    try:
        role = UserRole(role)
    except ValueError:
        return None
    if role == UserRole.ADMIN:
        return Scope.ALL
    return POLICY.get((role, resource, action))


def authorize(resource: str, action: str):
    """
    Dependency factory consulting the policy table once per request.

    Usage:
        @router.post("/attendance/checkin")
        async def check_in(current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.CHECK_IN))):
            ...

    The returned payload carries the granted scope under "scope".

    Raises:
        InsufficientPermissionsError 403 if the role has no grant
    """
    async def policy_checker(current_user: dict = Depends(get_current_user)) -> dict:
        scope = resolve_scope(current_user.get("role"), resource, action)
        if scope is None:
            raise InsufficientPermissionsError(
                "Not authorized to access this resource",
                details={"resource": resource, "action": action}
            )
        return {**current_user, "scope": scope}

    return policy_checker


class OwnershipGuard:
    """
    Ownership checks for OWN-scoped grants.

    Usage:
        member = await ownership_guard.enforce_member(db, current_user, member_id)
    """

    async def own_member(self, db: AsyncSession, current_user: dict) -> Member:
        result = await db.execute(select(Member).where(Member.user_id == current_user["user_id"]))
        member = result.scalar_one_or_none()
        if not member:
            raise InsufficientPermissionsError("No member profile for this account")
        return member

    async def own_gym(self, db: AsyncSession, current_user: dict) -> Gym:
        result = await db.execute(select(Gym).where(Gym.owner_id == current_user["user_id"]))
        gym = result.scalar_one_or_none()
        if not gym:
            raise InsufficientPermissionsError("No gym is registered to this account")
        return gym

    async def enforce_member(self, db: AsyncSession, current_user: dict, member_id: int) -> None:
        """Raise 403 if an OWN-scoped caller targets someone else's member record."""
        if current_user.get("scope") != Scope.OWN:
            return
        member = await self.own_member(db, current_user)
        if member.id != member_id:
            raise InsufficientPermissionsError(
                "Access denied. You can only access your own records.",
                details={"member_id": member_id}
            )

    async def enforce_gym(self, db: AsyncSession, current_user: dict, gym_id: int) -> None:
        if current_user.get("scope") != Scope.OWN:
            return
        gym = await self.own_gym(db, current_user)
        if gym.id != gym_id:
            raise InsufficientPermissionsError(
                "Access denied. You can only manage your own gym.",
                details={"gym_id": gym_id}
            )

    async def member_filter(self, db: AsyncSession, current_user: dict) -> Optional[int]:
        """
        Member id to filter list queries by.

        None for ALL scope (no filtering), the caller's own member id for OWN.
        """
        if current_user.get("scope") != Scope.OWN:
            return None
        return (await self.own_member(db, current_user)).id


ownership_guard = OwnershipGuard()

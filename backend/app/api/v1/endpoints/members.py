"""
Member profile endpoints.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from backend.app.db.session import get_db
from backend.app.models.gym import Gym
from backend.app.models.member import Member
from backend.app.models.user import User
from backend.app.schemas.common import DataResponse, ListResponse
from backend.app.schemas.member import MemberDetail, MemberProfileUpdate, MemberAdminUpdate
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError, InsufficientPermissionsError
from backend.app.core.guards import authorize, ownership_guard, Resource, Action, Scope
from backend.app.services.audit import log_admin_action, AuditAction
from backend.app.services.pagination import paginate

router = APIRouter(prefix="/members", tags=["Members"])

USER_FIELDS = ("name", "phone")


def _detail(member: Member, user: User) -> MemberDetail:
    profile = {
        field: getattr(member, field)
        for field in MemberDetail.model_fields
        if field not in ("name", "email", "phone")
    }
    return MemberDetail(name=user.name, email=user.email, phone=user.phone, **profile)


async def _load(db: AsyncSession, member_id: int):
    result = await db.execute(
        select(Member, User).join(User, User.id == Member.user_id).where(Member.id == member_id)
    )
    row = result.one_or_none()
    if row is None:
        raise ResourceNotFoundError("Member", member_id)
    return row


async def _apply_update(db: AsyncSession, member: Member, user: User, payload) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("gym_id") is not None:
        gym = await db.get(Gym, changes["gym_id"])
        if not gym or not gym.is_active:
            raise ResourceNotFoundError("Gym", changes["gym_id"])
    for field, value in changes.items():
        setattr(user if field in USER_FIELDS else member, field, value)
    return changes


@router.get("", response_model=ListResponse[MemberDetail])
async def list_members(
    search: Optional[str] = Query(None, description="Match name, email or membership number"),
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    gym_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(authorize(Resource.MEMBERS, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    query = select(Member).join(User, User.id == Member.user_id)
    if search:
        term = f"%{search}%"
        query = query.where(or_(
            User.name.ilike(term), User.email.ilike(term), Member.membership_number.ilike(term)
        ))
    if status:
        query = query.where(Member.is_active.is_(status == "active"))
    if gym_id is not None:
        query = query.where(Member.gym_id == gym_id)
    query = query.order_by(Member.created_at.desc(), Member.id.desc())

    result = await paginate(db, query, page, limit)
    users = {}
    if result.items:
        user_rows = await db.execute(
            select(User).where(User.id.in_([member.user_id for member in result.items]))
        )
        users = {user.id: user for user in user_rows.scalars().all()}
    return result.envelope([_detail(member, users[member.user_id]) for member in result.items])


@router.get("/profile", response_model=DataResponse[MemberDetail])
async def get_my_profile(
    current_user: dict = Depends(authorize(Resource.MEMBERS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    member = await ownership_guard.own_member(db, current_user)
    member, user = await _load(db, member.id)
    return DataResponse(data=_detail(member, user))


@router.put("/profile", response_model=DataResponse[MemberDetail])
async def update_my_profile(
    payload: MemberProfileUpdate,
    current_user: dict = Depends(authorize(Resource.MEMBERS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    own = await ownership_guard.own_member(db, current_user)
    member, user = await _load(db, own.id)
    await _apply_update(db, member, user, payload)
    await db.commit()
    return DataResponse(data=_detail(member, user))


@router.get("/{member_id}", response_model=DataResponse[MemberDetail])
async def get_member(
    member_id: int,
    current_user: dict = Depends(authorize(Resource.MEMBERS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    member, user = await _load(db, member_id)
    await ownership_guard.enforce_member(db, current_user, member_id)
    return DataResponse(data=_detail(member, user))


@router.put("/{member_id}", response_model=DataResponse[MemberDetail])
async def update_member(
    member_id: int,
    payload: MemberAdminUpdate,
    current_user: dict = Depends(authorize(Resource.MEMBERS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    if current_user["scope"] != Scope.ALL:
        raise InsufficientPermissionsError("Members update their own details through /members/profile")

    member, user = await _load(db, member_id)
    await ownership_guard.enforce_member(db, current_user, member_id)

    changes = await _apply_update(db, member, user, payload)
    await db.commit()

    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.MEMBER_UPDATED,
        target_user_id=user.id,
        target_email=user.email,
        metadata={"member_id": member_id, "fields": sorted(changes)}
    )
    return DataResponse(data=_detail(member, user))


async def _set_active(db: AsyncSession, member_id: int, active: bool, current_user: dict) -> MemberDetail:
    member, user = await _load(db, member_id)
    if member.is_active == active:
        state = "active" if active else "inactive"
        raise ValidationError(f"Member is already {state}", details={"member_id": member_id})

    member.is_active = active
    await db.commit()

    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.MEMBER_ACTIVATED if active else AuditAction.MEMBER_DEACTIVATED,
        target_user_id=user.id,
        target_email=user.email,
        metadata={"member_id": member_id}
    )
    return _detail(member, user)


@router.post("/{member_id}/activate", response_model=DataResponse[MemberDetail])
async def activate_member(
    member_id: int,
    current_user: dict = Depends(authorize(Resource.MEMBERS, Action.DEACTIVATE)),
    db: AsyncSession = Depends(get_db)
):
    return DataResponse(data=await _set_active(db, member_id, True, current_user))


@router.post("/{member_id}/deactivate", response_model=DataResponse[MemberDetail])
async def deactivate_member(
    member_id: int,
    current_user: dict = Depends(authorize(Resource.MEMBERS, Action.DEACTIVATE)),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete: the member keeps their balance and history but cannot check in."""
    return DataResponse(data=await _set_active(db, member_id, False, current_user))

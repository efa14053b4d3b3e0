"""
Gym management endpoints.

Admins create, update and deactivate gyms; a gym operator manages only the
gym registered to their account ("my gym").
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, case
from backend.app.db.session import get_db
from backend.app.models.gym import Gym
from backend.app.models.gym_class import GymClass
from backend.app.models.member import Member
from backend.app.models.attendance import Attendance
from backend.app.models.enums import UserRole
from backend.app.schemas.gym import GymCreate, GymUpdate, GymResponse, GymStats
from backend.app.schemas.common import DataResponse, ListResponse
from backend.app.core.datetime_utils import utcnow, start_of_day
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.core.guards import authorize, ownership_guard, Resource, Action
from backend.app.services.audit import log_admin_action, AuditAction
from backend.app.services.membership import create_user
from backend.app.services.pagination import paginate

router = APIRouter(prefix="/gyms", tags=["Gyms"])


async def _get_gym(db: AsyncSession, gym_id: int) -> Gym:
    gym = await db.get(Gym, gym_id)
    if not gym:
        raise ResourceNotFoundError("Gym", gym_id)
    return gym


def _apply_update(gym: Gym, payload: GymUpdate) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(gym, field, value)
    return changes


async def _gym_stats(db: AsyncSession, gym_id: int) -> GymStats:
    member_counts = await db.execute(
        select(
            func.count(Member.id),
            func.coalesce(func.sum(case((Member.is_active.is_(True), 1), else_=0)), 0),
        ).where(Member.gym_id == gym_id)
    )
    total_members, active_members = member_counts.one()

    class_counts = await db.execute(
        select(
            func.count(GymClass.id),
            func.coalesce(func.sum(case((GymClass.is_active.is_(True), 1), else_=0)), 0),
        ).where(GymClass.gym_id == gym_id)
    )
    total_classes, active_classes = class_counts.one()

    check_ins_today = (await db.execute(
        select(func.count(Attendance.id))
        .join(Member, Member.id == Attendance.member_id)
        .where(Member.gym_id == gym_id, Attendance.check_in >= start_of_day(utcnow()))
    )).scalar() or 0

    return GymStats(
        gym_id=gym_id,
        total_members=int(total_members),
        active_members=int(active_members),
        total_classes=int(total_classes),
        active_classes=int(active_classes),
        check_ins_today=int(check_ins_today),
    )


@router.post("", response_model=DataResponse[GymResponse], status_code=status.HTTP_201_CREATED)
async def create_gym(
    payload: GymCreate,
    current_user: dict = Depends(authorize(Resource.GYMS, Action.CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """Create a gym together with its GYM-role owner account (admin only)."""
    try:
        owner = await create_user(
            db,
            name=payload.owner_name,
            email=payload.owner_email,
            password=payload.owner_password,
            role=UserRole.GYM,
            phone=payload.phone,
        )
        gym = Gym(
            owner_id=owner.id,
            **payload.model_dump(exclude={"owner_name", "owner_email", "owner_password"}),
        )
        db.add(gym)
        await db.commit()
    except BaseException:
        await db.rollback()
        raise

    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.GYM_CREATED,
        target_user_id=owner.id,
        target_email=owner.email,
        metadata={"gym_id": gym.id, "name": gym.name}
    )

    return DataResponse(data=GymResponse.model_validate(gym))


@router.get("", response_model=ListResponse[GymResponse])
async def list_gyms(
    search: Optional[str] = Query(None, description="Match name, city or phone"),
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(authorize(Resource.GYMS, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    query = select(Gym)
    if search:
        term = f"%{search}%"
        query = query.where(or_(Gym.name.ilike(term), Gym.city.ilike(term), Gym.phone.ilike(term)))
    if not (include_inactive and current_user["role"] == UserRole.ADMIN.value):
        query = query.where(Gym.is_active.is_(True))
    query = query.order_by(Gym.name, Gym.id)

    result = await paginate(db, query, page, limit)
    return result.envelope([GymResponse.model_validate(gym) for gym in result.items])


@router.get("/my/gym", response_model=DataResponse[GymResponse])
async def get_my_gym(
    current_user: dict = Depends(authorize(Resource.GYMS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    """The gym registered to the calling operator."""
    gym = await ownership_guard.own_gym(db, current_user)
    return DataResponse(data=GymResponse.model_validate(gym))


@router.put("/my/gym", response_model=DataResponse[GymResponse])
async def update_my_gym(
    payload: GymUpdate,
    current_user: dict = Depends(authorize(Resource.GYMS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    gym = await ownership_guard.own_gym(db, current_user)
    changes = _apply_update(gym, payload)
    await db.commit()

    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.GYM_UPDATED,
        target_user_id=gym.owner_id,
        target_email=gym.email,
        metadata={"gym_id": gym.id, "fields": sorted(changes)}
    )
    return DataResponse(data=GymResponse.model_validate(gym))


@router.get("/my/gym/stats", response_model=DataResponse[GymStats])
async def get_my_gym_stats(
    current_user: dict = Depends(authorize(Resource.GYMS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    gym = await ownership_guard.own_gym(db, current_user)
    return DataResponse(data=await _gym_stats(db, gym.id))


@router.get("/{gym_id}", response_model=DataResponse[GymResponse])
async def get_gym(
    gym_id: int,
    current_user: dict = Depends(authorize(Resource.GYMS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    return DataResponse(data=GymResponse.model_validate(await _get_gym(db, gym_id)))


@router.get("/{gym_id}/stats", response_model=DataResponse[GymStats])
async def get_gym_stats(
    gym_id: int,
    current_user: dict = Depends(authorize(Resource.GYMS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    await _get_gym(db, gym_id)
    await ownership_guard.enforce_gym(db, current_user, gym_id)
    return DataResponse(data=await _gym_stats(db, gym_id))


@router.put("/{gym_id}", response_model=DataResponse[GymResponse])
async def update_gym(
    gym_id: int,
    payload: GymUpdate,
    current_user: dict = Depends(authorize(Resource.GYMS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    gym = await _get_gym(db, gym_id)
    await ownership_guard.enforce_gym(db, current_user, gym_id)

    changes = _apply_update(gym, payload)
    await db.commit()

    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.GYM_UPDATED,
        target_user_id=gym.owner_id,
        target_email=gym.email,
        metadata={"gym_id": gym.id, "fields": sorted(changes)}
    )
    return DataResponse(data=GymResponse.model_validate(gym))


@router.delete("/{gym_id}", response_model=DataResponse[GymResponse])
async def deactivate_gym(
    gym_id: int,
    current_user: dict = Depends(authorize(Resource.GYMS, Action.DEACTIVATE)),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete a gym (admin only)."""
    gym = await _get_gym(db, gym_id)
    if not gym.is_active:
        raise ValidationError("Gym is already inactive", details={"gym_id": gym_id})

    gym.is_active = False
    await db.commit()

    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.GYM_DEACTIVATED,
        target_user_id=gym.owner_id,
        target_email=gym.email,
        metadata={"gym_id": gym.id}
    )
    return DataResponse(data=GymResponse.model_validate(gym))

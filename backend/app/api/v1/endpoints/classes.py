"""
Class endpoints: schedule management and enrollment.

Enrolling is a check-in bound to a class: it claims a seat, opens an
attendance record and debits the class token cost in one transaction.
"""

from typing import Optional, List
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.app.db.session import get_db
from backend.app.models.gym import Gym
from backend.app.models.gym_class import GymClass
from backend.app.models.class_enums import WeekDay
from backend.app.models.user import User
from backend.app.schemas.common import DataResponse, ListResponse
from backend.app.schemas.gym_class import ClassCreate, ClassUpdate, ClassResponse, EnrollResponse, LeaveClassRequest
from backend.app.schemas.member import MemberResponse
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.core.guards import authorize, ownership_guard, Resource, Action, Scope
from backend.app.db.unit_of_work import atomic
from backend.app.domain.attendance.attendance_service import AttendanceService
from backend.app.services.audit import log_admin_action, log_event, AuditAction
from backend.app.services.member_locks import class_key
from backend.app.services.pagination import paginate

router = APIRouter(prefix="/classes", tags=["Classes"])


async def _get_class(db: AsyncSession, class_id: int) -> GymClass:
    gym_class = await db.get(GymClass, class_id)
    if not gym_class:
        raise ResourceNotFoundError("Class", class_id)
    return gym_class


async def _check_trainer(db: AsyncSession, trainer_id: Optional[int]) -> None:
    if trainer_id is not None and not await db.get(User, trainer_id):
        raise ResourceNotFoundError("Trainer", trainer_id)


@router.post("", response_model=DataResponse[ClassResponse], status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassCreate,
    current_user: dict = Depends(authorize(Resource.CLASSES, Action.CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """Schedule a class. Gym operators may only schedule classes at their own gym."""
    gym = await db.get(Gym, payload.gym_id)
    if not gym or not gym.is_active:
        raise ResourceNotFoundError("Gym", payload.gym_id)
    await ownership_guard.enforce_gym(db, current_user, gym.id)
    await _check_trainer(db, payload.trainer_id)

    gym_class = GymClass(**payload.model_dump(), current_enrollment=0, is_active=True)
    db.add(gym_class)
    await db.commit()

    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.CLASS_CREATED,
        target_user_id=gym.owner_id,
        target_email=gym.email,
        metadata={"class_id": gym_class.id, "name": gym_class.name}
    )
    return DataResponse(data=ClassResponse.model_validate(gym_class))


@router.get("", response_model=ListResponse[ClassResponse])
async def list_classes(
    gym_id: Optional[int] = Query(None),
    day: Optional[WeekDay] = Query(None),
    active: Optional[bool] = Query(True, description="Filter by active flag; omit value for active only"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(authorize(Resource.CLASSES, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    query = select(GymClass)
    if gym_id is not None:
        query = query.where(GymClass.gym_id == gym_id)
    if day is not None:
        query = query.where(GymClass.day == day)
    if active is not None:
        query = query.where(GymClass.is_active.is_(active))
    query = query.order_by(GymClass.day, GymClass.start_time, GymClass.id)

    result = await paginate(db, query, page, limit)
    return result.envelope([ClassResponse.model_validate(c) for c in result.items])


@router.get("/{class_id}", response_model=DataResponse[ClassResponse])
async def get_class(
    class_id: int,
    current_user: dict = Depends(authorize(Resource.CLASSES, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    return DataResponse(data=ClassResponse.model_validate(await _get_class(db, class_id)))


@router.put("/{class_id}", response_model=DataResponse[ClassResponse])
async def update_class(
    class_id: int,
    payload: ClassUpdate,
    current_user: dict = Depends(authorize(Resource.CLASSES, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    gym_class = await _get_class(db, class_id)
    await ownership_guard.enforce_gym(db, current_user, gym_class.gym_id)

    changes = payload.model_dump(exclude_unset=True)
    await _check_trainer(db, changes.get("trainer_id"))

    # Enrollment only moves under the class lock
    async with atomic(db, class_key(class_id), operation="update_class"):
        await db.refresh(gym_class, attribute_names=["current_enrollment"])
        if "max_capacity" in changes and changes["max_capacity"] < gym_class.current_enrollment:
            raise ValidationError(
                "max_capacity cannot be below current enrollment",
                details={"current_enrollment": gym_class.current_enrollment}
            )
        for field, value in changes.items():
            setattr(gym_class, field, value)

    await log_event(
        db=db,
        action=AuditAction.CLASS_UPDATED,
        actor_id=current_user["user_id"],
        actor_email=current_user["sub"],
        metadata={"class_id": class_id, "fields": sorted(changes)}
    )
    return DataResponse(data=ClassResponse.model_validate(gym_class))


@router.delete("/{class_id}", response_model=DataResponse[ClassResponse])
async def deactivate_class(
    class_id: int,
    current_user: dict = Depends(authorize(Resource.CLASSES, Action.DEACTIVATE)),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate a class (admin only). Rejected while members are enrolled."""
    gym_class = await _get_class(db, class_id)

    async with atomic(db, class_key(class_id), operation="deactivate_class"):
        await db.refresh(gym_class, attribute_names=["current_enrollment"])
        if gym_class.current_enrollment > 0:
            raise ValidationError(
                "Cannot deactivate a class with enrolled members",
                details={"current_enrollment": gym_class.current_enrollment}
            )
        gym_class.is_active = False

    await log_event(
        db=db,
        action=AuditAction.CLASS_DEACTIVATED,
        actor_id=current_user["user_id"],
        actor_email=current_user["sub"],
        metadata={"class_id": class_id}
    )
    return DataResponse(data=ClassResponse.model_validate(gym_class))


@router.post("/{class_id}/enroll", response_model=DataResponse[EnrollResponse], status_code=status.HTTP_201_CREATED)
async def enroll_in_class(
    class_id: int,
    current_user: dict = Depends(authorize(Resource.CLASSES, Action.ENROLL)),
    db: AsyncSession = Depends(get_db)
):
    """Enroll the calling member: claims a seat and debits the class token cost."""
    member = await ownership_guard.own_member(db, current_user)

    result = await AttendanceService.check_in(
        db, member_id=member.id, class_id=class_id, actor_id=current_user["user_id"]
    )
    gym_class = await _get_class(db, class_id)

    return DataResponse(data=EnrollResponse(
        attendance_id=result.attendance.id,
        class_id=class_id,
        current_enrollment=gym_class.current_enrollment,
        remaining_tokens=result.remaining_tokens,
    ))


@router.post("/{class_id}/leave", response_model=DataResponse[ClassResponse])
async def leave_class(
    class_id: int,
    payload: Optional[LeaveClassRequest] = None,
    current_user: dict = Depends(authorize(Resource.CLASSES, Action.LEAVE)),
    db: AsyncSession = Depends(get_db)
):
    """Release a seat. Tokens already spent are not returned."""
    if current_user["scope"] == Scope.OWN:
        member_id = (await ownership_guard.own_member(db, current_user)).id
    elif payload is None or payload.member_id is None:
        raise ValidationError("member_id is required")
    else:
        member_id = payload.member_id

    gym_class = await AttendanceService.leave_class(db, class_id=class_id, member_id=member_id)

    await log_event(
        db=db,
        action=AuditAction.CLASS_LEFT,
        actor_id=current_user["user_id"],
        actor_email=current_user["sub"],
        metadata={"class_id": class_id, "member_id": member_id}
    )
    return DataResponse(data=ClassResponse.model_validate(gym_class))


@router.get("/{class_id}/attendees", response_model=DataResponse[List[MemberResponse]])
async def get_class_attendees(
    class_id: int,
    current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    """Members currently holding a seat in the class."""
    members = await AttendanceService.class_participants(db, class_id)
    return DataResponse(data=[MemberResponse.model_validate(m) for m in members])

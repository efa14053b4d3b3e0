"""
Attendance Service (Domain Logic).

Check-in, check-out and class enrollment. A check-in opens an attendance record
and debits the member's tokens in the same transaction.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, List

from sqlalchemy import select, update, delete, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.datetime_utils import utcnow, start_of_day, end_of_day, minutes_between
from backend.app.core.exceptions import (
    ValidationError,
    ResourceNotFoundError,
    InsufficientPermissionsError,
    AlreadyCheckedInError,
    AlreadyCheckedOutError,
    AlreadyEnrolledError,
    InsufficientTokensError,
    ClassFullError,
)
from backend.app.db.unit_of_work import atomic
from backend.app.domain.tokens.ledger_service import TokenLedgerService
from backend.app.domain.tokens.related import RelatedDocument
from backend.app.models.attendance import Attendance
from backend.app.models.class_enums import AttendanceStatus
from backend.app.models.gym_class import GymClass, ClassParticipant
from backend.app.models.member import Member
from backend.app.models.token_enums import TransactionType
from backend.app.services.member_locks import member_key, class_key
from backend.app.services.pagination import Page, paginate

logger = logging.getLogger("gym.attendance")


@dataclass
class CheckInResult:
    attendance: Attendance
    remaining_tokens: int


class AttendanceService:

    @staticmethod
    async def _open_attendance(db: AsyncSession, member_id: int) -> Optional[Attendance]:
        result = await db.execute(
            select(Attendance).where(
                Attendance.member_id == member_id,
                Attendance.check_out.is_(None)
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _load_class(db: AsyncSession, class_id: int) -> GymClass:
        gym_class = await db.get(GymClass, class_id, populate_existing=True)
        if not gym_class:
            raise ResourceNotFoundError("Class", class_id)
        if not gym_class.is_active:
            raise ValidationError("Class is not active", details={"class_id": class_id})
        return gym_class

    @staticmethod
    async def _claim_seat(db: AsyncSession, gym_class: GymClass, member_id: int) -> None:
        """Increment enrollment only while below capacity, then add the participant row."""
        result = await db.execute(
            update(GymClass)
            .where(
                GymClass.id == gym_class.id,
                GymClass.current_enrollment < GymClass.max_capacity
            )
            .values(current_enrollment=GymClass.current_enrollment + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ClassFullError(gym_class.id, gym_class.max_capacity)

        db.add(ClassParticipant(class_id=gym_class.id, member_id=member_id))
        await db.flush()
        await db.refresh(gym_class, attribute_names=["current_enrollment"])

    @staticmethod
    async def check_in(
        db: AsyncSession,
        member_id: int,
        class_id: Optional[int] = None,
        actor_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> CheckInResult:
        """
        Check a member in, optionally into a class.

        Checks run in this order, all before any write:
            1. member exists and is active
            2. class exists and is active (cost = class token_cost, else the flat check-in cost)
            3. no open attendance for the member
            4. enough tokens
            5. class has a free seat and the member is not already a participant

        Then, in one transaction: attendance row, seat claim, ledger debit
        and member visit counters.
        """
        keys = [member_key(member_id)]
        if class_id is not None:
            keys.append(class_key(class_id))

        async with atomic(db, *keys, operation="check_in"):
            member = await TokenLedgerService.lock_member(db, member_id)
            if not member.is_active:
                raise InsufficientPermissionsError(
                    "Member account is inactive", details={"member_id": member_id}
                )

            gym_class = None
            cost = settings.checkin_token_cost
            if class_id is not None:
                gym_class = await AttendanceService._load_class(db, class_id)
                cost = gym_class.token_cost

            open_attendance = await AttendanceService._open_attendance(db, member_id)
            if open_attendance:
                raise AlreadyCheckedInError(member_id, open_attendance.id)

            if member.token_balance < cost:
                raise InsufficientTokensError(balance=member.token_balance, requested=cost)

            if gym_class is not None:
                if not gym_class.has_available_spots():
                    raise ClassFullError(gym_class.id, gym_class.max_capacity)
                enrolled = await db.execute(
                    select(ClassParticipant.id).where(
                        ClassParticipant.class_id == gym_class.id,
                        ClassParticipant.member_id == member_id
                    )
                )
                if enrolled.scalar_one_or_none() is not None:
                    raise AlreadyEnrolledError(member_id, gym_class.id)

            now = utcnow()
            attendance = Attendance(
                member_id=member_id,
                class_id=class_id,
                check_in=now,
                status=AttendanceStatus.PRESENT,
                token_used=cost,
                notes=notes,
                recorded_by_id=actor_id,
            )
            db.add(attendance)
            await db.flush()

            if gym_class is not None:
                await AttendanceService._claim_seat(db, gym_class, member_id)

            # Free classes open attendance without a ledger entry
            if cost > 0:
                description = f"Class attendance: {gym_class.name}" if gym_class else "Gym check-in"
                await TokenLedgerService.post_entry(
                    db,
                    member_id=member_id,
                    type_=TransactionType.DEBIT,
                    amount=cost,
                    description=description,
                    actor_id=actor_id,
                    related=RelatedDocument.attendance(attendance.id),
                    reference=f"CHECKIN-{attendance.id}",
                    insufficient_error=InsufficientTokensError,
                )

            member.last_check_in = now
            member.check_in_count = (member.check_in_count or 0) + 1
            await db.flush()

            remaining = member.token_balance

        logger.info(
            "Member %d checked in (attendance=%d, class=%s, cost=%d, remaining=%d)",
            member_id, attendance.id, class_id, cost, remaining
        )
        return CheckInResult(attendance=attendance, remaining_tokens=remaining)

    @staticmethod
    async def check_out(db: AsyncSession, attendance_id: int) -> Attendance:
        """Close an open attendance record. Duration is stored in whole minutes, rounded half-up."""
        attendance = await db.get(Attendance, attendance_id)
        if not attendance:
            raise ResourceNotFoundError("Attendance record", attendance_id)

        async with atomic(db, member_key(attendance.member_id), operation="check_out"):
            await db.refresh(attendance)
            if attendance.check_out is not None:
                raise AlreadyCheckedOutError(attendance_id)

            attendance.check_out = utcnow()
            attendance.duration_minutes = minutes_between(attendance.check_in, attendance.check_out)
            await db.flush()

        logger.info("Attendance %d closed after %d minutes", attendance.id, attendance.duration_minutes)
        return attendance

    @staticmethod
    async def leave_class(db: AsyncSession, class_id: int, member_id: int) -> GymClass:
        """Remove a participant and release the seat. Tokens are not returned."""
        async with atomic(db, member_key(member_id), class_key(class_id), operation="leave_class"):
            gym_class = await db.get(GymClass, class_id, populate_existing=True)
            if not gym_class:
                raise ResourceNotFoundError("Class", class_id)

            result = await db.execute(
                delete(ClassParticipant).where(
                    ClassParticipant.class_id == class_id,
                    ClassParticipant.member_id == member_id
                )
            )
            if result.rowcount == 0:
                raise ValidationError(
                    "Member is not enrolled in this class",
                    details={"class_id": class_id, "member_id": member_id}
                )

            await db.execute(
                update(GymClass)
                .where(GymClass.id == class_id, GymClass.current_enrollment > 0)
                .values(current_enrollment=GymClass.current_enrollment - 1)
                .execution_options(synchronize_session=False)
            )
            await db.refresh(gym_class, attribute_names=["current_enrollment"])

        logger.info("Member %d left class %d", member_id, class_id)
        return gym_class

    @staticmethod
    async def get_attendance(db: AsyncSession, attendance_id: int) -> Attendance:
        attendance = await db.get(Attendance, attendance_id)
        if not attendance:
            raise ResourceNotFoundError("Attendance record", attendance_id)
        return attendance

    @staticmethod
    async def member_history(
        db: AsyncSession,
        member_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        query = select(Attendance).where(Attendance.member_id == member_id)
        if start_date:
            query = query.where(Attendance.check_in >= start_of_day(start_date))
        if end_date:
            query = query.where(Attendance.check_in <= end_of_day(end_date))
        query = query.order_by(desc(Attendance.check_in), desc(Attendance.id))
        return await paginate(db, query, page, limit)

    @staticmethod
    async def class_attendance(
        db: AsyncSession,
        class_id: int,
        on_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        query = select(Attendance).where(Attendance.class_id == class_id)
        if on_date:
            query = query.where(
                Attendance.check_in >= start_of_day(on_date),
                Attendance.check_in <= end_of_day(on_date)
            )
        query = query.order_by(desc(Attendance.check_in), desc(Attendance.id))
        return await paginate(db, query, page, limit)

    @staticmethod
    async def class_participants(db: AsyncSession, class_id: int) -> List[Member]:
        gym_class = await db.get(GymClass, class_id)
        if not gym_class:
            raise ResourceNotFoundError("Class", class_id)

        result = await db.execute(
            select(Member)
            .join(ClassParticipant, ClassParticipant.member_id == Member.id)
            .where(ClassParticipant.class_id == class_id)
            .order_by(ClassParticipant.joined_at, ClassParticipant.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def active_check_ins(db: AsyncSession, member_ids: Optional[List[int]] = None) -> List[Attendance]:
        query = select(Attendance).where(Attendance.check_out.is_(None))
        if member_ids is not None:
            query = query.where(Attendance.member_id.in_(member_ids))
        result = await db.execute(query.order_by(desc(Attendance.check_in)))
        return list(result.scalars().all())

    @staticmethod
    async def member_stats(
        db: AsyncSession,
        member_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """Visit count, hours and tokens spent for one member (hours rounded to 1 decimal)."""
        query = select(
            func.count(Attendance.id),
            func.coalesce(func.sum(Attendance.duration_minutes), 0),
            func.coalesce(func.sum(Attendance.token_used), 0),
        ).where(Attendance.member_id == member_id)
        if start_date:
            query = query.where(Attendance.check_in >= start_of_day(start_date))
        if end_date:
            query = query.where(Attendance.check_in <= end_of_day(end_date))

        visits, minutes, tokens = (await db.execute(query)).one()
        total_hours = int(minutes) / 60
        return {
            "total_visits": int(visits),
            "total_hours": round(total_hours, 1),
            "tokens_spent": int(tokens),
            "average_visit_hours": round(total_hours / visits, 1) if visits else 0,
        }

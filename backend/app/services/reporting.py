"""
Read-only reporting: data exports and the admin dashboard.
"""

import csv
import io
import logging
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select, func, or_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.datetime_utils import start_of_day, end_of_day
from backend.app.core.exceptions import ValidationError
from backend.app.domain.tokens.related import RelatedDocument, describe
from backend.app.models.attendance import Attendance
from backend.app.models.gym import Gym
from backend.app.models.gym_class import GymClass
from backend.app.models.member import Member
from backend.app.models.token_transaction import TokenTransaction
from backend.app.models.user import User

logger = logging.getLogger("gym.reports")

EXPORT_TYPES = ("members", "gyms", "attendance", "classes", "transactions")
EXPORT_FORMATS = ("json", "csv")

EXPORT_COLUMNS: Dict[str, List[str]] = {
    "members": [
        "id", "membership_number", "name", "email", "phone", "token_balance",
        "is_active", "gym_id", "check_in_count", "last_check_in", "created_at",
    ],
    "gyms": [
        "id", "name", "email", "phone", "address", "owner_id", "is_active", "created_at",
    ],
    "attendance": [
        "id", "member_id", "membership_number", "class_id", "check_in", "check_out",
        "duration_minutes", "status", "token_used",
    ],
    "classes": [
        "id", "gym_id", "name", "day", "start_time", "duration_minutes",
        "max_capacity", "current_enrollment", "token_cost", "is_active",
    ],
    "transactions": [
        "id", "member_id", "type", "amount", "description", "reference",
        "related", "created_by_id", "created_at",
    ],
}


def _fmt(value):
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


def _date_range(query, column, start_date: Optional[date], end_date: Optional[date]):
    if start_date:
        query = query.where(column >= start_of_day(start_date))
    if end_date:
        query = query.where(column <= end_of_day(end_date))
    return query


def _active_filter(query, column, status: Optional[str]):
    if status:
        query = query.where(column == (status == "active"))
    return query


async def _member_rows(db, search, status, start_date, end_date, gym_id):
    query = select(Member, User).join(User, User.id == Member.user_id)
    if search:
        term = f"%{search}%"
        query = query.where(or_(
            User.name.ilike(term), User.email.ilike(term), Member.membership_number.ilike(term)
        ))
    if gym_id is not None:
        query = query.where(Member.gym_id == gym_id)
    query = _active_filter(query, Member.is_active, status)
    query = _date_range(query, Member.created_at, start_date, end_date)

    result = await db.execute(query.order_by(Member.id))
    return [
        {
            "id": member.id,
            "membership_number": member.membership_number,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "token_balance": member.token_balance,
            "is_active": member.is_active,
            "gym_id": member.gym_id,
            "check_in_count": member.check_in_count,
            "last_check_in": _fmt(member.last_check_in),
            "created_at": _fmt(member.created_at),
        }
        for member, user in result.all()
    ]


async def _gym_rows(db, search, status, start_date, end_date, gym_id):
    query = select(Gym)
    if search:
        term = f"%{search}%"
        query = query.where(or_(Gym.name.ilike(term), Gym.city.ilike(term), Gym.phone.ilike(term)))
    if gym_id is not None:
        query = query.where(Gym.id == gym_id)
    query = _active_filter(query, Gym.is_active, status)
    query = _date_range(query, Gym.created_at, start_date, end_date)

    result = await db.execute(query.order_by(Gym.id))
    return [
        {
            "id": gym.id,
            "name": gym.name,
            "email": gym.email,
            "phone": gym.phone,
            "address": gym.full_address,
            "owner_id": gym.owner_id,
            "is_active": gym.is_active,
            "created_at": _fmt(gym.created_at),
        }
        for gym in result.scalars().all()
    ]


async def _attendance_rows(db, search, status, start_date, end_date, gym_id):
    query = select(Attendance, Member.membership_number).join(Member, Member.id == Attendance.member_id)
    if search:
        query = query.where(Member.membership_number.ilike(f"%{search}%"))
    if gym_id is not None:
        query = query.where(Member.gym_id == gym_id)
    query = _date_range(query, Attendance.check_in, start_date, end_date)

    result = await db.execute(query.order_by(desc(Attendance.check_in), desc(Attendance.id)))
    return [
        {
            "id": attendance.id,
            "member_id": attendance.member_id,
            "membership_number": membership_number,
            "class_id": attendance.class_id,
            "check_in": _fmt(attendance.check_in),
            "check_out": _fmt(attendance.check_out),
            "duration_minutes": attendance.duration,
            "status": _fmt(attendance.status),
            "token_used": attendance.token_used,
        }
        for attendance, membership_number in result.all()
    ]


async def _class_rows(db, search, status, start_date, end_date, gym_id):
    query = select(GymClass)
    if search:
        query = query.where(GymClass.name.ilike(f"%{search}%"))
    if gym_id is not None:
        query = query.where(GymClass.gym_id == gym_id)
    query = _active_filter(query, GymClass.is_active, status)
    query = _date_range(query, GymClass.created_at, start_date, end_date)

    result = await db.execute(query.order_by(GymClass.id))
    return [
        {
            "id": gym_class.id,
            "gym_id": gym_class.gym_id,
            "name": gym_class.name,
            "day": _fmt(gym_class.day),
            "start_time": gym_class.start_time,
            "duration_minutes": gym_class.duration_minutes,
            "max_capacity": gym_class.max_capacity,
            "current_enrollment": gym_class.current_enrollment,
            "token_cost": gym_class.token_cost,
            "is_active": gym_class.is_active,
        }
        for gym_class in result.scalars().all()
    ]


async def _transaction_rows(db, search, status, start_date, end_date, gym_id):
    query = select(TokenTransaction)
    if search:
        term = f"%{search}%"
        query = query.where(or_(TokenTransaction.description.ilike(term), TokenTransaction.reference.ilike(term)))
    if gym_id is not None:
        query = query.join(Member, Member.id == TokenTransaction.member_id).where(Member.gym_id == gym_id)
    query = _date_range(query, TokenTransaction.created_at, start_date, end_date)

    result = await db.execute(query.order_by(desc(TokenTransaction.created_at), desc(TokenTransaction.id)))
    return [
        {
            "id": txn.id,
            "member_id": txn.member_id,
            "type": _fmt(txn.type),
            "amount": txn.amount,
            "description": txn.description,
            "reference": txn.reference,
            "related": describe(RelatedDocument.from_row(txn)),
            "created_by_id": txn.created_by_id,
            "created_at": _fmt(txn.created_at),
        }
        for txn in result.scalars().all()
    ]


_ROW_BUILDERS = {
    "members": _member_rows,
    "gyms": _gym_rows,
    "attendance": _attendance_rows,
    "classes": _class_rows,
    "transactions": _transaction_rows,
}


async def export_rows(
    db: AsyncSession,
    export_type: str,
    search: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    gym_id: Optional[int] = None,
) -> List[dict]:
    """
    Rows for one export type.

    gym_id narrows every export to a single gym (used for gym operators).
    """
    if export_type not in EXPORT_TYPES:
        raise ValidationError(
            f"Invalid export type. Must be one of: {', '.join(EXPORT_TYPES)}",
            details={"type": export_type}
        )
    if status and status not in ("active", "inactive"):
        raise ValidationError("status must be 'active' or 'inactive'", details={"status": status})

    rows = await _ROW_BUILDERS[export_type](db, search, status, start_date, end_date, gym_id)
    logger.info("Exported %d %s rows", len(rows), export_type)
    return rows


def write_csv(export_type: str, rows: List[dict]) -> bytes:
    """Encode rows as CSV with a header line (UTF-8 with BOM for spreadsheet apps)."""
    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=EXPORT_COLUMNS[export_type], extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return out.getvalue().encode("utf-8-sig")


async def dashboard_stats(db: AsyncSession) -> dict:
    total_members = (await db.execute(select(func.count(Member.id)))).scalar() or 0
    active_members = (
        await db.execute(select(func.count(Member.id)).where(Member.is_active.is_(True)))
    ).scalar() or 0
    total_gyms = (await db.execute(select(func.count(Gym.id)))).scalar() or 0
    active_check_ins = (
        await db.execute(select(func.count(Attendance.id)).where(Attendance.check_out.is_(None)))
    ).scalar() or 0

    usage_result = await db.execute(
        select(TokenTransaction.type, func.count(TokenTransaction.id), func.sum(TokenTransaction.amount))
        .group_by(TokenTransaction.type)
    )
    token_usage = {
        txn_type.value: {"count": int(count), "total_amount": int(total or 0)}
        for txn_type, count, total in usage_result.all()
    }

    recent_result = await db.execute(
        select(TokenTransaction)
        .order_by(desc(TokenTransaction.created_at), desc(TokenTransaction.id))
        .limit(5)
    )
    recent = [
        {
            "id": txn.id,
            "member_id": txn.member_id,
            "type": txn.type.value,
            "amount": txn.amount,
            "description": txn.description,
            "created_at": txn.created_at,
        }
        for txn in recent_result.scalars().all()
    ]

    return {
        "total_members": total_members,
        "active_members": active_members,
        "total_gyms": total_gyms,
        "active_check_ins": active_check_ins,
        "token_usage": token_usage,
        "recent_transactions": recent,
    }

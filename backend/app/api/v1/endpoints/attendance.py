"""
Attendance endpoints: check-in, check-out and visit history.
"""

from datetime import date
from typing import Optional, List
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.schemas.attendance import (
    CheckInRequest, CheckInResponse, CheckOutResponse, AttendanceResponse, AttendanceStats
)
from backend.app.schemas.common import DataResponse, ListResponse
from backend.app.core.guards import authorize, ownership_guard, Resource, Action
from backend.app.domain.attendance.attendance_service import AttendanceService

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("/checkin", response_model=DataResponse[CheckInResponse], status_code=status.HTTP_201_CREATED)
async def check_in(
    payload: CheckInRequest,
    current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.CHECK_IN)),
    db: AsyncSession = Depends(get_db)
):
    """
    Check a member in, optionally into a class.

    Debits the class token cost (or the flat check-in cost) in the same
    transaction that opens the attendance record.
    """
    await ownership_guard.enforce_member(db, current_user, payload.member_id)

    result = await AttendanceService.check_in(
        db,
        member_id=payload.member_id,
        class_id=payload.class_id,
        actor_id=current_user["user_id"],
        notes=payload.notes,
    )
    return DataResponse(data=CheckInResponse(
        attendance_id=result.attendance.id,
        remaining_tokens=result.remaining_tokens,
    ))


@router.post("/checkout/{attendance_id}", response_model=DataResponse[CheckOutResponse])
async def check_out(
    attendance_id: int,
    current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.CHECK_OUT)),
    db: AsyncSession = Depends(get_db)
):
    """Close an open visit. No tokens move on check-out."""
    attendance = await AttendanceService.get_attendance(db, attendance_id)
    await ownership_guard.enforce_member(db, current_user, attendance.member_id)

    attendance = await AttendanceService.check_out(db, attendance_id)
    return DataResponse(data=CheckOutResponse(
        attendance_id=attendance.id,
        check_in=attendance.check_in,
        check_out=attendance.check_out,
        duration=attendance.duration_minutes,
    ))


@router.get("/active", response_model=DataResponse[List[AttendanceResponse]])
async def active_check_ins(
    current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    """Everyone currently checked in."""
    records = await AttendanceService.active_check_ins(db)
    return DataResponse(data=[AttendanceResponse.model_validate(r) for r in records])


@router.get("/member/{member_id}", response_model=ListResponse[AttendanceResponse])
async def member_attendance(
    member_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None, description="Inclusive"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    await ownership_guard.enforce_member(db, current_user, member_id)
    result = await AttendanceService.member_history(db, member_id, start_date, end_date, page, limit)
    return result.envelope([AttendanceResponse.model_validate(r) for r in result.items])


@router.get("/class/{class_id}", response_model=ListResponse[AttendanceResponse])
async def class_attendance(
    class_id: int,
    on_date: Optional[date] = Query(None, alias="date"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    result = await AttendanceService.class_attendance(db, class_id, on_date, page, limit)
    return result.envelope([AttendanceResponse.model_validate(r) for r in result.items])


@router.get("/stats/{member_id}", response_model=DataResponse[AttendanceStats])
async def attendance_stats(
    member_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: dict = Depends(authorize(Resource.ATTENDANCE, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    await ownership_guard.enforce_member(db, current_user, member_id)
    stats = await AttendanceService.member_stats(db, member_id, start_date, end_date)
    return DataResponse(data=AttendanceStats(**stats))

"""
Report export endpoints.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.core.datetime_utils import utcnow
from backend.app.core.exceptions import ValidationError
from backend.app.core.guards import authorize, ownership_guard, Resource, Action, Scope
from backend.app.services.reporting import EXPORT_FORMATS, export_rows, write_csv

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/export/{export_type}/{export_format}")
async def export_data(
    export_type: str,
    export_format: str,
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="active or inactive"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    gym_id: Optional[int] = Query(None),
    current_user: dict = Depends(authorize(Resource.REPORTS, Action.EXPORT)),
    db: AsyncSession = Depends(get_db)
):
    """
    Export members, gyms, attendance, classes or transactions as JSON or CSV.

    Gym operators only ever export rows belonging to their own gym.
    """
    if export_format not in EXPORT_FORMATS:
        raise ValidationError(
            f"Invalid export format. Must be one of: {', '.join(EXPORT_FORMATS)}",
            details={"format": export_format}
        )
    if current_user["scope"] == Scope.OWN:
        gym_id = (await ownership_guard.own_gym(db, current_user)).id

    rows = await export_rows(
        db,
        export_type,
        search=search,
        status=status,
        start_date=start_date,
        end_date=end_date,
        gym_id=gym_id,
    )

    if export_format == "csv":
        filename = f"{export_type}_{utcnow():%Y%m%d_%H%M%S}.csv"
        return Response(
            content=write_csv(export_type, rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return {
        "success": True,
        "count": len(rows),
        "total": len(rows),
        "page": 1,
        "pages": 1 if rows else 0,
        "data": rows,
    }

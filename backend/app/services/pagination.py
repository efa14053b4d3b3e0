"""
Pagination helper shared by every list endpoint.
"""

import math
from dataclasses import dataclass
from typing import Any, List

from sqlalchemy import Select, select, func
from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def envelope(self, data: List[Any]) -> dict:
        """Standard list response body."""
        return {
            "success": True,
            "count": len(data),
            "total": self.total,
            "page": self.page,
            "pages": self.pages,
            "data": data,
        }


async def paginate(db: AsyncSession, query: Select, page: int = 1, limit: int = 10) -> Page:
    """
    Execute `query` for one page and count the full result set.

    `query` must already carry its ORDER BY.
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    return Page(items=list(result.scalars().all()), total=total, page=page, limit=limit)

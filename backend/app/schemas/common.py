"""
Response envelopes shared by every endpoint.

    single:  {"success": true, "data": {...}}
    list:    {"success": true, "count", "total", "page", "pages", "data": [...]}
"""

from pydantic import BaseModel
from typing import Generic, List, TypeVar, Optional

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ListResponse(BaseModel, Generic[T]):
    success: bool = True
    count: int
    total: int
    page: int
    pages: int
    data: List[T]


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    audit_log_id: Optional[int] = None

"""Common Pydantic schemas used across the API."""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination metadata included in list responses."""

    page: int = 1
    limit: int = 20
    total: int = 0
    total_pages: int = 0


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response envelope: {success, data|error, message?}."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None
    meta: Optional[PaginationMeta] = None


def error_envelope(error: str, message: Optional[str] = None, **extra: Any) -> dict:
    """JSON body for a failed request."""
    body = {"success": False, "error": error}
    if message:
        body["message"] = message
    body.update(extra)
    return body

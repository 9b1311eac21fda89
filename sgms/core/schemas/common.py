"""
Standard JSON envelope shared by every endpoint.

Success: ``{"success": true, "message": ..., "data": ..., "timestamp": ...}``
Failure: ``{"success": false, "message": ..., "error": {...}, "timestamp": ...}``
"""

from datetime import datetime, timezone
import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorBody(BaseModel):
    code: str
    details: Any | None = None
    stack: list[str] | None = None


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope. ``data`` carries the endpoint payload."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "message": "Operation completed successfully",
                "data": None,
                "timestamp": "2025-01-01T00:00:00+00:00",
            }
        }
    )

    success: bool = True
    message: str = "Success"
    data: T | None = None
    timestamp: str = Field(default_factory=utc_timestamp)


class ErrorResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "message": "Authentication failed.",
                "error": {"code": "UNAUTHORIZED"},
                "timestamp": "2025-01-01T00:00:00+00:00",
            }
        }
    )

    success: bool = False
    message: str
    error: ErrorBody
    timestamp: str = Field(default_factory=utc_timestamp)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class PaginatedData(BaseModel, Generic[T]):
    items: list[T]
    pagination: Pagination


def success_response(data: Any = None, message: str = "Success") -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data)


def paginated_response(
    items: list[Any],
    page: int,
    limit: int,
    total: int,
    message: str = "Success",
) -> ApiResponse:
    return ApiResponse(
        success=True,
        message=message,
        data=PaginatedData(
            items=items, pagination=Pagination.build(page, limit, total)
        ),
    )


def error_payload(
    message: str,
    code: str,
    details: Any | None = None,
    stack: list[str] | None = None,
) -> dict[str, Any]:
    """Build the JSON-ready failure envelope used by the exception handlers."""
    return ErrorResponse(
        message=message,
        error=ErrorBody(code=code, details=details, stack=stack),
    ).model_dump(mode="json", exclude_none=True)


__all__ = [
    "ApiResponse",
    "ErrorBody",
    "ErrorResponse",
    "Pagination",
    "PaginatedData",
    "success_response",
    "paginated_response",
    "error_payload",
    "utc_timestamp",
]

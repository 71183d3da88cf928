"""
Response Envelope

All endpoints return a tagged body: `{success, data, message, warnings}` on
success, `{success: false, error, message, details}` on failure.
"""

import logging
from typing import Generic, NoReturn, TypeVar

from fastapi import HTTPException
from pydantic import BaseModel, Field

from scholarship_aid.core.exceptions import ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope."""

    success: bool = True
    data: T | None = None
    message: str | None = None
    warnings: list[str] = Field(default_factory=list)


def ok(data=None, message: str | None = None, warnings: list[str] | None = None) -> dict:
    """Build a success envelope."""
    return {
        "success": True,
        "data": data,
        "message": message,
        "warnings": warnings or [],
    }


def raise_http_error(e: ServiceError) -> NoReturn:
    """Convert a service error to an HTTPException with the error envelope."""
    raise HTTPException(status_code=e.status_code, detail=e.to_dict()) from e

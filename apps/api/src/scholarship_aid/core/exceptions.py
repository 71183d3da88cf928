"""
Service Error Taxonomy

Every service-layer failure is a ServiceError carrying a machine-readable
error code and the HTTP status the routers translate it to.

- ValidationError: malformed or missing input, no state change
- StateGuardError: operation not permitted from the current state
- NotFoundError: referenced entity absent (or outside the caller's scope)
- ConflictError: duplicate or idempotent no-op
- DependencyError: a best-effort downstream step failed; never rolls back
  the primary operation and is surfaced as a warning
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, status_code=422, details=details)


class StateGuardError(ServiceError):
    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_STATE",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, status_code=409, details=details)


class NotFoundError(ServiceError):
    def __init__(
        self,
        message: str,
        error_code: str = "NOT_FOUND",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, status_code=404, details=details)


class ConflictError(ServiceError):
    def __init__(
        self,
        message: str,
        error_code: str = "CONFLICT",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, status_code=409, details=details)


class DependencyError(ServiceError):
    def __init__(
        self,
        message: str,
        error_code: str = "DEPENDENCY_FAILED",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, status_code=502, details=details)

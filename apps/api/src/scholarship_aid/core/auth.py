"""
Authentication and Authorization Module

Provides the authorization context threaded into every service call.
Identity (caller id, role, citizen id) comes from JWT claims issued by the
identity provider. School representatives are additionally resolved to their
assigned school; that assignment is applied purely as a query filter via
`school_scope`, never as a per-operation exception.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import false, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from scholarship_aid.core.config import settings
from scholarship_aid.core.database import get_db
from scholarship_aid.core.security import decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


class Role:
    """Role names as issued by the identity provider."""

    ADMIN = "admin"
    FINANCE = "finance"
    INTERVIEWER = "interviewer"
    REVIEWER = "reviewer"
    SCHOOL_REP = "ps_rep"


STAFF_ROLES = frozenset({Role.ADMIN, Role.FINANCE, Role.INTERVIEWER, Role.REVIEWER})
SCHOOL_SCOPED_ROLES = frozenset({Role.SCHOOL_REP})


@dataclass
class AuthContext:
    """
    Authenticated caller, as seen by the service layer.

    Attributes:
        user_id: Caller's unique identifier (JWT `sub`)
        role: Caller's role
        name: Display name, used as the actor label in audit rows
        citizen_id: Citizen identifier (school representatives only)
        school_id: Assigned school, resolved for school representatives
    """

    user_id: UUID
    role: str
    name: str | None = None
    citizen_id: str | None = None
    school_id: UUID | None = None

    @property
    def is_school_scoped(self) -> bool:
        return self.role in SCHOOL_SCOPED_ROLES

    @property
    def actor_label(self) -> str:
        return self.name or str(self.user_id)

    def can_access_school(self, school_id: UUID | None) -> bool:
        if not self.is_school_scoped:
            return True
        return self.school_id is not None and school_id == self.school_id

    def __str__(self) -> str:
        return f"AuthContext(user_id={self.user_id}, role={self.role})"


def school_scope(ctx: AuthContext, school_column) -> ColumnElement[bool]:
    """
    Build the row filter for a caller.

    Unscoped roles see everything. A school representative sees only rows of
    their assigned school, and nothing at all when no assignment is found.
    """
    if not ctx.is_school_scoped:
        return true()
    if ctx.school_id is None:
        return false()
    return school_column == ctx.school_id


def system_context(name: str | None = None) -> AuthContext:
    """Context for scheduler jobs and other non-request callers."""
    return AuthContext(
        user_id=UUID("00000000-0000-0000-0000-000000000000"),
        role=Role.ADMIN,
        name=name or "system",
    )


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    Requires settings.is_development, not settings.is_production, and a
    PYTHON_ENV environment variable that is neither production nor staging.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var != "production"
        and env_var != "staging"
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_ADMIN = AuthContext(
    user_id=UUID("00000000-0000-0000-0000-000000000001"),
    role=Role.ADMIN,
    name="Development Admin",
)


def _invalid_token(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"success": False, "error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> AuthContext:
    """
    Validate a JWT and extract caller claims.

    Raises:
        HTTPException 401: If token is invalid, expired, or has bad claims
    """
    if _DEVELOPMENT_MODE and token in ["dev-token", "test-token"]:
        logger.debug("Development mode: Using test token")
        return _DEV_ADMIN

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _invalid_token("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _invalid_token("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return AuthContext(
            user_id=UUID(user_id_str),
            role=payload.get("role", ""),
            name=payload.get("name"),
            citizen_id=payload.get("citizen_id"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _invalid_token(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """
    FastAPI dependency returning the caller's authorization context.

    School representatives are resolved from citizen id to their assigned
    school. An unresolved representative keeps `school_id=None`, which
    `school_scope` turns into an always-false filter.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the role is not recognised
    """
    from scholarship_aid.modules.schools.repository import SchoolRepository

    ctx = await _validate_jwt_token(credentials.credentials)

    if ctx.role not in STAFF_ROLES and ctx.role not in SCHOOL_SCOPED_ROLES:
        logger.warning(f"Access denied: user {ctx.user_id} has unrecognised role '{ctx.role}'")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "success": False,
                "error": "ACCESS_DENIED",
                "message": "Your role does not grant access to the aid administration API.",
            },
        )

    if ctx.is_school_scoped:
        if ctx.citizen_id:
            ctx.school_id = await SchoolRepository.get_assigned_school_id(db, ctx.citizen_id)
        if ctx.school_id is None:
            logger.warning(f"School representative {ctx.user_id} has no school assignment")

    logger.debug(f"Authenticated {ctx}")
    return ctx


def require_roles(*roles: str) -> Callable:
    """
    Dependency factory restricting an endpoint to the given roles.

    Usage:
        @router.post("/{id}/approve")
        async def approve(ctx: AuthContext = Depends(require_roles(Role.ADMIN))):
            ...
    """
    allowed = frozenset(roles)

    async def _dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if ctx.role not in allowed:
            logger.warning(
                f"Access denied: user {ctx.user_id} has role '{ctx.role}', "
                f"requires one of {sorted(allowed)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "success": False,
                    "error": "INSUFFICIENT_ROLE",
                    "message": "You do not have permission to perform this action.",
                },
            )
        return ctx

    return _dependency


__all__ = [
    "AuthContext",
    "Role",
    "get_auth_context",
    "require_roles",
    "school_scope",
    "system_context",
]

"""
Security Utilities

JWT encoding/decoding for access tokens issued by the identity provider.
Password handling lives with the identity provider and is not part of this service.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from scholarship_aid.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: str,
    role: str,
    *,
    name: str | None = None,
    citizen_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed access token.

    Used by development tooling and tests; production tokens come from the
    identity provider with the same claim layout.
    """
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "type": "access",
        "exp": expire,
    }
    if name:
        claims["name"] = name
    if citizen_id:
        claims["citizen_id"] = citizen_id
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT.

    Returns:
        The claims dict, or None when the token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug(f"JWT decode failed: {e}")
        return None

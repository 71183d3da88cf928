"""
Core module - Configuration, database, auth context, errors, and utilities.
"""

from scholarship_aid.core.config import get_settings, settings
from scholarship_aid.core.database import Base, close_db, get_db, init_db
from scholarship_aid.core.exceptions import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ServiceError,
    StateGuardError,
    ValidationError,
)
from scholarship_aid.core.redis import close_redis, get_redis, init_redis
from scholarship_aid.core.security import create_access_token, decode_token

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Errors
    "ServiceError",
    "ValidationError",
    "StateGuardError",
    "NotFoundError",
    "ConflictError",
    "DependencyError",
    # Security
    "create_access_token",
    "decode_token",
]

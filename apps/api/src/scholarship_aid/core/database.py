"""
Database Configuration

Async SQLAlchemy engine, session factory and declarative base.
Sessions are per-request (see get_db); no process-level state is authoritative.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from scholarship_aid.core.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a database session.

    Any transaction left open by a failed request is rolled back.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verify the database connection on startup.

    In development the tables are created directly; other environments
    rely on Alembic migrations.
    """
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if settings.is_development:
            # Import models so they are registered on Base.metadata
            from scholarship_aid.modules import models_registry  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)
            logger.info("Development mode: ensured all tables exist")


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()

"""
Shared fixtures: mocked and in-memory database sessions, caller contexts.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from scholarship_aid.core.auth import AuthContext, Role
from scholarship_aid.core.database import Base
from scholarship_aid.modules import models_registry  # noqa: F401
from scholarship_aid.modules.applications.models import Application, ApplicationStatus


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    return db


@pytest.fixture
def school_id():
    return uuid4()


@pytest.fixture
def admin_ctx():
    return AuthContext(user_id=uuid4(), role=Role.ADMIN, name="Ada Admin")


@pytest.fixture
def finance_ctx():
    return AuthContext(user_id=uuid4(), role=Role.FINANCE, name="Fin Officer")


@pytest.fixture
def rep_ctx(school_id):
    """School representative assigned to `school_id`."""
    return AuthContext(
        user_id=uuid4(), role=Role.SCHOOL_REP, name="Rita Rep", citizen_id="CIT-1", school_id=school_id
    )


@pytest.fixture
def make_application(school_id):
    """Factory for application models in a given status."""

    def _make(status=ApplicationStatus.DRAFT, **overrides):
        app = MagicMock(spec=Application)
        app.id = uuid4()
        app.student_id = uuid4()
        app.student_name = "Maria Santos"
        app.student_number = "2024-0001"
        app.school_id = school_id
        app.school_name = "Rizal High School"
        app.category = "tuition"
        app.requested_amount = Decimal("5000.00")
        app.approved_amount = None
        app.payable_amount = Decimal("5000.00")
        app.currency = "PHP"
        app.payment_method = None
        app.documents_reviewed = True
        app.approved_at = datetime.now(UTC)
        app.status = status
        for key, value in overrides.items():
            setattr(app, key, value)
        return app

    return _make


@pytest_asyncio.fixture
async def db_session():
    """
    Real async session on an in-memory SQLite database.

    Commits, rollbacks and unique indexes behave as they do in production,
    so error paths that touch the session after a rollback are exercised.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def add_application(db_session, school_id):
    """Factory storing an application in `db_session`."""

    async def _add(status=ApplicationStatus.DRAFT, **overrides) -> Application:
        fields = {
            "student_id": uuid4(),
            "student_name": "J. Dela Cruz",
            "student_number": "2024-0001",
            "school_id": school_id,
            "school_name": "Rizal High School",
            "category": "tuition",
            "requested_amount": Decimal("1000.00"),
            "currency": "PHP",
            "documents_reviewed": True,
            "status": status,
            **overrides,
        }
        application = Application(**fields)
        db_session.add(application)
        await db_session.commit()
        return application

    return _add

"""
School Repository

Read access to school reference data and representative assignments.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.modules.schools.models import School, SchoolRepresentative

logger = logging.getLogger(__name__)


class SchoolRepository:
    """Repository for school database operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, school_id: UUID) -> School | None:
        """Get a school by ID."""
        return await db.get(School, school_id)

    @staticmethod
    async def get_assigned_school_id(db: AsyncSession, citizen_id: str) -> UUID | None:
        """
        Resolve a school representative's assigned school.

        Args:
            db: Database session
            citizen_id: Citizen identifier from the caller's token

        Returns:
            The school id, or None if the citizen has no active assignment
        """
        result = await db.execute(
            select(SchoolRepresentative.school_id).where(
                SchoolRepresentative.citizen_id == citizen_id,
                SchoolRepresentative.is_active == True,  # noqa: E712
            )
        )
        school_id = result.scalar_one_or_none()

        if school_id is None:
            logger.info(f"No active school assignment for citizen {citizen_id}")

        return school_id

    @staticmethod
    async def get_names(db: AsyncSession, school_ids: list[UUID]) -> dict[UUID, str]:
        """Map school ids to names (for statistics labels)."""
        if not school_ids:
            return {}

        result = await db.execute(select(School.id, School.name).where(School.id.in_(school_ids)))
        return {row.id: row.name for row in result.all()}

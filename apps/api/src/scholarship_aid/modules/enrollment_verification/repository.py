"""
Enrollment Verification Repository
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from scholarship_aid.modules.applications.models import Application, ApplicationStatus
from scholarship_aid.modules.enrollment_verification.models import (
    EnrollmentVerification,
    VerificationStatus,
)


async def get_by_id(
    db: AsyncSession, verification_id: UUID, *, for_update: bool = False
) -> EnrollmentVerification | None:
    if not for_update:
        return await db.get(EnrollmentVerification, verification_id)

    result = await db.execute(
        select(EnrollmentVerification)
        .where(EnrollmentVerification.id == verification_id)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def get_by_application(
    db: AsyncSession, application_id: UUID, *, for_update: bool = False
) -> EnrollmentVerification | None:
    query = select(EnrollmentVerification).where(
        EnrollmentVerification.application_id == application_id
    )
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    return result.scalar_one_or_none()


async def add(db: AsyncSession, verification: EnrollmentVerification) -> EnrollmentVerification:
    db.add(verification)
    await db.flush()
    return verification


async def save(
    db: AsyncSession, verification: EnrollmentVerification, *, commit: bool = True
) -> EnrollmentVerification:
    if commit:
        await db.commit()
        await db.refresh(verification)
    else:
        await db.flush()
    return verification


async def list_records(
    db: AsyncSession,
    *,
    scope: ColumnElement[bool],
    status: VerificationStatus | None = None,
) -> list[tuple[EnrollmentVerification, Application]]:
    """Stored verifications with their application, newest first."""
    query = (
        select(EnrollmentVerification, Application)
        .join(Application, Application.id == EnrollmentVerification.application_id)
        .where(scope)
    )
    if status:
        query = query.where(EnrollmentVerification.status == status)

    result = await db.execute(query.order_by(EnrollmentVerification.created_at.desc()))
    return [(row[0], row[1]) for row in result.all()]


def _awaiting_first_proof(scope: ColumnElement[bool]):
    has_record = (
        select(EnrollmentVerification.id)
        .where(EnrollmentVerification.application_id == Application.id)
        .exists()
    )
    return [
        Application.status == ApplicationStatus.APPROVED_PENDING_VERIFICATION,
        ~has_record,
        scope,
    ]


async def list_pending_applications(
    db: AsyncSession, *, scope: ColumnElement[bool]
) -> list[Application]:
    """Applications awaiting verification that have no record yet."""
    result = await db.execute(
        select(Application)
        .where(*_awaiting_first_proof(scope))
        .order_by(Application.approved_at.desc())
    )
    return list(result.scalars().all())


async def count_by_school_and_status(
    db: AsyncSession, *, scope: ColumnElement[bool]
) -> list[tuple[UUID, VerificationStatus, int]]:
    result = await db.execute(
        select(
            EnrollmentVerification.school_id,
            EnrollmentVerification.status,
            func.count(EnrollmentVerification.id),
        )
        .where(scope)
        .group_by(EnrollmentVerification.school_id, EnrollmentVerification.status)
    )
    return [(row[0], row[1], row[2]) for row in result.all()]


async def count_pending_applications_by_school(
    db: AsyncSession, *, scope: ColumnElement[bool]
) -> list[tuple[UUID, int]]:
    result = await db.execute(
        select(Application.school_id, func.count(Application.id))
        .where(*_awaiting_first_proof(scope))
        .group_by(Application.school_id)
    )
    return [(row[0], row[1]) for row in result.all()]

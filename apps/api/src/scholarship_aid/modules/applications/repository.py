"""
Aid Application Repository

Database operations for aid applications and their status history.

Design Principles:
- Status changes go through `transition`, which validates the move against the
  state machine and writes the history row in the same transaction
- `commit=False` lets services compose a transition into a larger transaction
  (the caller then commits once); the change is flushed so constraints fire early
- `for_update=True` locks the row for transactional re-validation
"""

from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from scholarship_aid.modules.applications.models import (
    Application,
    ApplicationStatus,
    ApplicationStatusHistory,
)
from scholarship_aid.modules.applications.schemas import ApplicationCreate
from scholarship_aid.modules.applications.state_machine import (
    InvalidStatusTransitionError,
    check_transition,
)

__all__ = [
    "InvalidStatusTransitionError",
    "create",
    "delete",
    "get_by_id",
    "get_by_statuses",
    "get_history",
    "list_applications",
    "transition",
    "update_fields",
]


async def create(
    db: AsyncSession,
    data: ApplicationCreate,
    *,
    school_name: str,
    currency: str,
    created_by: UUID | None,
) -> Application:
    """Create a new draft application."""

    application = Application(
        student_id=data.student_id,
        student_name=data.student_name,
        student_number=data.student_number,
        school_id=data.school_id,
        school_name=school_name,
        category=data.category,
        subcategory=data.subcategory,
        requested_amount=data.requested_amount,
        currency=currency,
        payment_method=data.payment_method,
        purpose=data.purpose,
        status=ApplicationStatus.DRAFT,
        created_by=created_by,
    )

    db.add(application)
    await db.commit()
    await db.refresh(application)

    return application


async def get_by_id(
    db: AsyncSession,
    id: UUID,
    *,
    for_update: bool = False,
) -> Application | None:
    """Get application by ID, optionally locking the row."""
    if not for_update:
        return await db.get(Application, id)

    result = await db.execute(select(Application).where(Application.id == id).with_for_update())
    return result.scalar_one_or_none()


async def get_by_statuses(
    db: AsyncSession,
    statuses: list[ApplicationStatus],
    scope: ColumnElement[bool] | None = None,
) -> list[Application]:
    """Get all applications in any of the given statuses."""
    query = select(Application).where(Application.status.in_(statuses))
    if scope is not None:
        query = query.where(scope)

    result = await db.execute(query.order_by(Application.approved_at.asc().nulls_last()))
    return list(result.scalars().all())


async def list_applications(
    db: AsyncSession,
    *,
    scope: ColumnElement[bool],
    status: ApplicationStatus | None = None,
    school_id: UUID | None = None,
    category: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Application], int]:
    """
    Get a filtered, paginated page of applications.

    Returns:
        Tuple of (applications, total matching count)
    """
    conditions = [scope]

    if status:
        conditions.append(Application.status == status)
    if school_id:
        conditions.append(Application.school_id == school_id)
    if category:
        conditions.append(Application.category == category)
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(
                Application.student_name.ilike(pattern),
                Application.student_number.ilike(pattern),
                Application.school_name.ilike(pattern),
            )
        )

    count_result = await db.execute(select(func.count(Application.id)).where(*conditions))
    total = count_result.scalar_one()

    result = await db.execute(
        select(Application)
        .where(*conditions)
        .order_by(Application.created_at.desc())
        .offset(skip)
        .limit(limit)
    )

    return list(result.scalars().all()), total


async def update_fields(db: AsyncSession, application: Application, **fields) -> Application:
    """Update non-status fields of an application."""
    for key, value in fields.items():
        if hasattr(application, key):
            setattr(application, key, value)

    await db.commit()
    await db.refresh(application)

    return application


async def delete(db: AsyncSession, application: Application) -> None:
    await db.delete(application)
    await db.commit()


async def transition(
    db: AsyncSession,
    application: Application,
    operation: str,
    new_status: ApplicationStatus,
    *,
    changed_by: str,
    changed_by_id: UUID | None = None,
    notes: str | None = None,
    commit: bool = True,
    **fields,
) -> Application:
    """
    Apply a guarded status transition and append its history row.

    Args:
        db: Database session
        application: Application to change (load it with for_update=True)
        operation: State machine operation name
        new_status: Target status
        changed_by: Actor label for the audit row
        changed_by_id: Actor id for the audit row
        notes: Free-text notes recorded in history
        commit: Commit now, or only flush and leave the commit to the caller
        **fields: Additional fields to set (e.g., approved_at)

    Returns:
        Updated Application

    Raises:
        InvalidStatusTransitionError: If the operation is not allowed
    """
    previous_status = application.status
    check_transition(operation, previous_status, new_status)

    application.status = new_status

    for key, value in fields.items():
        if hasattr(application, key):
            setattr(application, key, value)

    db.add(
        ApplicationStatusHistory(
            application_id=application.id,
            operation=operation,
            from_status=previous_status,
            status=new_status,
            notes=notes,
            changed_by=changed_by,
            changed_by_id=changed_by_id,
        )
    )

    if commit:
        await db.commit()
        await db.refresh(application)
    else:
        await db.flush()

    return application


async def get_history(db: AsyncSession, application_id: UUID) -> list[ApplicationStatusHistory]:
    result = await db.execute(
        select(ApplicationStatusHistory)
        .where(ApplicationStatusHistory.application_id == application_id)
        .order_by(ApplicationStatusHistory.created_at.asc())
    )
    return list(result.scalars().all())

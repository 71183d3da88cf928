"""
Interview Repository

Database operations for interview schedules and evaluations.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from scholarship_aid.modules.interviews.models import (
    ACTIVE_INTERVIEW_STATUSES,
    InterviewEvaluation,
    InterviewSchedule,
    InterviewStatus,
    InterviewType,
)

# ============================================
# Schedules
# ============================================


async def add_schedule(db: AsyncSession, schedule: InterviewSchedule) -> InterviewSchedule:
    """
    Stage a new schedule and flush it.

    The flush makes the partial unique indexes fire inside the caller's
    transaction; the caller commits.
    """
    db.add(schedule)
    await db.flush()
    return schedule


async def get_schedule(
    db: AsyncSession,
    schedule_id: UUID,
    *,
    for_update: bool = False,
) -> InterviewSchedule | None:
    if not for_update:
        return await db.get(InterviewSchedule, schedule_id)

    result = await db.execute(
        select(InterviewSchedule).where(InterviewSchedule.id == schedule_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def get_active_for_application(
    db: AsyncSession, application_id: UUID
) -> InterviewSchedule | None:
    result = await db.execute(
        select(InterviewSchedule).where(
            InterviewSchedule.application_id == application_id,
            InterviewSchedule.status.in_(ACTIVE_INTERVIEW_STATUSES),
        )
    )
    return result.scalars().first()


async def get_booked_times(
    db: AsyncSession,
    interview_date: date,
    interview_type: InterviewType,
    interviewer_id: UUID | None = None,
    exclude_schedule_id: UUID | None = None,
) -> list[str]:
    """
    Times already held by active schedules for (date, type[, interviewer]).
    """
    query = select(InterviewSchedule.interview_time).where(
        InterviewSchedule.interview_date == interview_date,
        InterviewSchedule.interview_type == interview_type,
        InterviewSchedule.status.in_(ACTIVE_INTERVIEW_STATUSES),
    )
    if interviewer_id is not None:
        query = query.where(InterviewSchedule.interviewer_id == interviewer_id)
    if exclude_schedule_id is not None:
        query = query.where(InterviewSchedule.id != exclude_schedule_id)

    result = await db.execute(query)
    return list(result.scalars().all())


async def list_schedules(
    db: AsyncSession,
    *,
    scope: ColumnElement[bool],
    status: InterviewStatus | None = None,
    interview_type: InterviewType | None = None,
    interviewer_id: UUID | None = None,
    application_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[InterviewSchedule]:
    conditions = [scope]

    if status:
        conditions.append(InterviewSchedule.status == status)
    if interview_type:
        conditions.append(InterviewSchedule.interview_type == interview_type)
    if interviewer_id:
        conditions.append(InterviewSchedule.interviewer_id == interviewer_id)
    if application_id:
        conditions.append(InterviewSchedule.application_id == application_id)
    if date_from:
        conditions.append(InterviewSchedule.interview_date >= date_from)
    if date_to:
        conditions.append(InterviewSchedule.interview_date <= date_to)

    result = await db.execute(
        select(InterviewSchedule)
        .where(*conditions)
        .order_by(InterviewSchedule.interview_date.asc(), InterviewSchedule.interview_time.asc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())


async def save(db: AsyncSession, obj, *, commit: bool = True):
    """Persist changes to a loaded schedule or evaluation."""
    if commit:
        await db.commit()
        await db.refresh(obj)
    else:
        await db.flush()
    return obj


# ============================================
# Evaluations
# ============================================


async def add_evaluation(db: AsyncSession, evaluation: InterviewEvaluation) -> InterviewEvaluation:
    db.add(evaluation)
    await db.flush()
    return evaluation


async def get_evaluation(db: AsyncSession, evaluation_id: UUID) -> InterviewEvaluation | None:
    return await db.get(InterviewEvaluation, evaluation_id)


async def get_evaluation_for_schedule(
    db: AsyncSession, schedule_id: UUID
) -> InterviewEvaluation | None:
    result = await db.execute(
        select(InterviewEvaluation).where(InterviewEvaluation.schedule_id == schedule_id)
    )
    return result.scalar_one_or_none()


async def list_evaluations(
    db: AsyncSession,
    *,
    scope: ColumnElement[bool],
    application_id: UUID | None = None,
    student_id: UUID | None = None,
    interviewer_id: UUID | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[InterviewEvaluation]:
    """List evaluations; the scope filter applies through the schedule's school."""
    query = (
        select(InterviewEvaluation)
        .join(InterviewSchedule, InterviewSchedule.id == InterviewEvaluation.schedule_id)
        .where(scope)
    )

    if application_id:
        query = query.where(InterviewEvaluation.application_id == application_id)
    if student_id:
        query = query.where(InterviewEvaluation.student_id == student_id)
    if interviewer_id:
        query = query.where(InterviewEvaluation.interviewer_id == interviewer_id)

    result = await db.execute(
        query.order_by(InterviewEvaluation.evaluation_date.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all())

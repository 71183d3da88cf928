"""
Interview Service Layer

Books, reschedules, completes and cancels interview slots, and records
evaluations, feeding outcomes back into the application state machine.

Booking is check-and-reserve in one transaction: the slot is validated against
the grid and the current bookings, then inserted and flushed so the partial
unique indexes on active schedules reject any concurrent double booking. An
integrity violation is reported as SlotUnavailableError.

Interview outcome mapping:
- result passed/failed/needs_followup <-> recommendation
  recommended/not_recommended/needs_followup
- completing a schedule (directly or via evaluation) forwards the
  recommendation to the application's complete_interview transition in the
  same transaction
"""

import calendar
import logging
from collections import defaultdict
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, school_scope
from scholarship_aid.core.config import settings
from scholarship_aid.core.exceptions import (
    ConflictError,
    NotFoundError,
    ServiceError,
    StateGuardError,
    ValidationError,
)
from scholarship_aid.modules.applications import service as application_service
from scholarship_aid.modules.applications.models import ApplicationStatus
from scholarship_aid.modules.interviews import repository
from scholarship_aid.modules.interviews.helpers import (
    RECOMMENDATION_TO_RESULT,
    RESULT_TO_RECOMMENDATION,
    build_meeting_link,
    default_location,
    generate_slot_grid,
    subtract_booked,
)
from scholarship_aid.modules.interviews.models import (
    ACTIVE_INTERVIEW_STATUSES,
    InterviewEvaluation,
    InterviewResult,
    InterviewSchedule,
    InterviewStatus,
    InterviewType,
)
from scholarship_aid.modules.interviews.schemas import (
    EvaluationCreate,
    EvaluationUpdate,
    InterviewCreate,
)

logger = logging.getLogger(__name__)


# ============================================
# Errors
# ============================================


class InterviewNotFoundError(NotFoundError):
    def __init__(self, schedule_id: UUID):
        super().__init__(f"Interview {schedule_id} not found", "INTERVIEW_NOT_FOUND")


class EvaluationNotFoundError(NotFoundError):
    def __init__(self, evaluation_id: UUID):
        super().__init__(f"Evaluation {evaluation_id} not found", "EVALUATION_NOT_FOUND")


class InvalidInterviewStateError(StateGuardError):
    def __init__(self, action: str, current_status: InterviewStatus):
        super().__init__(
            f"Cannot {action} an interview in status {current_status.value}",
            "INVALID_INTERVIEW_STATE",
            details={
                "current_status": current_status.value,
                "allowed_from": sorted(s.value for s in ACTIVE_INTERVIEW_STATUSES),
            },
        )


class ApplicationNotReadyForInterviewError(StateGuardError):
    def __init__(self, application_id: UUID, current_status: ApplicationStatus):
        super().__init__(
            f"Application {application_id} cannot be scheduled for interview "
            f"in status {current_status.value}",
            "APPLICATION_NOT_READY_FOR_INTERVIEW",
            details={"current_status": current_status.value},
        )


class InvalidSlotError(ValidationError):
    def __init__(self, slot: str, grid: list[str]):
        super().__init__(
            f"{slot} is not a bookable interview slot",
            "INVALID_SLOT",
            details={"field": "interview_time", "first_slot": grid[0], "last_slot": grid[-1]},
        )


class SlotUnavailableError(ConflictError):
    def __init__(self, interview_date: date, slot: str, interview_type: InterviewType):
        super().__init__(
            f"The {interview_type.value} slot {interview_date.isoformat()} {slot} is already booked",
            "SLOT_UNAVAILABLE",
            details={
                "interview_date": interview_date.isoformat(),
                "interview_time": slot,
                "interview_type": interview_type.value,
            },
        )


class InterviewAlreadyScheduledError(ConflictError):
    def __init__(self, application_id: UUID, schedule_id: UUID):
        super().__init__(
            f"Application {application_id} already has an active interview",
            "INTERVIEW_ALREADY_SCHEDULED",
            details={"schedule_id": str(schedule_id)},
        )


class EvaluationAlreadyExistsError(ConflictError):
    def __init__(self, schedule_id: UUID):
        super().__init__(
            f"Interview {schedule_id} has already been evaluated",
            "EVALUATION_ALREADY_EXISTS",
            details={"schedule_id": str(schedule_id)},
        )


# ============================================
# Helpers
# ============================================


def _slot_grid() -> list[str]:
    return generate_slot_grid(
        settings.interview_day_start,
        settings.interview_day_end,
        settings.interview_slot_minutes,
    )


async def _load_schedule(
    db: AsyncSession,
    schedule_id: UUID,
    ctx: AuthContext,
    *,
    for_update: bool = False,
) -> InterviewSchedule:
    schedule = await repository.get_schedule(db, schedule_id, for_update=for_update)

    if not schedule or not ctx.can_access_school(schedule.school_id):
        logger.warning(f"Interview not found or out of scope: {schedule_id} ({ctx})")
        raise InterviewNotFoundError(schedule_id)

    return schedule


def _require_active(schedule: InterviewSchedule, action: str) -> None:
    if schedule.status not in ACTIVE_INTERVIEW_STATUSES:
        logger.warning(f"Cannot {action} interview {schedule.id}: status={schedule.status}")
        raise InvalidInterviewStateError(action, schedule.status)


async def _ensure_slot_available(
    db: AsyncSession,
    interview_date: date,
    slot: str,
    interview_type: InterviewType,
    interviewer_id: UUID,
    exclude_schedule_id: UUID | None = None,
) -> None:
    grid = _slot_grid()
    if slot not in grid:
        raise InvalidSlotError(slot, grid)

    booked = await repository.get_booked_times(
        db, interview_date, interview_type, interviewer_id, exclude_schedule_id
    )
    if slot not in subtract_booked(grid, booked):
        logger.info(f"Slot {interview_date} {slot} ({interview_type.value}) taken for {interviewer_id}")
        raise SlotUnavailableError(interview_date, slot, interview_type)


# ============================================
# Slots & queries
# ============================================


async def get_available_slots(
    db: AsyncSession,
    interview_date: date,
    interview_type: InterviewType,
    interviewer_id: UUID | None = None,
) -> list[str]:
    """
    Grid slots for the date not held by an active schedule of the same
    date, type and (if given) interviewer.
    """
    booked = await repository.get_booked_times(db, interview_date, interview_type, interviewer_id)
    return subtract_booked(_slot_grid(), booked)


async def get_interview(db: AsyncSession, schedule_id: UUID, ctx: AuthContext) -> InterviewSchedule:
    return await _load_schedule(db, schedule_id, ctx)


async def list_interviews(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    status: InterviewStatus | None = None,
    interview_type: InterviewType | None = None,
    interviewer_id: UUID | None = None,
    application_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[InterviewSchedule]:
    return await repository.list_schedules(
        db,
        scope=school_scope(ctx, InterviewSchedule.school_id),
        status=status,
        interview_type=interview_type,
        interviewer_id=interviewer_id,
        application_id=application_id,
        date_from=date_from,
        date_to=date_to,
        skip=max(0, skip),
        limit=min(max(1, limit), 500),
    )


async def get_calendar(
    db: AsyncSession,
    year: int,
    month: int,
    ctx: AuthContext,
    interviewer_id: UUID | None = None,
) -> dict[str, list[InterviewSchedule]]:
    """
    Interviews of a month grouped by ISO date.

    Raises:
        ValidationError: If month is not 1-12
    """
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}", details={"field": "month"})

    last_day = calendar.monthrange(year, month)[1]
    schedules = await repository.list_schedules(
        db,
        scope=school_scope(ctx, InterviewSchedule.school_id),
        interviewer_id=interviewer_id,
        date_from=date(year, month, 1),
        date_to=date(year, month, last_day),
        limit=10_000,
    )

    days: dict[str, list[InterviewSchedule]] = defaultdict(list)
    for schedule in schedules:
        days[schedule.interview_date.isoformat()].append(schedule)

    return dict(days)


# ============================================
# Booking
# ============================================


async def schedule_interview(
    db: AsyncSession, data: InterviewCreate, ctx: AuthContext
) -> InterviewSchedule:
    """
    Book an interview and move the application to interview_scheduled.

    An application already in interview_scheduled may be re-booked when it has
    no active schedule (after a cancellation or no-show).

    Raises:
        ApplicationNotFoundError: If the application is missing or out of scope
        ApplicationNotReadyForInterviewError: If the application is in another status
        DocumentsNotReviewedError: If documents have not been reviewed
        InterviewAlreadyScheduledError: If an active schedule exists
        InvalidSlotError: If the time is not on the grid
        SlotUnavailableError: If the slot is taken (including concurrent bookings)
    """
    application = await application_service.get_application(db, data.application_id, ctx)

    try:
        if application.status == ApplicationStatus.UNDER_REVIEW:
            await application_service.schedule_interview(
                db,
                application.id,
                ctx,
                notes=f"Interview booked for {data.interview_date.isoformat()} {data.interview_time}",
                commit=False,
            )
        elif application.status == ApplicationStatus.INTERVIEW_SCHEDULED:
            active = await repository.get_active_for_application(db, application.id)
            if active:
                raise InterviewAlreadyScheduledError(application.id, active.id)
        else:
            raise ApplicationNotReadyForInterviewError(application.id, application.status)

        await _ensure_slot_available(
            db,
            data.interview_date,
            data.interview_time,
            data.interview_type,
            data.interviewer_id,
        )

        location = data.location or default_location(
            data.interview_type, settings.default_interview_location
        )
        meeting_link = data.meeting_link
        if data.interview_type == InterviewType.ONLINE and not meeting_link:
            meeting_link = build_meeting_link(
                settings.meeting_link_base_url,
                application.id,
                data.interview_date,
                data.interview_time,
            )

        schedule = InterviewSchedule(
            application_id=application.id,
            student_id=application.student_id,
            student_name=application.student_name,
            school_id=application.school_id,
            interviewer_id=data.interviewer_id,
            interviewer_name=data.interviewer_name,
            interview_date=data.interview_date,
            interview_time=data.interview_time,
            interview_type=data.interview_type,
            location=location,
            meeting_link=meeting_link,
            status=InterviewStatus.SCHEDULED,
            notes=data.notes,
            reschedule_count=0,
            created_by=ctx.user_id,
        )
        await repository.add_schedule(db, schedule)
        await db.commit()

    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Concurrent booking rejected for application {data.application_id}: {e}")
        raise SlotUnavailableError(data.interview_date, data.interview_time, data.interview_type) from e
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(schedule)
    logger.info(
        f"Interview {schedule.id} booked for application {application.id} on "
        f"{schedule.interview_date} {schedule.interview_time} ({schedule.interview_type.value})"
    )
    return schedule


async def reschedule_interview(
    db: AsyncSession,
    schedule_id: UUID,
    new_date: date,
    new_time: str,
    reason: str,
    ctx: AuthContext,
) -> InterviewSchedule:
    """
    Move an active interview to a new slot, re-validating availability.

    Raises:
        ValidationError: If no reason is given
        InvalidInterviewStateError: If not scheduled/rescheduled
        InvalidSlotError / SlotUnavailableError: If the new slot is not bookable
    """
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to reschedule", details={"field": "reason"})

    schedule = await _load_schedule(db, schedule_id, ctx, for_update=True)
    interview_type = schedule.interview_type

    try:
        _require_active(schedule, "reschedule")
        await _ensure_slot_available(
            db,
            new_date,
            new_time,
            interview_type,
            schedule.interviewer_id,
            exclude_schedule_id=schedule.id,
        )

        previous = f"{schedule.interview_date.isoformat()} {schedule.interview_time}"
        schedule.interview_date = new_date
        schedule.interview_time = new_time
        schedule.status = InterviewStatus.RESCHEDULED
        schedule.reschedule_reason = reason.strip()
        schedule.reschedule_count = (schedule.reschedule_count or 0) + 1

        await repository.save(db, schedule, commit=False)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Concurrent booking rejected while rescheduling {schedule_id}: {e}")
        raise SlotUnavailableError(new_date, new_time, interview_type) from e
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(schedule)
    logger.info(f"Interview {schedule_id} rescheduled from {previous} to {new_date} {new_time}")
    return schedule


async def complete_interview(
    db: AsyncSession,
    schedule_id: UUID,
    result: InterviewResult,
    ctx: AuthContext,
    notes: str | None = None,
) -> InterviewSchedule:
    """
    Record an interview result and forward it to the application.

    Raises:
        InvalidInterviewStateError: If not scheduled/rescheduled
        InvalidApplicationStateError: If the application is not interview_scheduled
    """
    schedule = await _load_schedule(db, schedule_id, ctx, for_update=True)
    _require_active(schedule, "complete")

    schedule.status = InterviewStatus.COMPLETED
    schedule.result = result
    schedule.completed_at = datetime.now(UTC)
    if notes:
        schedule.notes = notes

    try:
        await repository.save(db, schedule, commit=False)
        await application_service.complete_interview(
            db,
            schedule.application_id,
            RESULT_TO_RECOMMENDATION[result],
            ctx,
            notes=notes,
            commit=False,
        )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(schedule)
    logger.info(f"Interview {schedule_id} completed with result {result.value}")
    return schedule


async def cancel_interview(
    db: AsyncSession, schedule_id: UUID, reason: str, ctx: AuthContext
) -> InterviewSchedule:
    """Cancel an active interview. The application is left unchanged."""
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to cancel", details={"field": "reason"})

    schedule = await _load_schedule(db, schedule_id, ctx, for_update=True)
    _require_active(schedule, "cancel")

    schedule.status = InterviewStatus.CANCELLED
    schedule.cancellation_reason = reason.strip()
    schedule.cancelled_at = datetime.now(UTC)

    schedule = await repository.save(db, schedule)
    logger.info(f"Interview {schedule_id} cancelled: {reason}")
    return schedule


async def mark_no_show(
    db: AsyncSession, schedule_id: UUID, ctx: AuthContext, notes: str | None = None
) -> InterviewSchedule:
    """Mark an active interview as a no-show. The application is left unchanged."""
    schedule = await _load_schedule(db, schedule_id, ctx, for_update=True)
    _require_active(schedule, "mark as no-show")

    schedule.status = InterviewStatus.NO_SHOW
    if notes:
        schedule.notes = notes

    schedule = await repository.save(db, schedule)
    logger.info(f"Interview {schedule_id} marked as no-show")
    return schedule


# ============================================
# Evaluations
# ============================================


async def submit_evaluation(
    db: AsyncSession, data: EvaluationCreate, ctx: AuthContext
) -> InterviewEvaluation:
    """
    Record the one evaluation of an interview.

    Marks the schedule completed with the mapped result and forwards the
    recommendation to the application, all in one transaction.

    Raises:
        InterviewNotFoundError: If the schedule is missing or out of scope
        EvaluationAlreadyExistsError: If the schedule was already evaluated
        InvalidInterviewStateError: If the schedule is not scheduled/rescheduled
    """
    schedule = await _load_schedule(db, data.schedule_id, ctx, for_update=True)

    existing = await repository.get_evaluation_for_schedule(db, schedule.id)
    if existing:
        logger.warning(f"Duplicate evaluation attempt for interview {schedule.id}")
        raise EvaluationAlreadyExistsError(schedule.id)

    _require_active(schedule, "evaluate")

    result = RECOMMENDATION_TO_RESULT[data.overall_recommendation]
    now = datetime.now(UTC)

    evaluation = InterviewEvaluation(
        schedule_id=schedule.id,
        application_id=schedule.application_id,
        student_id=schedule.student_id,
        interviewer_id=schedule.interviewer_id,
        academic_motivation=data.academic_motivation,
        leadership_involvement=data.leadership_involvement,
        financial_need=data.financial_need,
        character_values=data.character_values,
        overall_recommendation=data.overall_recommendation,
        interview_result=result,
        remarks=data.remarks,
        strengths=data.strengths,
        areas_for_improvement=data.areas_for_improvement,
        additional_notes=data.additional_notes,
        evaluated_by=ctx.actor_label,
        evaluation_date=now,
    )

    schedule.status = InterviewStatus.COMPLETED
    schedule.result = result
    schedule.completed_at = now

    try:
        await repository.add_evaluation(db, evaluation)
        await application_service.complete_interview(
            db,
            schedule.application_id,
            data.overall_recommendation,
            ctx,
            notes=data.remarks,
            commit=False,
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise EvaluationAlreadyExistsError(data.schedule_id) from e
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(evaluation)
    logger.info(
        f"Evaluation {evaluation.id} recorded for interview {schedule.id}: "
        f"{data.overall_recommendation.value} (total {evaluation.total_score})"
    )
    return evaluation


async def _load_evaluation(
    db: AsyncSession, evaluation_id: UUID, ctx: AuthContext
) -> InterviewEvaluation:
    evaluation = await repository.get_evaluation(db, evaluation_id)
    if not evaluation:
        raise EvaluationNotFoundError(evaluation_id)

    if ctx.is_school_scoped:
        schedule = await repository.get_schedule(db, evaluation.schedule_id)
        if not schedule or not ctx.can_access_school(schedule.school_id):
            raise EvaluationNotFoundError(evaluation_id)

    return evaluation


async def get_evaluation(
    db: AsyncSession, evaluation_id: UUID, ctx: AuthContext
) -> InterviewEvaluation:
    return await _load_evaluation(db, evaluation_id, ctx)


async def update_evaluation(
    db: AsyncSession, evaluation_id: UUID, data: EvaluationUpdate, ctx: AuthContext
) -> InterviewEvaluation:
    """Update scores and remarks. The recommendation and result never change."""
    evaluation = await _load_evaluation(db, evaluation_id, ctx)

    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key in (
            "academic_motivation",
            "leadership_involvement",
            "financial_need",
            "character_values",
        ):
            continue
        setattr(evaluation, key, value)

    evaluation = await repository.save(db, evaluation)
    logger.info(f"Evaluation {evaluation_id} updated by {ctx.actor_label}")
    return evaluation


async def list_evaluations(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    application_id: UUID | None = None,
    student_id: UUID | None = None,
    interviewer_id: UUID | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[InterviewEvaluation]:
    return await repository.list_evaluations(
        db,
        scope=school_scope(ctx, InterviewSchedule.school_id),
        application_id=application_id,
        student_id=student_id,
        interviewer_id=interviewer_id,
        skip=max(0, skip),
        limit=min(max(1, limit), 500),
    )

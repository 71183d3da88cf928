"""
Aid Application Service Layer

Business logic for the application lifecycle. Every status change goes through
a guarded transition (see state_machine.py) and is written together with its
history row in one transaction.

This module implements:
1. Draft management: create, update and delete (draft only)
2. Review flow: submit, mark documents reviewed, review, compliance flags
3. Interview hand-off: schedule_interview and complete_interview, called by
   the interviews module inside its own transaction (commit=False)
4. Decision flow: approve (to pending verification or straight to approved),
   confirm_enrollment (called by the enrollment verification workflow), reject
5. Disbursement flow: process, release and mark_payment_failed, called by the
   payments module inside its own transaction
6. Cancellation

Authorization:
- Callers outside their school scope get ApplicationNotFoundError, the same
  as for a missing application
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, school_scope
from scholarship_aid.core.config import settings
from scholarship_aid.core.exceptions import NotFoundError, StateGuardError, ValidationError
from scholarship_aid.modules.applications import repository
from scholarship_aid.modules.applications.models import (
    Application,
    ApplicationStatus,
    ApplicationStatusHistory,
)
from scholarship_aid.modules.applications.schemas import ApplicationCreate, ApplicationUpdate
from scholarship_aid.modules.applications.state_machine import (
    InvalidStatusTransitionError,
    Operation,
    can_proceed_to_interview,
)
from scholarship_aid.modules.schools.repository import SchoolRepository

logger = logging.getLogger(__name__)

NOT_RECOMMENDED_REASON = "not recommended after interview evaluation"

RECOMMENDED = "recommended"
NOT_RECOMMENDED = "not_recommended"
NEEDS_FOLLOWUP = "needs_followup"
RECOMMENDATIONS = frozenset({RECOMMENDED, NOT_RECOMMENDED, NEEDS_FOLLOWUP})


# ============================================
# Errors
# ============================================


class ApplicationNotFoundError(NotFoundError):
    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(message, "APPLICATION_NOT_FOUND")


class SchoolNotFoundError(NotFoundError):
    def __init__(self, school_id: UUID):
        super().__init__(f"School {school_id} not found", "SCHOOL_NOT_FOUND")


class InvalidApplicationStateError(StateGuardError):
    """Raised when a transition is attempted from a status that does not permit it."""

    def __init__(self, error: InvalidStatusTransitionError):
        super().__init__(
            str(error),
            "INVALID_APPLICATION_STATE",
            details={
                "operation": error.operation,
                "current_status": error.current_status.value,
                "allowed_from": error.allowed_from,
            },
        )


class DraftOnlyError(StateGuardError):
    def __init__(self, action: str, current_status: ApplicationStatus):
        super().__init__(
            f"Only draft applications can be {action}. Current status: {current_status.value}",
            "DRAFT_ONLY",
            details={"current_status": current_status.value},
        )


class DocumentsNotReviewedError(StateGuardError):
    def __init__(self, application_id: UUID):
        super().__init__(
            f"Documents for application {application_id} have not been reviewed",
            "DOCUMENTS_NOT_REVIEWED",
        )


class ReasonRequiredError(ValidationError):
    def __init__(self, action: str):
        super().__init__(
            f"A reason is required to {action} an application",
            "REASON_REQUIRED",
            details={"field": "reason"},
        )


class InvalidAmountError(ValidationError):
    def __init__(self, value):
        super().__init__(
            f"Approved amount must be a positive number, got {value!r}",
            "INVALID_AMOUNT",
            details={"field": "approved_amount"},
        )


# ============================================
# Helpers
# ============================================


def _now() -> datetime:
    return datetime.now(UTC)


def _require_reason(reason: str | None, action: str) -> str:
    if reason is None or not reason.strip():
        raise ReasonRequiredError(action)
    return reason.strip()


async def _load(
    db: AsyncSession,
    application_id: UUID,
    ctx: AuthContext,
    *,
    for_update: bool = False,
) -> Application:
    application = await repository.get_by_id(db, application_id, for_update=for_update)

    if not application or not ctx.can_access_school(application.school_id):
        logger.warning(f"Application not found or out of scope: {application_id} ({ctx})")
        raise ApplicationNotFoundError(application_id)

    return application


async def _transition(
    db: AsyncSession,
    application: Application,
    operation: str,
    new_status: ApplicationStatus,
    ctx: AuthContext,
    *,
    notes: str | None = None,
    commit: bool = True,
    **fields,
) -> Application:
    previous_status = application.status
    try:
        updated = await repository.transition(
            db,
            application,
            operation,
            new_status,
            changed_by=ctx.actor_label,
            changed_by_id=ctx.user_id,
            notes=notes,
            commit=commit,
            **fields,
        )
    except InvalidStatusTransitionError as e:
        logger.warning(f"Rejected transition for application {application.id}: {e}")
        raise InvalidApplicationStateError(e) from e

    logger.info(
        f"Application {application.id}: {previous_status.value} -> {new_status.value} "
        f"({operation}) by {ctx.actor_label}"
    )
    return updated


# ============================================
# Queries
# ============================================


async def get_application(db: AsyncSession, application_id: UUID, ctx: AuthContext) -> Application:
    """
    Get a single application visible to the caller.

    Raises:
        ApplicationNotFoundError: If it doesn't exist or is outside the caller's scope
    """
    return await _load(db, application_id, ctx)


async def list_applications(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    status: ApplicationStatus | None = None,
    school_id: UUID | None = None,
    category: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> dict:
    """
    Get a paginated, filtered list of applications visible to the caller.

    Returns:
        Dict with applications list, total count, skip, and limit
    """
    limit = min(max(1, limit), 100)
    skip = max(0, skip)

    applications, total = await repository.list_applications(
        db,
        scope=school_scope(ctx, Application.school_id),
        status=status,
        school_id=school_id,
        category=category,
        search=search,
        skip=skip,
        limit=limit,
    )

    return {"applications": applications, "total": total, "skip": skip, "limit": limit}


async def get_status_history(
    db: AsyncSession, application_id: UUID, ctx: AuthContext
) -> list[ApplicationStatusHistory]:
    await _load(db, application_id, ctx)
    return await repository.get_history(db, application_id)


# ============================================
# Draft management
# ============================================


async def create_application(
    db: AsyncSession, data: ApplicationCreate, ctx: AuthContext
) -> Application:
    """
    Create a draft application, snapshotting the school name.

    Raises:
        SchoolNotFoundError: If the school doesn't exist
        ApplicationNotFoundError: If a school representative files for another school
    """
    if not ctx.can_access_school(data.school_id):
        logger.warning(f"{ctx} attempted to create an application for school {data.school_id}")
        raise SchoolNotFoundError(data.school_id)

    school = await SchoolRepository.get_by_id(db, data.school_id)
    if not school:
        raise SchoolNotFoundError(data.school_id)

    application = await repository.create(
        db,
        data,
        school_name=school.name,
        currency=(data.currency or settings.default_currency).upper(),
        created_by=ctx.user_id,
    )
    logger.info(f"Created draft application {application.id} for student {data.student_number}")
    return application


async def update_application(
    db: AsyncSession, application_id: UUID, data: ApplicationUpdate, ctx: AuthContext
) -> Application:
    application = await _load(db, application_id, ctx, for_update=True)

    if application.status != ApplicationStatus.DRAFT:
        raise DraftOnlyError("edited", application.status)

    changes = data.model_dump(exclude_unset=True)
    return await repository.update_fields(db, application, **changes)


async def delete_application(db: AsyncSession, application_id: UUID, ctx: AuthContext) -> None:
    application = await _load(db, application_id, ctx, for_update=True)

    if application.status != ApplicationStatus.DRAFT:
        logger.warning(f"Refusing to delete application {application_id} in {application.status}")
        raise DraftOnlyError("deleted", application.status)

    await repository.delete(db, application)
    logger.info(f"Deleted draft application {application_id}")


# ============================================
# Review flow
# ============================================


async def submit(
    db: AsyncSession, application_id: UUID, ctx: AuthContext, notes: str | None = None
) -> Application:
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.SUBMIT,
        ApplicationStatus.SUBMITTED,
        ctx,
        notes=notes,
        submitted_at=_now(),
    )


async def mark_documents_reviewed(
    db: AsyncSession, application_id: UUID, ctx: AuthContext
) -> Application:
    """Record that the application's supporting documents were reviewed."""
    application = await _load(db, application_id, ctx, for_update=True)

    if application.status not in (ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW):
        raise StateGuardError(
            f"Documents can only be reviewed for submitted applications. "
            f"Current status: {application.status.value}",
            "INVALID_APPLICATION_STATE",
            details={"current_status": application.status.value},
        )

    return await repository.update_fields(
        db, application, documents_reviewed=True, documents_reviewed_at=_now()
    )


async def review(
    db: AsyncSession, application_id: UUID, ctx: AuthContext, notes: str | None = None
) -> Application:
    """
    Move a submitted application under review.

    Raises:
        DocumentsNotReviewedError: If documents have not been reviewed
        InvalidApplicationStateError: If not submitted
    """
    application = await _load(db, application_id, ctx, for_update=True)

    if application.status == ApplicationStatus.SUBMITTED and not application.documents_reviewed:
        raise DocumentsNotReviewedError(application_id)

    return await _transition(
        db,
        application,
        Operation.REVIEW,
        ApplicationStatus.UNDER_REVIEW,
        ctx,
        notes=notes,
        reviewed_at=_now(),
        reviewed_by=ctx.user_id,
        review_notes=notes,
    )


async def flag_for_compliance(
    db: AsyncSession,
    application_id: UUID,
    reason: str | None,
    ctx: AuthContext,
    *,
    commit: bool = True,
) -> Application:
    reason = _require_reason(reason, "flag")
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.FLAG_FOR_COMPLIANCE,
        ApplicationStatus.FLAGGED_FOR_COMPLIANCE,
        ctx,
        notes=reason,
        commit=commit,
        compliance_reason=reason,
        flagged_at=_now(),
    )


async def resolve_compliance(
    db: AsyncSession, application_id: UUID, ctx: AuthContext, notes: str | None = None
) -> Application:
    """Return a flagged application to review once the concern is cleared."""
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.RESOLVE_COMPLIANCE,
        ApplicationStatus.UNDER_REVIEW,
        ctx,
        notes=notes,
    )


# ============================================
# Interview hand-off
# ============================================


async def schedule_interview(
    db: AsyncSession,
    application_id: UUID,
    ctx: AuthContext,
    *,
    notes: str | None = None,
    commit: bool = True,
) -> Application:
    """
    Move an application under review to interview_scheduled.

    Raises:
        DocumentsNotReviewedError: If documents have not been reviewed
        InvalidApplicationStateError: If not under review
    """
    application = await _load(db, application_id, ctx, for_update=True)

    if (
        application.status == ApplicationStatus.UNDER_REVIEW
        and not can_proceed_to_interview(application)
    ):
        raise DocumentsNotReviewedError(application_id)

    return await _transition(
        db,
        application,
        Operation.SCHEDULE_INTERVIEW,
        ApplicationStatus.INTERVIEW_SCHEDULED,
        ctx,
        notes=notes,
        commit=commit,
    )


async def complete_interview(
    db: AsyncSession,
    application_id: UUID,
    recommendation,
    ctx: AuthContext,
    *,
    notes: str | None = None,
    commit: bool = True,
) -> Application:
    """
    Apply an interview outcome.

    recommended / needs_followup -> interview_completed
    not_recommended -> rejected ("not recommended after interview evaluation")
    """
    value = getattr(recommendation, "value", recommendation)
    if value not in RECOMMENDATIONS:
        raise ValidationError(
            f"Unknown interview recommendation: {value!r}",
            details={"field": "overall_recommendation"},
        )

    application = await _load(db, application_id, ctx, for_update=True)
    now = _now()

    if value == NOT_RECOMMENDED:
        return await _transition(
            db,
            application,
            Operation.COMPLETE_INTERVIEW,
            ApplicationStatus.REJECTED,
            ctx,
            notes=notes or NOT_RECOMMENDED_REASON,
            commit=commit,
            interview_completed_at=now,
            rejected_at=now,
            rejection_reason=NOT_RECOMMENDED_REASON,
        )

    return await _transition(
        db,
        application,
        Operation.COMPLETE_INTERVIEW,
        ApplicationStatus.INTERVIEW_COMPLETED,
        ctx,
        notes=notes or f"Interview completed: {value}",
        commit=commit,
        interview_completed_at=now,
    )


# ============================================
# Decision flow
# ============================================


async def approve(
    db: AsyncSession,
    application_id: UUID,
    approved_amount,
    ctx: AuthContext,
    *,
    notes: str | None = None,
    requires_verification: bool | None = None,
) -> Application:
    """
    Approve an interviewed application.

    Goes to approved_pending_verification when enrollment verification is
    required (the default), otherwise straight to approved.

    Raises:
        InvalidAmountError: If approved_amount is not a positive number
        InvalidApplicationStateError: If the interview is not completed
    """
    try:
        amount = Decimal(str(approved_amount)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(approved_amount) from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(approved_amount)

    if requires_verification is None:
        requires_verification = settings.require_enrollment_verification

    target = (
        ApplicationStatus.APPROVED_PENDING_VERIFICATION
        if requires_verification
        else ApplicationStatus.APPROVED
    )

    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.APPROVE,
        target,
        ctx,
        notes=notes,
        approved_amount=amount,
        approved_at=_now(),
        approved_by=ctx.user_id,
        approval_notes=notes,
    )


async def confirm_enrollment(
    db: AsyncSession,
    application_id: UUID,
    ctx: AuthContext,
    *,
    notes: str | None = None,
    commit: bool = True,
) -> Application:
    """Final approval after the enrollment verification was verified."""
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.CONFIRM_ENROLLMENT,
        ApplicationStatus.APPROVED,
        ctx,
        notes=notes,
        commit=commit,
        verification_notes=notes,
    )


async def reject(
    db: AsyncSession,
    application_id: UUID,
    reason: str | None,
    ctx: AuthContext,
    *,
    commit: bool = True,
) -> Application:
    reason = _require_reason(reason, "reject")
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.REJECT,
        ApplicationStatus.REJECTED,
        ctx,
        notes=reason,
        commit=commit,
        rejection_reason=reason,
        rejected_at=_now(),
    )


# ============================================
# Disbursement flow
# ============================================


async def process(
    db: AsyncSession,
    application_id: UUID,
    ctx: AuthContext,
    *,
    notes: str | None = None,
    commit: bool = True,
) -> Application:
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.PROCESS,
        ApplicationStatus.GRANTS_PROCESSING,
        ctx,
        notes=notes,
        commit=commit,
        processed_at=_now(),
        processed_by=ctx.user_id,
    )


async def release(
    db: AsyncSession,
    application_id: UUID,
    ctx: AuthContext,
    *,
    notes: str | None = None,
    commit: bool = True,
) -> Application:
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.RELEASE,
        ApplicationStatus.GRANTS_DISBURSED,
        ctx,
        notes=notes,
        commit=commit,
        disbursed_at=_now(),
        disbursed_by=ctx.user_id,
    )


async def mark_payment_failed(
    db: AsyncSession,
    application_id: UUID,
    reason: str | None,
    ctx: AuthContext,
    *,
    commit: bool = True,
) -> Application:
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.MARK_PAYMENT_FAILED,
        ApplicationStatus.PAYMENT_FAILED,
        ctx,
        notes=reason,
        commit=commit,
    )


async def cancel(
    db: AsyncSession,
    application_id: UUID,
    reason: str | None,
    ctx: AuthContext,
    *,
    commit: bool = True,
) -> Application:
    reason = _require_reason(reason, "cancel")
    application = await _load(db, application_id, ctx, for_update=True)
    return await _transition(
        db,
        application,
        Operation.CANCEL,
        ApplicationStatus.CANCELLED,
        ctx,
        notes=reason,
        commit=commit,
        cancellation_reason=reason,
        cancelled_at=_now(),
    )

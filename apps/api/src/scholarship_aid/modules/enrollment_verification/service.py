"""
Enrollment Verification Service Layer

Applications approved with verification required wait in
approved_pending_verification until a reviewer accepts proof of enrollment.

Until the first proof is submitted an application has no verification record;
the list endpoint still shows it as a pending row (kind="pending_application")
so reviewers and school representatives see the whole backlog.

Status flow of a record:
    (no record) --submit proof--> pending
    pending --flag--> needs_review
    pending / needs_review --approve--> verified   (application -> approved)
    pending / needs_review --reject--> rejected   (application -> rejected)

School representatives only ever see and act on rows of their assigned school.
"""

import logging
from collections import defaultdict
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, school_scope
from scholarship_aid.core.exceptions import (
    ConflictError,
    NotFoundError,
    ServiceError,
    StateGuardError,
    ValidationError,
)
from scholarship_aid.modules.applications import service as application_service
from scholarship_aid.modules.applications.models import Application, ApplicationStatus
from scholarship_aid.modules.enrollment_verification import repository
from scholarship_aid.modules.enrollment_verification.models import (
    CLOSED_VERIFICATION_STATUSES,
    DECIDABLE_VERIFICATION_STATUSES,
    EnrollmentVerification,
    ScanVerdict,
    VerificationStatus,
)
from scholarship_aid.modules.enrollment_verification.schemas import (
    EnrollmentProofSubmit,
    SchoolVerificationStats,
    VerificationQueueItem,
    VerificationStatistics,
)
from scholarship_aid.modules.schools.repository import SchoolRepository

logger = logging.getLogger(__name__)

REJECTION_REASON_PREFIX = "Enrollment verification failed: "


class VerificationNotFoundError(NotFoundError):
    def __init__(self, verification_id: UUID):
        super().__init__(
            f"Enrollment verification {verification_id} not found", "VERIFICATION_NOT_FOUND"
        )


class InvalidVerificationStateError(StateGuardError):
    def __init__(self, action: str, current_status: VerificationStatus, allowed):
        super().__init__(
            f"Verification cannot be {action} in status {current_status.value}",
            "INVALID_VERIFICATION_STATE",
            details={
                "current_status": current_status.value,
                "allowed_from": sorted(s.value for s in allowed),
            },
        )


class InfectedDocumentError(ValidationError):
    def __init__(self):
        super().__init__(
            "Enrollment proof failed the malware scan and cannot be accepted",
            "INFECTED_DOCUMENT",
            details={"field": "scan_verdict"},
        )


def _record_item(record: EnrollmentVerification, application: Application) -> VerificationQueueItem:
    return VerificationQueueItem(
        kind="record",
        verification_id=record.id,
        application_id=application.id,
        student_id=application.student_id,
        student_name=application.student_name,
        student_number=application.student_number,
        school_id=application.school_id,
        school_name=application.school_name,
        status=record.status,
        enrollment_year=record.enrollment_year,
        enrollment_term=record.enrollment_term,
        is_currently_enrolled=record.is_currently_enrolled,
        proof_document_ref=record.proof_document_ref,
        verified_by_name=record.verified_by_name,
        verified_at=record.verified_at,
        verification_notes=record.verification_notes,
        created_at=record.created_at,
    )


def _pending_item(application: Application) -> VerificationQueueItem:
    return VerificationQueueItem(
        kind="pending_application",
        application_id=application.id,
        student_id=application.student_id,
        student_name=application.student_name,
        student_number=application.student_number,
        school_id=application.school_id,
        school_name=application.school_name,
        status=VerificationStatus.PENDING,
        created_at=application.approved_at or application.updated_at,
    )


async def _load(
    db: AsyncSession, verification_id: UUID, ctx: AuthContext, *, for_update: bool = False
) -> EnrollmentVerification:
    record = await repository.get_by_id(db, verification_id, for_update=for_update)

    if not record or not ctx.can_access_school(record.school_id):
        logger.warning(f"Verification not found or out of scope: {verification_id} ({ctx})")
        raise VerificationNotFoundError(verification_id)

    return record


# ============================================
# Queries
# ============================================


async def list_verifications(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    status: VerificationStatus | None = None,
    skip: int = 0,
    limit: int = 20,
) -> dict:
    """
    Stored verifications merged with applications still awaiting a first
    proof, newest first.

    Returns:
        Dict with items, total, skip and limit
    """
    skip = max(0, skip)
    limit = min(max(1, limit), 100)

    rows = await repository.list_records(
        db, scope=school_scope(ctx, EnrollmentVerification.school_id), status=status
    )
    items = [_record_item(record, application) for record, application in rows]

    if status is None or status == VerificationStatus.PENDING:
        pending = await repository.list_pending_applications(
            db, scope=school_scope(ctx, Application.school_id)
        )
        items.extend(_pending_item(application) for application in pending)

    items.sort(key=lambda item: item.created_at, reverse=True)

    return {"items": items[skip : skip + limit], "total": len(items), "skip": skip, "limit": limit}


async def get_verification(
    db: AsyncSession, verification_id: UUID, ctx: AuthContext
) -> EnrollmentVerification:
    return await _load(db, verification_id, ctx)


async def get_statistics(db: AsyncSession, ctx: AuthContext) -> VerificationStatistics:
    """
    Totals per status and per school. Applications awaiting their first
    proof are counted as pending.
    """
    by_status = {s.value: 0 for s in VerificationStatus}
    per_school: dict[UUID, dict[str, int]] = defaultdict(
        lambda: {s.value: 0 for s in VerificationStatus}
    )

    counts = await repository.count_by_school_and_status(
        db, scope=school_scope(ctx, EnrollmentVerification.school_id)
    )
    for school_id, status, count in counts:
        by_status[status.value] += count
        per_school[school_id][status.value] += count

    projections = await repository.count_pending_applications_by_school(
        db, scope=school_scope(ctx, Application.school_id)
    )
    projected_total = 0
    for school_id, count in projections:
        by_status[VerificationStatus.PENDING.value] += count
        per_school[school_id][VerificationStatus.PENDING.value] += count
        projected_total += count

    names = await SchoolRepository.get_names(db, list(per_school.keys()))

    return VerificationStatistics(
        total=sum(by_status.values()),
        by_status=by_status,
        pending_applications_without_record=projected_total,
        by_school=[
            SchoolVerificationStats(
                school_id=school_id,
                school_name=names.get(school_id),
                by_status=statuses,
                total=sum(statuses.values()),
            )
            for school_id, statuses in per_school.items()
        ],
    )


# ============================================
# Workflow
# ============================================


async def submit_enrollment_proof(
    db: AsyncSession,
    application_id: UUID,
    data: EnrollmentProofSubmit,
    ctx: AuthContext,
) -> EnrollmentVerification:
    """
    Create or refresh the application's verification as pending.

    Raises:
        InfectedDocumentError: If the document failed the malware scan
        ApplicationNotFoundError: If the application is missing or out of scope
        StateGuardError: If the application is not awaiting verification
        InvalidVerificationStateError: If the verification was already decided
    """
    if data.scan_verdict == ScanVerdict.INFECTED:
        logger.warning(
            f"Rejected infected enrollment proof for application {application_id}: "
            f"{data.proof_document_ref}"
        )
        raise InfectedDocumentError()

    application = await application_service.get_application(db, application_id, ctx)

    if application.status != ApplicationStatus.APPROVED_PENDING_VERIFICATION:
        raise StateGuardError(
            f"Application {application_id} is not awaiting enrollment verification",
            "INVALID_APPLICATION_STATE",
            details={"current_status": application.status.value},
        )

    record = await repository.get_by_application(db, application.id, for_update=True)

    if record and record.status in CLOSED_VERIFICATION_STATUSES:
        raise InvalidVerificationStateError(
            "resubmitted", record.status, {VerificationStatus.PENDING, VerificationStatus.NEEDS_REVIEW}
        )

    is_new = record is None
    if is_new:
        record = EnrollmentVerification(
            application_id=application.id,
            student_id=application.student_id,
            school_id=application.school_id,
        )

    record.status = VerificationStatus.PENDING
    record.proof_document_ref = data.proof_document_ref
    record.proof_scan_verdict = data.scan_verdict
    record.enrollment_year = data.enrollment_year
    record.enrollment_term = data.enrollment_term
    record.is_currently_enrolled = data.is_currently_enrolled

    try:
        if is_new:
            await repository.add(db, record)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            f"A verification for application {application_id} was created concurrently",
            "VERIFICATION_EXISTS",
        ) from e

    await db.refresh(record)
    logger.info(
        f"Enrollment proof {'submitted' if is_new else 'updated'} for application "
        f"{application_id} (verification {record.id})"
    )
    return record


async def approve(
    db: AsyncSession, verification_id: UUID, ctx: AuthContext, notes: str | None = None
) -> EnrollmentVerification:
    """
    Accept the enrollment proof and give the application final approval.

    Raises:
        InvalidVerificationStateError: If not pending or needs_review
        InvalidApplicationStateError: If the application left approved_pending_verification
    """
    record = await _load(db, verification_id, ctx, for_update=True)

    if record.status not in DECIDABLE_VERIFICATION_STATUSES:
        raise InvalidVerificationStateError(
            "approved", record.status, DECIDABLE_VERIFICATION_STATUSES
        )

    record.status = VerificationStatus.VERIFIED
    record.verified_by = ctx.user_id
    record.verified_by_name = ctx.actor_label
    record.verified_at = datetime.now(UTC)
    if notes:
        record.verification_notes = notes

    try:
        await repository.save(db, record, commit=False)
        await application_service.confirm_enrollment(
            db,
            record.application_id,
            ctx,
            notes=notes or f"Enrollment verified ({verification_id})",
            commit=False,
        )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(record)
    logger.info(f"Verification {verification_id} approved by {ctx.actor_label}")
    return record


async def reject(
    db: AsyncSession, verification_id: UUID, notes: str | None, ctx: AuthContext
) -> EnrollmentVerification:
    """
    Reject the enrollment proof; the application is rejected with it.

    Raises:
        ValidationError: If notes are missing
        InvalidVerificationStateError: If not pending or needs_review
    """
    if not notes or not notes.strip():
        raise ValidationError(
            "Notes are required to reject a verification", "REASON_REQUIRED", {"field": "notes"}
        )
    notes = notes.strip()

    record = await _load(db, verification_id, ctx, for_update=True)

    if record.status not in DECIDABLE_VERIFICATION_STATUSES:
        raise InvalidVerificationStateError(
            "rejected", record.status, DECIDABLE_VERIFICATION_STATUSES
        )

    record.status = VerificationStatus.REJECTED
    record.verified_by = ctx.user_id
    record.verified_by_name = ctx.actor_label
    record.verified_at = datetime.now(UTC)
    record.verification_notes = notes

    try:
        await repository.save(db, record, commit=False)
        await application_service.reject(
            db, record.application_id, REJECTION_REASON_PREFIX + notes, ctx, commit=False
        )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(record)
    logger.info(f"Verification {verification_id} rejected by {ctx.actor_label}: {notes}")
    return record


async def flag_for_review(
    db: AsyncSession, verification_id: UUID, notes: str | None, ctx: AuthContext
) -> EnrollmentVerification:
    """Send a pending verification to secondary review. The application is unchanged."""
    if not notes or not notes.strip():
        raise ValidationError(
            "Notes are required to flag a verification", "REASON_REQUIRED", {"field": "notes"}
        )

    record = await _load(db, verification_id, ctx, for_update=True)

    if record.status != VerificationStatus.PENDING:
        raise InvalidVerificationStateError(
            "flagged for review", record.status, {VerificationStatus.PENDING}
        )

    record.status = VerificationStatus.NEEDS_REVIEW
    record.verification_notes = notes.strip()

    record = await repository.save(db, record)
    logger.info(f"Verification {verification_id} flagged for review")
    return record

"""
Payment Service Layer

Payment reconciliation: the payable queue, materializing payments from
approved applications, processing them, and cancelling or failing them.

Guarantees:
- An application has at most one live payment. New payments carry the key
  "aid-application-<id>"; the partial unique indexes reject a second one, and
  legacy rows without a reference are matched by student identity and amount.
- Processing re-validates the payment and its application under row locks in
  the same transaction that completes the payment and releases the grant, so
  a payment completes exactly once.
- processApprovedApplications holds a durable claim row per application
  between creating and processing, so a concurrent submission of the same
  application is refused.
- Distribution logging after processing is best effort: a failure is logged
  and returned as a warning; the payment stays completed.

Bulk operations run one transaction per item and report per-item outcomes.
"""

import logging
import uuid
from datetime import UTC, date, datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, school_scope
from scholarship_aid.core.config import settings
from scholarship_aid.core.exceptions import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ServiceError,
    StateGuardError,
    ValidationError,
)
from scholarship_aid.modules.applications import repository as application_repository
from scholarship_aid.modules.applications import service as application_service
from scholarship_aid.modules.applications.models import Application, ApplicationStatus
from scholarship_aid.modules.applications.state_machine import (
    PAYABLE_PENDING_STATUSES,
    can_be_processed,
    can_be_released,
)
from scholarship_aid.modules.distribution_logs import service as distribution_service
from scholarship_aid.modules.payments import repository
from scholarship_aid.modules.payments.models import (
    CANCELLABLE_PAYMENT_STATUSES,
    PROCESSABLE_PAYMENT_STATUSES,
    Payment,
    PaymentStatus,
    idempotency_key_for,
)
from scholarship_aid.modules.payments.queue import (
    APPLICATION,
    PAYMENT,
    PendingApplication,
    QueueItemRef,
    RealPayment,
    build_payable_queue,
    compute_queue_statistics,
)

logger = logging.getLogger(__name__)

FAILABLE_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.SCHEDULED, PaymentStatus.PROCESSING}
)

# Payments voided when their application is cancelled
VOIDABLE_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.SCHEDULED, PaymentStatus.FAILED)


# ============================================
# Errors
# ============================================


class PaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id: UUID):
        super().__init__(f"Payment {payment_id} not found", "PAYMENT_NOT_FOUND")


class SyntheticPaymentError(ConflictError):
    """A pending application was submitted where a stored payment is required."""

    def __init__(self, application_id: UUID):
        super().__init__(
            f"Application {application_id} has no payment yet; create it from the application first",
            "SYNTHETIC_PAYMENT",
            details={"application_id": str(application_id)},
        )


class PaymentAlreadyCompletedError(ConflictError):
    def __init__(self, payment_id: UUID):
        super().__init__(
            f"Payment {payment_id} is already completed",
            "PAYMENT_ALREADY_COMPLETED",
            details={"payment_id": str(payment_id)},
        )


class InvalidPaymentStateError(StateGuardError):
    def __init__(self, action: str, payment: Payment, allowed):
        super().__init__(
            f"Cannot {action} a payment in status {payment.payment_status.value}",
            "INVALID_PAYMENT_STATE",
            details={
                "payment_id": str(payment.id),
                "current_status": payment.payment_status.value,
                "allowed_from": sorted(s.value for s in allowed),
            },
        )


class ApplicationNotPayableError(StateGuardError):
    def __init__(self, application: Application, action: str = "be paid"):
        super().__init__(
            f"Application {application.id} cannot {action} in status {application.status.value}",
            "APPLICATION_NOT_PAYABLE",
            details={
                "application_id": str(application.id),
                "current_status": application.status.value,
            },
        )


class PaymentExistsError(ConflictError):
    def __init__(self, application_id: UUID, payment_id: UUID, matched_by: str):
        super().__init__(
            f"Application {application_id} already has payment {payment_id}",
            "PAYMENT_EXISTS",
            details={
                "application_id": str(application_id),
                "payment_id": str(payment_id),
                "matched_by": matched_by,
            },
        )


class InFlightConflictError(ConflictError):
    def __init__(self, application_ids: list[UUID]):
        super().__init__(
            "Some applications are already being processed",
            "PROCESSING_IN_FLIGHT",
            details={"application_ids": [str(a) for a in application_ids]},
        )


# ============================================
# Helpers
# ============================================


def _now() -> datetime:
    return datetime.now(UTC)


def _require_reason(reason: str | None, action: str) -> str:
    if reason is None or not reason.strip():
        raise ValidationError(
            f"A reason is required to {action}", "REASON_REQUIRED", {"field": "reason"}
        )
    return reason.strip()


def generate_reference_number(payment_id: UUID, when: datetime | None = None) -> str:
    return f"PAY-{(when or _now()):%Y%m%d}-{str(payment_id)[:8].upper()}"


def _outcome(ref: QueueItemRef, success: bool, **fields) -> dict:
    return {"kind": ref.kind, "id": ref.id, "success": success, **fields}


def _error_outcome(ref: QueueItemRef, error: ServiceError) -> dict:
    return _outcome(ref, False, error=error.error_code, message=error.message)


async def _load_payment(
    db: AsyncSession, payment_id: UUID, ctx: AuthContext, *, for_update: bool = False
) -> Payment:
    payment = await repository.get_payment(db, payment_id, for_update=for_update)

    if not payment or not ctx.can_access_school(payment.school_id):
        logger.warning(f"Payment not found or out of scope: {payment_id} ({ctx})")
        raise PaymentNotFoundError(payment_id)

    return payment


async def _load_application_for_update(
    db: AsyncSession, application_id: UUID, ctx: AuthContext
) -> Application:
    application = await application_repository.get_by_id(db, application_id, for_update=True)

    if not application or not ctx.can_access_school(application.school_id):
        raise application_service.ApplicationNotFoundError(application_id)

    return application


async def _release_grant(db: AsyncSession, application_id: UUID, ctx: AuthContext, notes: str) -> None:
    """
    Walk the application to grants_disbursed inside the caller's transaction.

    approved / payment_failed -> grants_processing -> grants_disbursed;
    grants_processing -> grants_disbursed.
    """
    application = await _load_application_for_update(db, application_id, ctx)

    if can_be_processed(application):
        await application_service.process(db, application_id, ctx, notes=notes, commit=False)
    elif not can_be_released(application):
        raise ApplicationNotPayableError(application)

    await application_service.release(db, application_id, ctx, notes=notes, commit=False)


# ============================================
# Queue
# ============================================


async def get_payable_queue(db: AsyncSession, ctx: AuthContext) -> dict:
    """
    The unified queue: every stored payment plus pending entries for
    approved applications not yet covered by one.

    Returns:
        Dict with items (RealPayment | PendingApplication) and statistics
    """
    payments = await repository.list_payments(db, scope=school_scope(ctx, Payment.school_id))
    approved = await application_repository.get_by_statuses(
        db, [ApplicationStatus.APPROVED], scope=school_scope(ctx, Application.school_id)
    )

    queue = build_payable_queue(
        [RealPayment.from_model(p) for p in payments],
        [PendingApplication.from_model(a, settings.default_payment_method) for a in approved],
        settings.payment_match_epsilon,
    )

    return {"items": queue, "statistics": compute_queue_statistics(queue)}


async def get_payment(db: AsyncSession, payment_id: UUID, ctx: AuthContext) -> Payment:
    return await _load_payment(db, payment_id, ctx)


# ============================================
# Processing
# ============================================


async def process_payment(
    db: AsyncSession,
    ref: QueueItemRef,
    ctx: AuthContext,
    *,
    reference_number: str | None = None,
    transaction_fee=None,
    notes: str | None = None,
    auto_log: bool = True,
) -> dict:
    """
    Complete a stored payment and release its grant.

    Returns:
        Dict with the payment, the distribution batch (or None) and warnings

    Raises:
        SyntheticPaymentError: If ref points at a pending application
        PaymentNotFoundError: If the payment is missing or out of scope
        PaymentAlreadyCompletedError: If the payment was already completed
        InvalidPaymentStateError: If the payment was cancelled
        ApplicationNotPayableError: If the application cannot be released
    """
    if ref.is_synthetic:
        logger.warning(f"Refusing to process pending application {ref.id}: no payment exists yet")
        raise SyntheticPaymentError(ref.id)

    payment = await _load_payment(db, ref.id, ctx, for_update=True)

    if payment.payment_status == PaymentStatus.COMPLETED:
        logger.warning(f"Payment {payment.id} already completed, ignoring")
        raise PaymentAlreadyCompletedError(payment.id)
    if payment.payment_status not in PROCESSABLE_PAYMENT_STATUSES:
        raise InvalidPaymentStateError("process", payment, PROCESSABLE_PAYMENT_STATUSES)

    now = _now()
    try:
        if payment.application_id is not None:
            await _release_grant(
                db,
                payment.application_id,
                ctx,
                notes=f"Payment {payment.reference_number or payment.id} completed",
            )

        payment.payment_status = PaymentStatus.COMPLETED
        payment.processed_date = now
        payment.processed_by = ctx.actor_label
        payment.failure_reason = None
        payment.reference_number = (
            reference_number or payment.reference_number or generate_reference_number(payment.id, now)
        )
        if transaction_fee is not None:
            payment.transaction_fee = transaction_fee
        if notes:
            payment.notes = notes

        await repository.save(db, payment, commit=False)
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(payment)
    logger.info(
        f"Payment {payment.id} completed ({payment.amount} {payment.currency}) by {ctx.actor_label}"
    )

    warnings: list[str] = []
    distribution = None
    if auto_log:
        distribution = await _log_distribution(db, [payment.id], ctx, warnings, notes=notes)
        if distribution is None:
            # The failed log rolled the session back and expired the payment
            await db.refresh(payment)

    return {"payment": payment, "distribution": distribution, "warnings": warnings}


async def _log_distribution(
    db: AsyncSession,
    payment_ids: list[UUID],
    ctx: AuthContext,
    warnings: list[str],
    notes: str | None = None,
) -> dict | None:
    """Best-effort distribution logging; failures become warnings."""
    try:
        distribution = await distribution_service.create_logs_from_payments(
            db, payment_ids, ctx, processed_by=ctx.actor_label, notes=notes
        )
    except Exception as e:
        logger.error(f"Distribution logging failed for payments {payment_ids}: {e}", exc_info=True)
        await db.rollback()
        warnings.append(
            DependencyError(
                f"Payments were completed but distribution logging failed: {e}",
                "DISTRIBUTION_LOG_FAILED",
            ).message
        )
        return None

    for result in distribution["results"]:
        if not result["success"]:
            warnings.append(f"Distribution log skipped for {result['payment_id']}: {result['message']}")

    return distribution


async def bulk_process(
    db: AsyncSession,
    refs: list[QueueItemRef],
    ctx: AuthContext,
    *,
    notes: str | None = None,
) -> dict:
    """
    Process many queue entries, one transaction each.

    Pending applications and already-completed payments are rejected and
    reported in their own lists. Successful payments are logged together
    in one distribution batch.
    """
    refs = list(dict.fromkeys(refs))

    processed: list[dict] = []
    rejected_synthetic: list[dict] = []
    rejected_completed: list[dict] = []
    failed: list[dict] = []

    for ref in refs:
        if ref.is_synthetic:
            rejected_synthetic.append(_error_outcome(ref, SyntheticPaymentError(ref.id)))
            continue

        try:
            result = await process_payment(db, ref, ctx, notes=notes, auto_log=False)
        except PaymentAlreadyCompletedError as e:
            rejected_completed.append(_error_outcome(ref, e))
        except ServiceError as e:
            logger.warning(f"Bulk processing failed for payment {ref.id}: {e.message}")
            failed.append(_error_outcome(ref, e))
        else:
            processed.append(_outcome(ref, True, payment_id=result["payment"].id))

    warnings: list[str] = []
    batch_number = None
    if processed:
        distribution = await _log_distribution(
            db, [item["payment_id"] for item in processed], ctx, warnings, notes=notes
        )
        if distribution:
            batch_number = distribution["batch_number"]

    unsuccessful = len(rejected_synthetic) + len(rejected_completed) + len(failed)
    logger.info(
        f"Bulk processing by {ctx.actor_label}: {len(processed)} processed, "
        f"{len(rejected_synthetic)} synthetic, {len(rejected_completed)} already completed, "
        f"{len(failed)} failed"
    )

    return {
        "processed": processed,
        "rejected_synthetic": rejected_synthetic,
        "rejected_completed": rejected_completed,
        "failed": failed,
        "summary": {"total": len(refs), "successful": len(processed), "failed": unsuccessful},
        "batch_number": batch_number,
        "warnings": warnings,
    }


# ============================================
# Materialization
# ============================================


async def _create_payment_for_application(
    db: AsyncSession,
    application_id: UUID,
    ctx: AuthContext,
    *,
    payment_method: str | None,
    scheduled_date: date | None,
    notes: str | None,
) -> Payment:
    try:
        application = await _load_application_for_update(db, application_id, ctx)

        if application.status not in PAYABLE_PENDING_STATUSES:
            raise ApplicationNotPayableError(application)

        existing = await repository.get_live_payment_for_application(db, application.id)
        if existing:
            raise PaymentExistsError(application.id, existing.id, "application")

        legacy = await repository.find_unlinked_identity_match(
            db,
            application.student_name,
            application.student_number,
            application.payable_amount,
            settings.payment_match_epsilon,
        )
        if legacy:
            logger.warning(
                f"Application {application.id} matches legacy payment {legacy.id} by identity"
            )
            raise PaymentExistsError(application.id, legacy.id, "identity")

        is_future = scheduled_date is not None and scheduled_date > _now().date()
        payment = Payment(
            application_id=application.id,
            idempotency_key=idempotency_key_for(application.id),
            student_id=application.student_id,
            student_name=application.student_name,
            student_number=application.student_number,
            school_id=application.school_id,
            school_name=application.school_name,
            aid_type=application.category,
            amount=application.payable_amount,
            currency=application.currency,
            payment_method=(
                payment_method or application.payment_method or settings.default_payment_method
            ),
            payment_status=PaymentStatus.SCHEDULED if is_future else PaymentStatus.PENDING,
            scheduled_date=scheduled_date,
            notes=notes or f"Approved application - {application.category}",
        )
        await repository.add(db, payment)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Concurrent payment creation for application {application_id}: {e}")
        raise ConflictError(
            f"A payment for application {application_id} was created concurrently",
            "PAYMENT_EXISTS",
            details={"application_id": str(application_id)},
        ) from e
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(payment)
    logger.info(f"Created payment {payment.id} for application {application_id} ({payment.amount})")
    return payment


async def create_from_applications(
    db: AsyncSession,
    application_ids: list[UUID],
    ctx: AuthContext,
    *,
    payment_method: str | None = None,
    scheduled_date: date | None = None,
    notes: str | None = None,
) -> dict:
    """
    Create one payment per approved application.

    Returns:
        Dict with per-item results and a summary; a failing item never
        affects the others
    """
    application_ids = list(dict.fromkeys(application_ids))
    results: list[dict] = []

    for application_id in application_ids:
        ref = QueueItemRef(APPLICATION, application_id)
        try:
            payment = await _create_payment_for_application(
                db,
                application_id,
                ctx,
                payment_method=payment_method,
                scheduled_date=scheduled_date,
                notes=notes,
            )
        except ServiceError as e:
            results.append(_error_outcome(ref, e))
        else:
            results.append(_outcome(ref, True, payment_id=payment.id))

    successful = sum(1 for r in results if r["success"])
    return {
        "results": results,
        "summary": {
            "total": len(results),
            "successful": successful,
            "failed": len(results) - successful,
        },
    }


async def _claim_applications(
    db: AsyncSession, application_ids: list[UUID], claim_token: UUID, ctx: AuthContext
) -> None:
    now = _now()
    await repository.purge_stale_claims(
        db, now - timedelta(minutes=settings.processing_claim_ttl_minutes)
    )

    claimed = await repository.get_claimed_application_ids(db, application_ids)
    if claimed:
        logger.warning(f"Applications already in flight: {claimed}")
        raise InFlightConflictError(claimed)

    try:
        await repository.insert_claims(db, application_ids, claim_token, ctx.actor_label, now)
    except IntegrityError as e:
        await db.rollback()
        claimed = await repository.get_claimed_application_ids(db, application_ids)
        logger.warning(f"Lost claim race for applications {claimed}")
        raise InFlightConflictError(claimed or application_ids) from e


async def _release_claims(db: AsyncSession, claim_token: UUID) -> None:
    try:
        await repository.release_claims(db, claim_token)
    except Exception as e:
        # Left for the stale-claim purge
        logger.error(f"Failed to release processing claims {claim_token}: {e}", exc_info=True)
        await db.rollback()


async def process_approved_applications(
    db: AsyncSession,
    application_ids: list[UUID],
    ctx: AuthContext,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Create payments for pending applications and process them immediately.

    Raises:
        InFlightConflictError: If any application is already being processed
    """
    application_ids = list(dict.fromkeys(application_ids))
    if not application_ids:
        raise ValidationError(
            "At least one application id is required", details={"field": "application_ids"}
        )

    claim_token = uuid.uuid4()
    await _claim_applications(db, application_ids, claim_token, ctx)

    try:
        created = await create_from_applications(
            db, application_ids, ctx, payment_method=payment_method, notes=notes
        )
        payment_refs = [
            QueueItemRef(PAYMENT, r["payment_id"]) for r in created["results"] if r["success"]
        ]
        processing = (
            await bulk_process(db, payment_refs, ctx, notes=notes) if payment_refs else None
        )
    finally:
        await _release_claims(db, claim_token)

    return {
        "created": created,
        "processing": processing,
        "warnings": processing["warnings"] if processing else [],
    }


# ============================================
# Cancellation & failure
# ============================================


async def cancel_payment(
    db: AsyncSession, payment_id: UUID, reason: str | None, ctx: AuthContext
) -> Payment:
    """
    Cancel a pending or scheduled payment. The payment becomes void and its
    application returns to the payable queue.
    """
    reason = _require_reason(reason, "cancel a payment")
    payment = await _load_payment(db, payment_id, ctx, for_update=True)

    if payment.payment_status not in CANCELLABLE_PAYMENT_STATUSES:
        raise InvalidPaymentStateError("cancel", payment, CANCELLABLE_PAYMENT_STATUSES)

    payment.payment_status = PaymentStatus.CANCELLED
    payment.cancellation_reason = reason
    payment.cancelled_at = _now()

    payment = await repository.save(db, payment)
    logger.info(f"Payment {payment_id} cancelled by {ctx.actor_label}: {reason}")
    return payment


async def fail_payment(
    db: AsyncSession, payment_id: UUID, reason: str | None, ctx: AuthContext
) -> Payment:
    """Record a failed disbursement attempt; the application moves to payment_failed."""
    reason = _require_reason(reason, "fail a payment")
    payment = await _load_payment(db, payment_id, ctx, for_update=True)

    if payment.payment_status not in FAILABLE_PAYMENT_STATUSES:
        raise InvalidPaymentStateError("fail", payment, FAILABLE_PAYMENT_STATUSES)

    payment.payment_status = PaymentStatus.FAILED
    payment.failure_reason = reason

    try:
        await repository.save(db, payment, commit=False)
        if payment.application_id is not None:
            await application_service.mark_payment_failed(
                db, payment.application_id, reason, ctx, commit=False
            )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(payment)
    logger.warning(f"Payment {payment_id} failed: {reason}")
    return payment


async def cancel_application(
    db: AsyncSession, application_id: UUID, reason: str | None, ctx: AuthContext
) -> Application:
    """
    Cancel an application waiting for payment, voiding its open payments.

    Raises:
        ValidationError: If no reason is given
        ApplicationNotPayableError: If the application is not approved or payment_failed
    """
    reason = _require_reason(reason, "cancel an application")

    try:
        application = await _load_application_for_update(db, application_id, ctx)
        if application.status not in PAYABLE_PENDING_STATUSES:
            raise ApplicationNotPayableError(application, "be cancelled")

        now = _now()
        voided = await repository.get_open_payments_for_application(
            db, application.id, VOIDABLE_PAYMENT_STATUSES
        )
        for payment in voided:
            payment.payment_status = PaymentStatus.CANCELLED
            payment.cancellation_reason = f"Application cancelled: {reason}"
            payment.cancelled_at = now

        application = await application_service.cancel(
            db, application.id, reason, ctx, commit=False
        )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise

    await db.refresh(application)
    logger.info(
        f"Application {application_id} cancelled from the payment queue "
        f"({len(voided)} payments voided)"
    )
    return application

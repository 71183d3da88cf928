"""
Distribution Log Service Layer

Writes batches of distribution logs for completed payments.

Rules:
- only completed payments are logged
- a payment is logged at most once (unique payment reference); a second
  attempt is reported per item as ALREADY_LOGGED
- the batch number defaults to BATCH-YYYY-MM-DDTHH-MM-SS (UTC)
- before commit, the batch's log amounts must sum to the amounts of the
  payments they reference; otherwise nothing is written
- statistics are recomputed from the table after every write

Called by the payments module after processing (best effort) and by the
manual batch endpoint.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, school_scope
from scholarship_aid.core.config import settings
from scholarship_aid.core.exceptions import ConflictError, NotFoundError, ServiceError, ValidationError
from scholarship_aid.modules.distribution_logs import repository
from scholarship_aid.modules.distribution_logs.models import DistributionLog, DistributionStatus
from scholarship_aid.modules.payments.models import PaymentStatus

logger = logging.getLogger(__name__)

BATCH_NUMBER_FORMAT = "BATCH-%Y-%m-%dT%H-%M-%S"


class DistributionLogNotFoundError(NotFoundError):
    def __init__(self, log_id: UUID):
        super().__init__(f"Distribution log {log_id} not found", "DISTRIBUTION_LOG_NOT_FOUND")


class BatchIntegrityError(ServiceError):
    """Batch log amounts disagree with the referenced payments."""

    def __init__(self, batch_number: str, log_total, payment_total):
        super().__init__(
            f"Batch {batch_number} log total {log_total} does not match payment total {payment_total}",
            "BATCH_INTEGRITY_VIOLATION",
            status_code=500,
            details={
                "batch_number": batch_number,
                "log_total": str(log_total),
                "payment_total": str(payment_total),
            },
        )


def generate_batch_number(now: datetime | None = None) -> str:
    return (now or datetime.now(UTC)).strftime(BATCH_NUMBER_FORMAT)


def _outcome(payment_id: UUID, error: str, message: str) -> dict:
    return {"payment_id": payment_id, "success": False, "error": error, "message": message}


async def create_logs_from_payments(
    db: AsyncSession,
    payment_ids: list[UUID],
    ctx: AuthContext,
    *,
    batch_number: str | None = None,
    processed_by: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Log a batch of completed payments.

    Payments that are missing, not completed or already logged are reported
    per item and skipped; the rest are written together.

    Returns:
        Dict with batch_number, per-item results, successful and failed
        counts, batch_total and table-wide statistics

    Raises:
        ValidationError: If no payment ids are given
        BatchIntegrityError: If the batch totals disagree (nothing is written)
        ConflictError: If a payment was logged concurrently (nothing is written)
    """
    unique_ids = list(dict.fromkeys(payment_ids))
    if not unique_ids:
        raise ValidationError("At least one payment id is required", details={"field": "payment_ids"})

    batch_number = batch_number or generate_batch_number()
    processed_by = processed_by or ctx.name or settings.default_processed_by
    now = datetime.now(UTC)

    payments = await repository.get_payments(db, unique_ids)
    already_logged = await repository.get_logged_payment_ids(db, unique_ids)

    results: list[dict] = []
    logs: list[DistributionLog] = []

    for payment_id in unique_ids:
        payment = payments.get(payment_id)

        if payment is None or not ctx.can_access_school(payment.school_id):
            results.append(_outcome(payment_id, "PAYMENT_NOT_FOUND", "Payment not found"))
            continue
        if payment.payment_status != PaymentStatus.COMPLETED:
            results.append(
                _outcome(
                    payment_id,
                    "PAYMENT_NOT_COMPLETED",
                    f"Payment is {payment.payment_status.value}, only completed payments can be logged",
                )
            )
            continue
        if payment_id in already_logged:
            results.append(
                _outcome(payment_id, "ALREADY_LOGGED", "Payment already has a distribution log")
            )
            continue

        log = DistributionLog(
            payment_id=payment.id,
            application_id=payment.application_id,
            student_id=payment.student_id,
            student_name=payment.student_name,
            student_number=payment.student_number,
            school_id=payment.school_id,
            school_name=payment.school_name,
            aid_type=payment.aid_type,
            amount=payment.amount,
            currency=payment.currency,
            payment_method=payment.payment_method,
            reference_number=payment.reference_number,
            distribution_status=DistributionStatus.COMPLETED,
            batch_number=batch_number,
            processed_by=processed_by,
            processed_date=payment.processed_date or now,
            notes=notes,
        )
        logs.append(log)
        results.append({"payment_id": payment_id, "success": True, "amount": payment.amount})

    batch_total = sum((log.amount for log in logs), Decimal("0.00"))

    if logs:
        try:
            await repository.add_logs(db, logs)

            log_total, payment_total = await repository.get_batch_totals(db, batch_number)
            if log_total != payment_total:
                logger.error(
                    f"Batch {batch_number} integrity check failed: "
                    f"logs={log_total} payments={payment_total}"
                )
                raise BatchIntegrityError(batch_number, log_total, payment_total)

            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning(f"Concurrent distribution logging detected for batch {batch_number}: {e}")
            raise ConflictError(
                "One or more payments were logged concurrently; no logs were written",
                "ALREADY_LOGGED",
                details={"batch_number": batch_number},
            ) from e
        except ServiceError:
            await db.rollback()
            raise

        log_ids = {log.payment_id: log.id for log in logs}
        for result in results:
            if result["success"]:
                result["log_id"] = log_ids[result["payment_id"]]

    successful = len(logs)
    failed = len(results) - successful

    logger.info(
        f"Distribution batch {batch_number}: {successful} logged, {failed} skipped "
        f"(total {batch_total})"
    )

    statistics = await repository.get_statistics(db)

    return {
        "batch_number": batch_number,
        "results": results,
        "successful": successful,
        "failed": failed,
        "batch_total": batch_total,
        "statistics": statistics,
    }


async def list_logs(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    batch_number: str | None = None,
    status: DistributionStatus | None = None,
    school_id: UUID | None = None,
    aid_type: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    skip: int = 0,
    limit: int = 20,
) -> dict:
    skip = max(0, skip)
    limit = min(max(1, limit), 100)

    logs, total = await repository.list_logs(
        db,
        scope=school_scope(ctx, DistributionLog.school_id),
        batch_number=batch_number,
        status=status,
        school_id=school_id,
        aid_type=aid_type,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return {"logs": logs, "total": total, "skip": skip, "limit": limit}


async def get_log(db: AsyncSession, log_id: UUID, ctx: AuthContext) -> DistributionLog:
    log = await repository.get_by_id(db, log_id)
    if not log or not ctx.can_access_school(log.school_id):
        raise DistributionLogNotFoundError(log_id)
    return log


async def get_statistics(db: AsyncSession, ctx: AuthContext) -> dict:
    return await repository.get_statistics(db, scope=school_scope(ctx, DistributionLog.school_id))


async def update_status(
    db: AsyncSession,
    log_id: UUID,
    status: DistributionStatus,
    ctx: AuthContext,
    notes: str | None = None,
) -> DistributionLog:
    """Change a log's distribution status. Amounts and references never change."""
    log = await repository.get_by_id(db, log_id, for_update=True)
    if not log or not ctx.can_access_school(log.school_id):
        raise DistributionLogNotFoundError(log_id)

    previous = log.distribution_status
    log.distribution_status = status
    if notes:
        log.notes = notes

    log = await repository.save(db, log)
    logger.info(
        f"Distribution log {log_id}: {previous.value} -> {status.value} by {ctx.actor_label}"
    )
    return log

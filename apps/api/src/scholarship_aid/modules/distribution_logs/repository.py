"""
Distribution Log Repository
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from scholarship_aid.modules.distribution_logs.models import DistributionLog, DistributionStatus
from scholarship_aid.modules.payments.models import Payment


async def get_payments(db: AsyncSession, payment_ids: Sequence[UUID]) -> dict[UUID, Payment]:
    result = await db.execute(select(Payment).where(Payment.id.in_(payment_ids)))
    return {payment.id: payment for payment in result.scalars().all()}


async def get_logged_payment_ids(db: AsyncSession, payment_ids: Sequence[UUID]) -> set[UUID]:
    result = await db.execute(
        select(DistributionLog.payment_id).where(DistributionLog.payment_id.in_(payment_ids))
    )
    return set(result.scalars().all())


async def add_logs(db: AsyncSession, logs: Sequence[DistributionLog]) -> None:
    db.add_all(list(logs))
    await db.flush()


async def get_batch_totals(db: AsyncSession, batch_number: str) -> tuple[Decimal, Decimal]:
    """
    Sum of log amounts in a batch and sum of the amounts of the payments
    those logs reference.
    """
    result = await db.execute(
        select(
            func.coalesce(func.sum(DistributionLog.amount), 0),
            func.coalesce(func.sum(Payment.amount), 0),
        )
        .select_from(DistributionLog)
        .join(Payment, Payment.id == DistributionLog.payment_id)
        .where(DistributionLog.batch_number == batch_number)
    )
    log_total, payment_total = result.one()
    return Decimal(log_total), Decimal(payment_total)


async def get_statistics(db: AsyncSession, *, scope: ColumnElement[bool] | None = None) -> dict:
    """Aggregates over the whole log table (or the caller's slice of it)."""
    scope = scope if scope is not None else true()

    totals = await db.execute(
        select(
            func.count(DistributionLog.id),
            func.coalesce(func.sum(DistributionLog.amount), 0),
            func.count(func.distinct(DistributionLog.student_number)),
            func.count(func.distinct(DistributionLog.school_id)),
        ).where(scope)
    )
    total_logs, total_amount, unique_students, unique_schools = totals.one()

    per_status = await db.execute(
        select(DistributionLog.distribution_status, func.count(DistributionLog.id))
        .where(scope)
        .group_by(DistributionLog.distribution_status)
    )
    by_status = {s.value: 0 for s in DistributionStatus}
    for status, count in per_status.all():
        by_status[status.value] = count

    return {
        "total_logs": total_logs,
        "total_amount": Decimal(total_amount),
        "unique_students": unique_students,
        "unique_schools": unique_schools,
        "by_status": by_status,
    }


async def get_by_id(
    db: AsyncSession, log_id: UUID, *, for_update: bool = False
) -> DistributionLog | None:
    if not for_update:
        return await db.get(DistributionLog, log_id)

    result = await db.execute(
        select(DistributionLog).where(DistributionLog.id == log_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def save(db: AsyncSession, log: DistributionLog) -> DistributionLog:
    await db.commit()
    await db.refresh(log)
    return log


async def list_logs(
    db: AsyncSession,
    *,
    scope: ColumnElement[bool],
    batch_number: str | None = None,
    status: DistributionStatus | None = None,
    school_id: UUID | None = None,
    aid_type: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[DistributionLog], int]:
    conditions = [scope]

    if batch_number:
        conditions.append(DistributionLog.batch_number == batch_number)
    if status:
        conditions.append(DistributionLog.distribution_status == status)
    if school_id:
        conditions.append(DistributionLog.school_id == school_id)
    if aid_type:
        conditions.append(DistributionLog.aid_type == aid_type)
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(
                DistributionLog.student_name.ilike(pattern),
                DistributionLog.student_number.ilike(pattern),
                DistributionLog.reference_number.ilike(pattern),
                DistributionLog.batch_number.ilike(pattern),
            )
        )
    if date_from:
        conditions.append(DistributionLog.processed_date >= date_from)
    if date_to:
        conditions.append(DistributionLog.processed_date <= date_to)

    total = (
        await db.execute(select(func.count(DistributionLog.id)).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(DistributionLog)
        .where(*conditions)
        .order_by(DistributionLog.processed_date.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total

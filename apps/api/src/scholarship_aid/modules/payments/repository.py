"""
Payment Repository

Database operations for payments and processing claims.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from scholarship_aid.modules.payments.models import Payment, PaymentProcessingClaim, PaymentStatus

logger = logging.getLogger(__name__)


# ============================================
# Payments
# ============================================


async def get_payment(
    db: AsyncSession, payment_id: UUID, *, for_update: bool = False
) -> Payment | None:
    if not for_update:
        return await db.get(Payment, payment_id)

    result = await db.execute(select(Payment).where(Payment.id == payment_id).with_for_update())
    return result.scalar_one_or_none()


async def list_payments(db: AsyncSession, *, scope: ColumnElement[bool]) -> list[Payment]:
    """Every payment visible to the caller, newest first."""
    result = await db.execute(select(Payment).where(scope).order_by(Payment.created_at.desc()))
    return list(result.scalars().all())


async def get_live_payment_for_application(
    db: AsyncSession, application_id: UUID
) -> Payment | None:
    """The non-cancelled payment referencing the application, if any."""
    result = await db.execute(
        select(Payment).where(
            Payment.application_id == application_id,
            Payment.payment_status != PaymentStatus.CANCELLED,
        )
    )
    return result.scalars().first()


async def find_unlinked_identity_match(
    db: AsyncSession,
    student_name: str,
    student_number: str,
    amount: Decimal,
    epsilon: Decimal,
) -> Payment | None:
    """
    A live payment without an application reference for the same student
    identity and an amount within epsilon.
    """
    result = await db.execute(
        select(Payment).where(
            Payment.application_id.is_(None),
            Payment.payment_status != PaymentStatus.CANCELLED,
            Payment.student_name == student_name,
            Payment.student_number == student_number,
            func.abs(Payment.amount - amount) < epsilon,
        )
    )
    return result.scalars().first()


async def get_open_payments_for_application(
    db: AsyncSession, application_id: UUID, statuses: Sequence[PaymentStatus]
) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.application_id == application_id, Payment.payment_status.in_(statuses))
        .with_for_update()
    )
    return list(result.scalars().all())


async def add(db: AsyncSession, payment: Payment) -> Payment:
    db.add(payment)
    await db.flush()
    return payment


async def save(db: AsyncSession, payment: Payment, *, commit: bool = True) -> Payment:
    if commit:
        await db.commit()
        await db.refresh(payment)
    else:
        await db.flush()
    return payment


# ============================================
# Processing claims
# ============================================


async def get_claimed_application_ids(db: AsyncSession, application_ids: Sequence[UUID]) -> list[UUID]:
    result = await db.execute(
        select(PaymentProcessingClaim.application_id).where(
            PaymentProcessingClaim.application_id.in_(application_ids)
        )
    )
    return list(result.scalars().all())


async def insert_claims(
    db: AsyncSession,
    application_ids: Sequence[UUID],
    claim_token: UUID,
    claimed_by: str,
    claimed_at: datetime,
) -> None:
    """Insert and commit one claim per application. Raises IntegrityError on overlap."""
    db.add_all(
        [
            PaymentProcessingClaim(
                application_id=application_id,
                claim_token=claim_token,
                claimed_by=claimed_by,
                claimed_at=claimed_at,
            )
            for application_id in application_ids
        ]
    )
    await db.commit()


async def release_claims(db: AsyncSession, claim_token: UUID) -> int:
    result = await db.execute(
        delete(PaymentProcessingClaim).where(PaymentProcessingClaim.claim_token == claim_token)
    )
    await db.commit()
    return result.rowcount or 0


async def purge_stale_claims(db: AsyncSession, claimed_before: datetime) -> int:
    """Delete claims left behind by requests that died mid-flight."""
    result = await db.execute(
        delete(PaymentProcessingClaim).where(PaymentProcessingClaim.claimed_at < claimed_before)
    )
    await db.commit()

    removed = result.rowcount or 0
    if removed:
        logger.warning(f"Purged {removed} stale payment processing claims")
    return removed

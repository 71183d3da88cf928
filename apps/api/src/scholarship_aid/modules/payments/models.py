"""
Payment Models

Payments materialized from approved applications, and the claim rows that
guard applications while they are being paid.

A payment created for an application carries the idempotency key
"aid-application-<application id>". Both the application reference and the
key are unique among non-cancelled payments, so an application has at most
one live payment. A cancelled payment is void and frees the application.
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from scholarship_aid.core.database import Base
from scholarship_aid.modules.shared import BaseModel


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


PROCESSABLE_PAYMENT_STATUSES = frozenset(
    {
        PaymentStatus.PENDING,
        PaymentStatus.SCHEDULED,
        PaymentStatus.PROCESSING,
        PaymentStatus.FAILED,
    }
)
CANCELLABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.SCHEDULED})

# Enum values are stored by name
_LIVE_PAYMENT_SQL = "payment_status <> 'CANCELLED'"


def idempotency_key_for(application_id: uuid.UUID) -> str:
    return f"aid-application-{application_id}"


class Payment(BaseModel):
    """A grant payment with a snapshot of the student and school it pays."""

    __tablename__ = "payments"

    # Legacy rows may lack the reference; they are matched by identity instead
    application_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("aid_applications.id", ondelete="SET NULL"),
        nullable=True,
    )
    idempotency_key: Mapped[str | None] = mapped_column(String(100), nullable=True)

    student_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    student_name: Mapped[str] = mapped_column(String(200), nullable=False)
    student_number: Mapped[str] = mapped_column(String(50), nullable=False)
    school_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    school_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    aid_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PHP")
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )

    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    processed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index(
            "uq_payments_live_application",
            "application_id",
            unique=True,
            postgresql_where=text(f"application_id IS NOT NULL AND {_LIVE_PAYMENT_SQL}"),
            sqlite_where=text(f"application_id IS NOT NULL AND {_LIVE_PAYMENT_SQL}"),
        ),
        Index(
            "uq_payments_live_idempotency_key",
            "idempotency_key",
            unique=True,
            postgresql_where=text(f"idempotency_key IS NOT NULL AND {_LIVE_PAYMENT_SQL}"),
            sqlite_where=text(f"idempotency_key IS NOT NULL AND {_LIVE_PAYMENT_SQL}"),
        ),
        Index("ix_payments_status", "payment_status"),
        Index("ix_payments_student_identity", "student_name", "student_number"),
    )


class PaymentProcessingClaim(Base):
    """
    Durable in-flight marker for an application being paid.

    Written and committed in its own transaction before any payment work
    starts, deleted when the work finishes. The primary key makes a second
    concurrent claim for the same application fail on insert, across
    processes and replicas.
    """

    __tablename__ = "payment_processing_claims"

    application_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    claim_token: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    claimed_by: Mapped[str] = mapped_column(String(200), nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

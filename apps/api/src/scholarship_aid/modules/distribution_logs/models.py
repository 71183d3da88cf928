"""
Distribution Log Models

One log row per completed payment, snapshotting who was paid, by which
school and for what aid, grouped into named batches.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from scholarship_aid.modules.shared import BaseModel


class DistributionStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DistributionLog(BaseModel):
    __tablename__ = "distribution_logs"

    # A payment is logged at most once
    payment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    application_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    student_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    student_name: Mapped[str] = mapped_column(String(200), nullable=False)
    student_number: Mapped[str] = mapped_column(String(50), nullable=False)
    school_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    school_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    aid_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PHP")
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    distribution_status: Mapped[DistributionStatus] = mapped_column(
        Enum(DistributionStatus, name="distribution_status"),
        nullable=False,
        default=DistributionStatus.COMPLETED,
    )
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    processed_by: Mapped[str] = mapped_column(String(200), nullable=False)
    processed_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_distribution_logs_school_status", "school_id", "distribution_status"),
        Index("ix_distribution_logs_processed_date", "processed_date"),
    )

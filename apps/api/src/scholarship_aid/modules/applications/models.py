"""
Aid Application Models

Database models for scholarship/aid applications and their status history.
An application's status is only ever changed through the guarded transitions
in state_machine.py, each of which appends one ApplicationStatusHistory row.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scholarship_aid.modules.shared import BaseModel


class ApplicationStatus(str, enum.Enum):
    """Lifecycle status of an aid application."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_COMPLETED = "interview_completed"
    FLAGGED_FOR_COMPLIANCE = "flagged_for_compliance"
    APPROVED_PENDING_VERIFICATION = "approved_pending_verification"
    APPROVED = "approved"
    REJECTED = "rejected"
    GRANTS_PROCESSING = "grants_processing"
    GRANTS_DISBURSED = "grants_disbursed"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"


class Application(BaseModel):
    """
    Scholarship/aid application.

    Student and school identity are snapshotted at creation so payments and
    distribution logs can be reconciled without joins to external systems.
    """

    __tablename__ = "aid_applications"

    # Student (identity provider reference + snapshot)
    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    student_name: Mapped[str] = mapped_column(String(200), nullable=False)
    student_number: Mapped[str] = mapped_column(String(50), nullable=False)

    # School
    school_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("schools.id", ondelete="RESTRICT"),
        nullable=False,
    )
    school_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Aid details
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    requested_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    approved_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PHP")
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="aid_application_status"),
        nullable=False,
        default=ApplicationStatus.DRAFT,
    )

    # Document review
    documents_reviewed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    documents_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Transition timestamps and actors
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    interview_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    flagged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    compliance_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    disbursed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disbursed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    status_history: Mapped[list["ApplicationStatusHistory"]] = relationship(
        "ApplicationStatusHistory",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationStatusHistory.created_at",
    )

    __table_args__ = (
        Index("ix_aid_applications_status", "status"),
        Index("ix_aid_applications_school_id", "school_id"),
        Index("ix_aid_applications_student_id", "student_id"),
        Index("ix_aid_applications_student_identity", "student_name", "student_number"),
    )

    @property
    def payable_amount(self) -> Decimal:
        """Amount to disburse: the approved amount, else the requested one."""
        if self.approved_amount is not None:
            return self.approved_amount
        return self.requested_amount

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, status={self.status.value})>"


class ApplicationStatusHistory(BaseModel):
    """Immutable audit row written with every status transition."""

    __tablename__ = "aid_application_status_history"

    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("aid_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    from_status: Mapped[ApplicationStatus | None] = mapped_column(
        Enum(ApplicationStatus, name="aid_application_status"),
        nullable=True,
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="aid_application_status"),
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_by: Mapped[str] = mapped_column(String(200), nullable=False)
    changed_by_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    application: Mapped["Application"] = relationship(
        "Application", back_populates="status_history"
    )

    __table_args__ = (
        Index("ix_aid_application_status_history_application_id", "application_id"),
    )

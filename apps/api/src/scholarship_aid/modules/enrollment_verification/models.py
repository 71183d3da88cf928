"""
Enrollment Verification Models

One verification record per approved application, holding the enrollment
proof reference (stored by the document service after its malware scan) and
the reviewer's decision.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from scholarship_aid.modules.shared import BaseModel


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


class ScanVerdict(str, enum.Enum):
    CLEAN = "clean"
    INFECTED = "infected"


# Decided records cannot receive new proof
CLOSED_VERIFICATION_STATUSES = frozenset({VerificationStatus.VERIFIED, VerificationStatus.REJECTED})
DECIDABLE_VERIFICATION_STATUSES = frozenset(
    {VerificationStatus.PENDING, VerificationStatus.NEEDS_REVIEW}
)


class EnrollmentVerification(BaseModel):
    """Proof-of-enrollment check gating final approval."""

    __tablename__ = "enrollment_verifications"

    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("aid_applications.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    school_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, name="verification_status"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )

    enrollment_year: Mapped[str | None] = mapped_column(String(20), nullable=True)
    enrollment_term: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_currently_enrolled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Reference returned by the document store; the file itself is never held here
    proof_document_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    proof_scan_verdict: Mapped[ScanVerdict | None] = mapped_column(
        Enum(ScanVerdict, name="scan_verdict"), nullable=True
    )

    verified_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    verified_by_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_enrollment_verifications_status_created", "status", "created_at"),
        Index("ix_enrollment_verifications_school_status", "school_id", "status"),
    )

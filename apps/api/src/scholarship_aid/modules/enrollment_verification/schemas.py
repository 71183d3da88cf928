"""
Enrollment Verification Schemas
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from scholarship_aid.modules.enrollment_verification.models import (
    ScanVerdict,
    VerificationStatus,
)


class EnrollmentProofSubmit(BaseModel):
    """
    Request body for POST /enrollment-verifications/applications/{id}/proof.

    The document itself is uploaded to the document service first; only its
    reference and scan verdict are sent here.
    """

    proof_document_ref: str = Field(..., min_length=1, max_length=500)
    scan_verdict: ScanVerdict
    enrollment_year: str = Field(..., min_length=1, max_length=20, examples=["2024-2025"])
    enrollment_term: str = Field(..., min_length=1, max_length=50, examples=["1st Semester"])
    is_currently_enrolled: bool


class VerificationNotes(BaseModel):
    notes: str | None = Field(None, max_length=1000)


class VerificationReason(BaseModel):
    notes: str = Field(..., min_length=1, max_length=1000)


class VerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    student_id: UUID
    school_id: UUID
    status: VerificationStatus
    enrollment_year: str | None
    enrollment_term: str | None
    is_currently_enrolled: bool
    proof_document_ref: str | None
    proof_scan_verdict: ScanVerdict | None
    verified_by: UUID | None
    verified_by_name: str | None
    verified_at: datetime | None
    verification_notes: str | None
    created_at: datetime
    updated_at: datetime


class VerificationQueueItem(BaseModel):
    """
    One row of the verification list.

    `kind="record"` rows are stored verifications; `kind="pending_application"`
    rows are approved applications awaiting their first proof submission and
    have no verification id yet.
    """

    kind: Literal["record", "pending_application"]
    verification_id: UUID | None = None
    application_id: UUID
    student_id: UUID
    student_name: str
    student_number: str
    school_id: UUID
    school_name: str
    status: VerificationStatus
    enrollment_year: str | None = None
    enrollment_term: str | None = None
    is_currently_enrolled: bool | None = None
    proof_document_ref: str | None = None
    verified_by_name: str | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None
    created_at: datetime


class VerificationListResponse(BaseModel):
    items: list[VerificationQueueItem]
    total: int
    skip: int
    limit: int


class SchoolVerificationStats(BaseModel):
    school_id: UUID
    school_name: str | None
    by_status: dict[str, int]
    total: int


class VerificationStatistics(BaseModel):
    total: int
    by_status: dict[str, int]
    pending_applications_without_record: int
    by_school: list[SchoolVerificationStats]

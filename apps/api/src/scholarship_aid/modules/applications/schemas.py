"""
Aid Application Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from scholarship_aid.modules.applications.models import ApplicationStatus


class ApplicationCreate(BaseModel):
    """Request body for POST /applications."""

    student_id: UUID
    student_name: str = Field(..., min_length=1, max_length=200)
    student_number: str = Field(..., min_length=1, max_length=50)
    school_id: UUID
    category: str = Field(..., min_length=1, max_length=100)
    subcategory: str | None = Field(None, max_length=100)
    requested_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: str | None = Field(None, min_length=3, max_length=3)
    payment_method: str | None = Field(None, max_length=30)
    purpose: str | None = Field(None, max_length=2000)


class ApplicationUpdate(BaseModel):
    """Request body for PATCH /applications/{id} (draft applications only)."""

    category: str | None = Field(None, min_length=1, max_length=100)
    subcategory: str | None = Field(None, max_length=100)
    requested_amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    payment_method: str | None = Field(None, max_length=30)
    purpose: str | None = Field(None, max_length=2000)


class NotesRequest(BaseModel):
    """Optional free-text notes for a transition."""

    notes: str | None = Field(None, max_length=2000)


class ReasonRequest(BaseModel):
    """Mandatory reason for reject, cancel and compliance flags."""

    reason: str = Field(..., min_length=1, max_length=2000)


class ApproveRequest(BaseModel):
    """Request body for POST /applications/{id}/approve."""

    approved_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    notes: str | None = Field(None, max_length=2000)
    requires_verification: bool | None = Field(
        None,
        description="Override the configured enrollment-verification requirement",
    )


class StatusHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    operation: str
    from_status: ApplicationStatus | None
    status: ApplicationStatus
    notes: str | None
    changed_by: str
    changed_by_id: UUID | None
    created_at: datetime


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    student_name: str
    student_number: str
    school_id: UUID
    school_name: str
    category: str
    subcategory: str | None
    requested_amount: Decimal
    approved_amount: Decimal | None
    currency: str
    payment_method: str | None
    purpose: str | None
    status: ApplicationStatus
    documents_reviewed: bool
    submitted_at: datetime | None
    reviewed_at: datetime | None
    reviewed_by: UUID | None
    review_notes: str | None
    approved_at: datetime | None
    approved_by: UUID | None
    processed_at: datetime | None
    disbursed_at: datetime | None
    rejection_reason: str | None
    compliance_reason: str | None
    cancellation_reason: str | None
    verification_notes: str | None
    created_at: datetime
    updated_at: datetime


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationResponse]
    total: int
    skip: int
    limit: int

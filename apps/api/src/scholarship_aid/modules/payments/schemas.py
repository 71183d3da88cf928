"""
Payment Schemas

Pydantic schemas for the payable queue and payment operations.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from scholarship_aid.modules.payments.models import PaymentStatus


class QueueItemRefIn(BaseModel):
    """Reference to a queue entry: a stored payment or a pending application."""

    kind: Literal["payment", "application"]
    id: UUID


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID | None
    idempotency_key: str | None
    student_id: UUID | None
    student_name: str
    student_number: str
    school_id: UUID | None
    school_name: str | None
    aid_type: str | None
    amount: Decimal
    currency: str
    payment_method: str
    payment_status: PaymentStatus
    reference_number: str | None
    transaction_fee: Decimal
    scheduled_date: date | None
    processed_date: datetime | None
    processed_by: str | None
    failure_reason: str | None
    cancellation_reason: str | None
    cancelled_at: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class QueueItemResponse(BaseModel):
    """
    One queue row. `kind="application"` rows are pending applications with no
    payment yet; `payment_id` is then None.
    """

    kind: Literal["payment", "application"]
    payment_id: UUID | None
    application_id: UUID | None
    reference: str | None
    student_name: str
    student_number: str
    school_id: UUID | None
    school_name: str | None
    aid_type: str | None
    amount: Decimal
    currency: str
    payment_method: str
    payment_status: PaymentStatus
    transaction_fee: Decimal
    scheduled_date: date | None = None
    processed_date: datetime | None = None


class QueueStatistics(BaseModel):
    total: int
    by_status: dict[str, int]
    total_amount: Decimal
    pending_amount: Decimal
    completed_amount: Decimal
    total_fees: Decimal
    pending_applications: int


class PaymentQueueResponse(BaseModel):
    items: list[QueueItemResponse]
    statistics: QueueStatistics


class ProcessPaymentRequest(BaseModel):
    item: QueueItemRefIn
    reference_number: str | None = Field(None, max_length=100)
    transaction_fee: Decimal | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=2000)


class BulkProcessRequest(BaseModel):
    items: list[QueueItemRefIn] = Field(..., min_length=1, max_length=500)
    notes: str | None = Field(None, max_length=2000)


class CreateFromApplicationsRequest(BaseModel):
    application_ids: list[UUID] = Field(..., min_length=1, max_length=500)
    payment_method: str | None = Field(None, max_length=30)
    scheduled_date: date | None = None
    notes: str | None = Field(None, max_length=2000)


class ProcessApprovedApplicationsRequest(BaseModel):
    application_ids: list[UUID] = Field(..., min_length=1, max_length=500)
    payment_method: str | None = Field(None, max_length=30)
    notes: str | None = Field(None, max_length=2000)


class CancelPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class FailPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class ItemOutcome(BaseModel):
    """Per-item result of a bulk operation."""

    kind: Literal["payment", "application"]
    id: UUID
    success: bool
    payment_id: UUID | None = None
    error: str | None = None
    message: str | None = None


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int


class CreatePaymentsResult(BaseModel):
    results: list[ItemOutcome]
    summary: BatchSummary


class BulkProcessResult(BaseModel):
    processed: list[ItemOutcome]
    rejected_synthetic: list[ItemOutcome]
    rejected_completed: list[ItemOutcome]
    failed: list[ItemOutcome]
    summary: BatchSummary
    batch_number: str | None = None


class ProcessApprovedResult(BaseModel):
    created: CreatePaymentsResult
    processing: BulkProcessResult | None

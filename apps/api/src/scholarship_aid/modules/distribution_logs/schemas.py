"""
Distribution Log Schemas
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from scholarship_aid.modules.distribution_logs.models import DistributionStatus


class CreateLogsRequest(BaseModel):
    """Request body for POST /distribution-logs/from-payments."""

    payment_ids: list[UUID] = Field(..., min_length=1, max_length=500)
    batch_number: str | None = Field(None, min_length=1, max_length=50)
    processed_by: str | None = Field(None, min_length=1, max_length=200)
    notes: str | None = Field(None, max_length=2000)


class UpdateStatusRequest(BaseModel):
    distribution_status: DistributionStatus
    notes: str | None = Field(None, max_length=2000)


class DistributionLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_id: UUID
    application_id: UUID | None
    student_id: UUID | None
    student_name: str
    student_number: str
    school_id: UUID | None
    school_name: str | None
    aid_type: str | None
    amount: Decimal
    currency: str
    payment_method: str | None
    reference_number: str | None
    distribution_status: DistributionStatus
    batch_number: str
    processed_by: str
    processed_date: datetime
    notes: str | None
    created_at: datetime


class DistributionLogListResponse(BaseModel):
    logs: list[DistributionLogResponse]
    total: int
    skip: int
    limit: int


class DistributionStatistics(BaseModel):
    total_logs: int
    total_amount: Decimal
    unique_students: int
    unique_schools: int
    by_status: dict[str, int]


class LogOutcome(BaseModel):
    payment_id: UUID
    success: bool
    log_id: UUID | None = None
    amount: Decimal | None = None
    error: str | None = None
    message: str | None = None


class CreateLogsResult(BaseModel):
    batch_number: str
    results: list[LogOutcome]
    successful: int
    failed: int
    batch_total: Decimal
    statistics: DistributionStatistics

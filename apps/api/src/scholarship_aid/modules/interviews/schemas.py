"""
Interview Schemas

Pydantic schemas for interview scheduling and evaluation.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scholarship_aid.modules.interviews.helpers import normalize_time
from scholarship_aid.modules.interviews.models import (
    InterviewResult,
    InterviewStatus,
    InterviewType,
    Recommendation,
)


def _validate_time(value: str) -> str:
    try:
        return normalize_time(value)
    except ValueError as e:
        raise ValueError("time must be HH:MM") from e


# ============================================
# Schedules
# ============================================


class InterviewCreate(BaseModel):
    """Request body for POST /interviews."""

    application_id: UUID
    interviewer_id: UUID
    interviewer_name: str = Field(..., min_length=1, max_length=200)
    interview_date: date
    interview_time: str
    interview_type: InterviewType
    location: str | None = Field(None, max_length=300)
    meeting_link: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=2000)

    @field_validator("interview_time")
    @classmethod
    def normalize_interview_time(cls, value: str) -> str:
        return _validate_time(value)


class RescheduleRequest(BaseModel):
    interview_date: date
    interview_time: str
    reason: str = Field(..., min_length=1, max_length=2000)

    @field_validator("interview_time")
    @classmethod
    def normalize_interview_time(cls, value: str) -> str:
        return _validate_time(value)


class CompleteRequest(BaseModel):
    result: InterviewResult
    notes: str | None = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class NoShowRequest(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class InterviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    student_id: UUID
    student_name: str
    school_id: UUID
    interviewer_id: UUID
    interviewer_name: str
    interview_date: date
    interview_time: str
    interview_type: InterviewType
    location: str | None
    meeting_link: str | None
    status: InterviewStatus
    result: InterviewResult | None
    notes: str | None
    reschedule_reason: str | None
    reschedule_count: int
    cancellation_reason: str | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime


class AvailableSlotsResponse(BaseModel):
    interview_date: date
    interview_type: InterviewType
    interviewer_id: UUID | None
    available_slots: list[str]


class CalendarResponse(BaseModel):
    year: int
    month: int
    days: dict[str, list[InterviewResponse]]
    total: int


# ============================================
# Evaluations
# ============================================


class EvaluationCreate(BaseModel):
    """Request body for POST /interviews/evaluations."""

    schedule_id: UUID
    academic_motivation: int = Field(..., ge=1, le=5)
    leadership_involvement: int = Field(..., ge=1, le=5)
    financial_need: int = Field(..., ge=1, le=5)
    character_values: int = Field(..., ge=1, le=5)
    overall_recommendation: Recommendation
    remarks: str | None = Field(None, max_length=5000)
    strengths: str | None = Field(None, max_length=5000)
    areas_for_improvement: str | None = Field(None, max_length=5000)
    additional_notes: str | None = Field(None, max_length=5000)


class EvaluationUpdate(BaseModel):
    """Scores and remarks only; the recommendation is fixed once forwarded."""

    academic_motivation: int | None = Field(None, ge=1, le=5)
    leadership_involvement: int | None = Field(None, ge=1, le=5)
    financial_need: int | None = Field(None, ge=1, le=5)
    character_values: int | None = Field(None, ge=1, le=5)
    remarks: str | None = Field(None, max_length=5000)
    strengths: str | None = Field(None, max_length=5000)
    areas_for_improvement: str | None = Field(None, max_length=5000)
    additional_notes: str | None = Field(None, max_length=5000)


class EvaluationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    schedule_id: UUID
    application_id: UUID
    student_id: UUID
    interviewer_id: UUID
    academic_motivation: int
    leadership_involvement: int
    financial_need: int
    character_values: int
    total_score: int
    average_score: float
    overall_recommendation: Recommendation
    interview_result: InterviewResult
    remarks: str | None
    strengths: str | None
    areas_for_improvement: str | None
    additional_notes: str | None
    evaluated_by: str
    evaluation_date: datetime

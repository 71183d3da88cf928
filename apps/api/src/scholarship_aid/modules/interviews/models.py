"""
Interview Models

Interview schedules and their evaluations.

Booking integrity is enforced by two partial unique indexes over the active
statuses (scheduled, rescheduled):
- one interviewer cannot hold the same (date, time, type) twice
- an application has at most one active schedule
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scholarship_aid.modules.shared import BaseModel


class InterviewType(str, enum.Enum):
    IN_PERSON = "in_person"
    ONLINE = "online"
    PHONE = "phone"


class InterviewStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class InterviewResult(str, enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    NEEDS_FOLLOWUP = "needs_followup"


class Recommendation(str, enum.Enum):
    RECOMMENDED = "recommended"
    NOT_RECOMMENDED = "not_recommended"
    NEEDS_FOLLOWUP = "needs_followup"


ACTIVE_INTERVIEW_STATUSES = frozenset({InterviewStatus.SCHEDULED, InterviewStatus.RESCHEDULED})

# Enum values are stored by name
_ACTIVE_STATUS_SQL = "status IN ('SCHEDULED', 'RESCHEDULED')"


class InterviewSchedule(BaseModel):
    """A booked interview slot for an application."""

    __tablename__ = "interview_schedules"

    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("aid_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    student_name: Mapped[str] = mapped_column(String(200), nullable=False)
    school_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    interviewer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    interviewer_name: Mapped[str] = mapped_column(String(200), nullable=False)

    interview_date: Mapped[date] = mapped_column(Date, nullable=False)
    # "HH:MM", always a slot on the configured grid
    interview_time: Mapped[str] = mapped_column(String(5), nullable=False)
    interview_type: Mapped[InterviewType] = mapped_column(
        Enum(InterviewType, name="interview_type"), nullable=False
    )
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    status: Mapped[InterviewStatus] = mapped_column(
        Enum(InterviewStatus, name="interview_status"),
        nullable=False,
        default=InterviewStatus.SCHEDULED,
    )
    result: Mapped[InterviewResult | None] = mapped_column(
        Enum(InterviewResult, name="interview_result"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    reschedule_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reschedule_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    evaluation: Mapped["InterviewEvaluation | None"] = relationship(
        "InterviewEvaluation", back_populates="schedule", uselist=False
    )

    __table_args__ = (
        Index(
            "uq_interview_schedules_active_slot",
            "interviewer_id",
            "interview_date",
            "interview_time",
            "interview_type",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index(
            "uq_interview_schedules_active_application",
            "application_id",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index("ix_interview_schedules_date_type", "interview_date", "interview_type"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_INTERVIEW_STATUSES


class InterviewEvaluation(BaseModel):
    """Interviewer's scored evaluation; exactly one per schedule."""

    __tablename__ = "interview_evaluations"

    schedule_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("interview_schedules.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    application_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    interviewer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Scores, 1-5
    academic_motivation: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    leadership_involvement: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    financial_need: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    character_values: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    overall_recommendation: Mapped[Recommendation] = mapped_column(
        Enum(Recommendation, name="interview_recommendation"), nullable=False
    )
    interview_result: Mapped[InterviewResult] = mapped_column(
        Enum(InterviewResult, name="interview_result"), nullable=False
    )

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    strengths: Mapped[str | None] = mapped_column(Text, nullable=True)
    areas_for_improvement: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    evaluated_by: Mapped[str] = mapped_column(String(200), nullable=False)
    evaluation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    schedule: Mapped["InterviewSchedule"] = relationship(
        "InterviewSchedule", back_populates="evaluation"
    )

    __table_args__ = (
        CheckConstraint("academic_motivation BETWEEN 1 AND 5", name="ck_eval_academic_motivation"),
        CheckConstraint(
            "leadership_involvement BETWEEN 1 AND 5", name="ck_eval_leadership_involvement"
        ),
        CheckConstraint("financial_need BETWEEN 1 AND 5", name="ck_eval_financial_need"),
        CheckConstraint("character_values BETWEEN 1 AND 5", name="ck_eval_character_values"),
        Index("ix_interview_evaluations_application_id", "application_id"),
        Index("ix_interview_evaluations_interviewer_id", "interviewer_id"),
    )

    @property
    def total_score(self) -> int:
        return (
            self.academic_motivation
            + self.leadership_involvement
            + self.financial_need
            + self.character_values
        )

    @property
    def average_score(self) -> float:
        return round(self.total_score / 4, 2)

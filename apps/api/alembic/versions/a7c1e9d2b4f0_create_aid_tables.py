"""create aid tables

Revision ID: a7c1e9d2b4f0
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates the scholarship aid schema:
1. schools and school_representatives (authorization reference data)
2. aid_applications and their status history
3. interview_schedules and interview_evaluations
4. enrollment_verifications
5. payments and payment_processing_claims
6. distribution_logs

Enum columns store member NAMES (SQLAlchemy default), so the partial index
predicates compare against uppercase literals.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c1e9d2b4f0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _enum(name: str, *values: str) -> postgresql.ENUM:
    return postgresql.ENUM(*values, name=name, create_type=False)


APPLICATION_STATUS = _enum(
    "aid_application_status",
    "DRAFT",
    "SUBMITTED",
    "UNDER_REVIEW",
    "INTERVIEW_SCHEDULED",
    "INTERVIEW_COMPLETED",
    "FLAGGED_FOR_COMPLIANCE",
    "APPROVED_PENDING_VERIFICATION",
    "APPROVED",
    "REJECTED",
    "GRANTS_PROCESSING",
    "GRANTS_DISBURSED",
    "PAYMENT_FAILED",
    "CANCELLED",
)
INTERVIEW_TYPE = _enum("interview_type", "IN_PERSON", "ONLINE", "PHONE")
INTERVIEW_STATUS = _enum(
    "interview_status", "SCHEDULED", "RESCHEDULED", "COMPLETED", "CANCELLED", "NO_SHOW"
)
INTERVIEW_RESULT = _enum("interview_result", "PASSED", "FAILED", "NEEDS_FOLLOWUP")
RECOMMENDATION = _enum(
    "interview_recommendation", "RECOMMENDED", "NOT_RECOMMENDED", "NEEDS_FOLLOWUP"
)
VERIFICATION_STATUS = _enum(
    "verification_status", "PENDING", "VERIFIED", "REJECTED", "NEEDS_REVIEW"
)
SCAN_VERDICT = _enum("scan_verdict", "CLEAN", "INFECTED")
PAYMENT_STATUS = _enum(
    "payment_status", "PENDING", "SCHEDULED", "PROCESSING", "COMPLETED", "FAILED", "CANCELLED"
)
DISTRIBUTION_STATUS = _enum(
    "distribution_status", "PENDING", "IN_PROGRESS", "COMPLETED", "FAILED", "CANCELLED"
)

ALL_ENUMS = (
    APPLICATION_STATUS,
    INTERVIEW_TYPE,
    INTERVIEW_STATUS,
    INTERVIEW_RESULT,
    RECOMMENDATION,
    VERIFICATION_STATUS,
    SCAN_VERDICT,
    PAYMENT_STATUS,
    DISTRIBUTION_STATUS,
)

ACTIVE_INTERVIEW_SQL = "status IN ('SCHEDULED', 'RESCHEDULED')"
LIVE_PAYMENT_SQL = "payment_status <> 'CANCELLED'"


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
    ]


def _student_school_snapshot(required_ids: bool) -> list[sa.Column]:
    return [
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=not required_ids),
        sa.Column("student_name", sa.String(length=200), nullable=False),
        sa.Column("student_number", sa.String(length=50), nullable=False),
        sa.Column("school_id", postgresql.UUID(as_uuid=True), nullable=not required_ids),
        sa.Column("school_name", sa.String(length=200), nullable=not required_ids),
    ]


def upgrade() -> None:
    """Create all aid tables, enums and indexes."""
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    # Schools
    op.create_table(
        "schools",
        *_base_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_schools_code"),
    )
    op.create_index(op.f("ix_schools_name"), "schools", ["name"], unique=False)

    op.create_table(
        "school_representatives",
        *_base_columns(),
        sa.Column("citizen_id", sa.String(length=50), nullable=False),
        sa.Column("school_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["school_id"], ["schools.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("citizen_id", name="uq_school_representatives_citizen_id"),
    )
    op.create_index(
        "ix_school_representatives_school_id", "school_representatives", ["school_id"]
    )

    # Applications
    op.create_table(
        "aid_applications",
        *_base_columns(),
        *_student_school_snapshot(required_ids=True),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("subcategory", sa.String(length=100), nullable=True),
        sa.Column("requested_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("approved_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("status", APPLICATION_STATUS, nullable=False),
        sa.Column("documents_reviewed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("documents_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("interview_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("flagged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("compliance_reason", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("disbursed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disbursed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["school_id"], ["schools.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_aid_applications_status", "aid_applications", ["status"])
    op.create_index("ix_aid_applications_school_id", "aid_applications", ["school_id"])
    op.create_index("ix_aid_applications_student_id", "aid_applications", ["student_id"])
    op.create_index(
        "ix_aid_applications_student_identity",
        "aid_applications",
        ["student_name", "student_number"],
    )

    op.create_table(
        "aid_application_status_history",
        *_base_columns(),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("operation", sa.String(length=50), nullable=False),
        sa.Column("from_status", APPLICATION_STATUS, nullable=True),
        sa.Column("status", APPLICATION_STATUS, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(length=200), nullable=False),
        sa.Column("changed_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["application_id"], ["aid_applications.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_aid_application_status_history_application_id",
        "aid_application_status_history",
        ["application_id"],
    )

    # Interviews
    op.create_table(
        "interview_schedules",
        *_base_columns(),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_name", sa.String(length=200), nullable=False),
        sa.Column("school_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("interviewer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("interviewer_name", sa.String(length=200), nullable=False),
        sa.Column("interview_date", sa.Date(), nullable=False),
        sa.Column("interview_time", sa.String(length=5), nullable=False),
        sa.Column("interview_type", INTERVIEW_TYPE, nullable=False),
        sa.Column("location", sa.String(length=300), nullable=True),
        sa.Column("meeting_link", sa.String(length=500), nullable=True),
        sa.Column("status", INTERVIEW_STATUS, nullable=False),
        sa.Column("result", INTERVIEW_RESULT, nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reschedule_reason", sa.Text(), nullable=True),
        sa.Column("reschedule_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["application_id"], ["aid_applications.id"], ondelete="CASCADE"),
    )
    # One active booking per interviewer slot, and per application
    op.create_index(
        "uq_interview_schedules_active_slot",
        "interview_schedules",
        ["interviewer_id", "interview_date", "interview_time", "interview_type"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_INTERVIEW_SQL),
    )
    op.create_index(
        "uq_interview_schedules_active_application",
        "interview_schedules",
        ["application_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_INTERVIEW_SQL),
    )
    op.create_index(
        "ix_interview_schedules_date_type",
        "interview_schedules",
        ["interview_date", "interview_type"],
    )

    op.create_table(
        "interview_evaluations",
        *_base_columns(),
        sa.Column("schedule_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("interviewer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("academic_motivation", sa.SmallInteger(), nullable=False),
        sa.Column("leadership_involvement", sa.SmallInteger(), nullable=False),
        sa.Column("financial_need", sa.SmallInteger(), nullable=False),
        sa.Column("character_values", sa.SmallInteger(), nullable=False),
        sa.Column("overall_recommendation", RECOMMENDATION, nullable=False),
        sa.Column("interview_result", INTERVIEW_RESULT, nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("strengths", sa.Text(), nullable=True),
        sa.Column("areas_for_improvement", sa.Text(), nullable=True),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("evaluated_by", sa.String(length=200), nullable=False),
        sa.Column("evaluation_date", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["schedule_id"], ["interview_schedules.id"], ondelete="CASCADE"
        ),
        sa.UniqueConstraint("schedule_id", name="uq_interview_evaluations_schedule_id"),
        sa.CheckConstraint(
            "academic_motivation BETWEEN 1 AND 5", name="ck_eval_academic_motivation"
        ),
        sa.CheckConstraint(
            "leadership_involvement BETWEEN 1 AND 5", name="ck_eval_leadership_involvement"
        ),
        sa.CheckConstraint("financial_need BETWEEN 1 AND 5", name="ck_eval_financial_need"),
        sa.CheckConstraint("character_values BETWEEN 1 AND 5", name="ck_eval_character_values"),
    )
    op.create_index(
        "ix_interview_evaluations_application_id", "interview_evaluations", ["application_id"]
    )
    op.create_index(
        "ix_interview_evaluations_interviewer_id", "interview_evaluations", ["interviewer_id"]
    )

    # Enrollment verification
    op.create_table(
        "enrollment_verifications",
        *_base_columns(),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("school_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", VERIFICATION_STATUS, nullable=False),
        sa.Column("enrollment_year", sa.String(length=20), nullable=True),
        sa.Column("enrollment_term", sa.String(length=50), nullable=True),
        sa.Column("is_currently_enrolled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("proof_document_ref", sa.String(length=500), nullable=True),
        sa.Column("proof_scan_verdict", SCAN_VERDICT, nullable=True),
        sa.Column("verified_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("verified_by_name", sa.String(length=200), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["application_id"], ["aid_applications.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("application_id", name="uq_enrollment_verifications_application_id"),
    )
    op.create_index(
        "ix_enrollment_verifications_status_created",
        "enrollment_verifications",
        ["status", "created_at"],
    )
    op.create_index(
        "ix_enrollment_verifications_school_status",
        "enrollment_verifications",
        ["school_id", "status"],
    )

    # Payments
    op.create_table(
        "payments",
        *_base_columns(),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("idempotency_key", sa.String(length=100), nullable=True),
        *_student_school_snapshot(required_ids=False),
        sa.Column("aid_type", sa.String(length=100), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=False),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False),
        sa.Column("reference_number", sa.String(length=100), nullable=True),
        sa.Column("transaction_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("processed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_by", sa.String(length=200), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["application_id"], ["aid_applications.id"], ondelete="SET NULL"),
    )
    # At most one live payment per application
    op.create_index(
        "uq_payments_live_application",
        "payments",
        ["application_id"],
        unique=True,
        postgresql_where=sa.text(f"application_id IS NOT NULL AND {LIVE_PAYMENT_SQL}"),
    )
    op.create_index(
        "uq_payments_live_idempotency_key",
        "payments",
        ["idempotency_key"],
        unique=True,
        postgresql_where=sa.text(f"idempotency_key IS NOT NULL AND {LIVE_PAYMENT_SQL}"),
    )
    op.create_index("ix_payments_status", "payments", ["payment_status"])
    op.create_index(
        "ix_payments_student_identity", "payments", ["student_name", "student_number"]
    )

    op.create_table(
        "payment_processing_claims",
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("claim_token", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("claimed_by", sa.String(length=200), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("application_id"),
    )

    # Distribution logs
    op.create_table(
        "distribution_logs",
        *_base_columns(),
        sa.Column("payment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_student_school_snapshot(required_ids=False),
        sa.Column("aid_type", sa.String(length=100), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=True),
        sa.Column("reference_number", sa.String(length=100), nullable=True),
        sa.Column("distribution_status", DISTRIBUTION_STATUS, nullable=False),
        sa.Column("batch_number", sa.String(length=50), nullable=False),
        sa.Column("processed_by", sa.String(length=200), nullable=False),
        sa.Column("processed_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("payment_id", name="uq_distribution_logs_payment_id"),
    )
    op.create_index(
        op.f("ix_distribution_logs_batch_number"), "distribution_logs", ["batch_number"]
    )
    op.create_index(
        "ix_distribution_logs_school_status",
        "distribution_logs",
        ["school_id", "distribution_status"],
    )
    op.create_index(
        "ix_distribution_logs_processed_date", "distribution_logs", ["processed_date"]
    )


def downgrade() -> None:
    """Drop all aid tables and enums."""
    op.drop_table("distribution_logs")
    op.drop_table("payment_processing_claims")
    op.drop_table("payments")
    op.drop_table("enrollment_verifications")
    op.drop_table("interview_evaluations")
    op.drop_table("interview_schedules")
    op.drop_table("aid_application_status_history")
    op.drop_table("aid_applications")
    op.drop_table("school_representatives")
    op.drop_table("schools")

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)

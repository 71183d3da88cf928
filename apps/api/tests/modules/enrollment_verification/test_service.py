"""
Unit tests for the enrollment verification service layer.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from scholarship_aid.core.exceptions import StateGuardError, ValidationError
from scholarship_aid.modules.applications.models import ApplicationStatus
from scholarship_aid.modules.enrollment_verification import service
from scholarship_aid.modules.enrollment_verification.models import (
    EnrollmentVerification,
    ScanVerdict,
    VerificationStatus,
)
from scholarship_aid.modules.enrollment_verification.schemas import EnrollmentProofSubmit
from scholarship_aid.modules.enrollment_verification.service import (
    REJECTION_REASON_PREFIX,
    InfectedDocumentError,
    InvalidVerificationStateError,
    VerificationNotFoundError,
)

REPOSITORY = "scholarship_aid.modules.enrollment_verification.service.repository"
APPLICATION_SERVICE = "scholarship_aid.modules.enrollment_verification.service.application_service"
SCHOOL_NAMES = "scholarship_aid.modules.enrollment_verification.service.SchoolRepository.get_names"


@pytest.fixture
def make_record(school_id):
    def _make(status=VerificationStatus.PENDING, **overrides):
        record = MagicMock(spec=EnrollmentVerification)
        record.id = uuid4()
        record.application_id = uuid4()
        record.student_id = uuid4()
        record.school_id = school_id
        record.status = status
        record.enrollment_year = "2024-2025"
        record.enrollment_term = "1st Semester"
        record.is_currently_enrolled = True
        record.proof_document_ref = "docs/proof.pdf"
        record.verified_by_name = None
        record.verified_at = None
        record.verification_notes = None
        record.created_at = datetime.now(UTC)
        for key, value in overrides.items():
            setattr(record, key, value)
        return record

    return _make


def _proof(verdict=ScanVerdict.CLEAN) -> EnrollmentProofSubmit:
    return EnrollmentProofSubmit(
        proof_document_ref="docs/cor-2024.pdf",
        scan_verdict=verdict,
        enrollment_year="2024-2025",
        enrollment_term="1st Semester",
        is_currently_enrolled=True,
    )


class TestSubmitEnrollmentProof:
    @pytest.mark.asyncio
    async def test_first_proof_creates_pending_record(self, mock_db, rep_ctx, make_application):
        application = make_application(ApplicationStatus.APPROVED_PENDING_VERIFICATION)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_app_service.get_application = AsyncMock(return_value=application)
            mock_repo.get_by_application = AsyncMock(return_value=None)
            mock_repo.add = AsyncMock()

            record = await service.submit_enrollment_proof(mock_db, application.id, _proof(), rep_ctx)

        assert isinstance(record, EnrollmentVerification)
        assert record.status == VerificationStatus.PENDING
        assert record.school_id == application.school_id
        assert record.proof_scan_verdict == ScanVerdict.CLEAN
        mock_repo.add.assert_awaited_once()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resubmission_refreshes_open_record(
        self, mock_db, rep_ctx, make_application, make_record
    ):
        application = make_application(ApplicationStatus.APPROVED_PENDING_VERIFICATION)
        record = make_record(VerificationStatus.NEEDS_REVIEW)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_app_service.get_application = AsyncMock(return_value=application)
            mock_repo.get_by_application = AsyncMock(return_value=record)
            mock_repo.add = AsyncMock()

            result = await service.submit_enrollment_proof(mock_db, application.id, _proof(), rep_ctx)

        assert result is record
        assert record.status == VerificationStatus.PENDING
        assert record.proof_document_ref == "docs/cor-2024.pdf"
        mock_repo.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_infected_proof_is_refused_before_lookup(self, mock_db, rep_ctx):
        with patch(APPLICATION_SERVICE) as mock_app_service:
            mock_app_service.get_application = AsyncMock()

            with pytest.raises(InfectedDocumentError):
                await service.submit_enrollment_proof(
                    mock_db, uuid4(), _proof(ScanVerdict.INFECTED), rep_ctx
                )

        mock_app_service.get_application.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_application_must_await_verification(self, mock_db, rep_ctx, make_application):
        application = make_application(ApplicationStatus.APPROVED)

        with patch(APPLICATION_SERVICE) as mock_app_service:
            mock_app_service.get_application = AsyncMock(return_value=application)

            with pytest.raises(StateGuardError):
                await service.submit_enrollment_proof(mock_db, application.id, _proof(), rep_ctx)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [VerificationStatus.VERIFIED, VerificationStatus.REJECTED])
    async def test_decided_record_cannot_be_resubmitted(
        self, mock_db, rep_ctx, make_application, make_record, status
    ):
        application = make_application(ApplicationStatus.APPROVED_PENDING_VERIFICATION)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_app_service.get_application = AsyncMock(return_value=application)
            mock_repo.get_by_application = AsyncMock(return_value=make_record(status))

            with pytest.raises(InvalidVerificationStateError):
                await service.submit_enrollment_proof(mock_db, application.id, _proof(), rep_ctx)


class TestDecisions:
    @pytest.mark.asyncio
    async def test_approve_confirms_enrollment(self, mock_db, admin_ctx, make_record):
        record = make_record(VerificationStatus.NEEDS_REVIEW)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_repo.get_by_id = AsyncMock(return_value=record)
            mock_repo.save = AsyncMock()
            mock_app_service.confirm_enrollment = AsyncMock()

            result = await service.approve(mock_db, record.id, admin_ctx, notes="COR checked")

        assert result.status == VerificationStatus.VERIFIED
        assert result.verified_by_name == "Ada Admin"
        assert result.verification_notes == "COR checked"
        call = mock_app_service.confirm_enrollment.call_args
        assert call.args[1] == record.application_id
        assert call.kwargs["commit"] is False
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_approve_rolls_back_when_application_moved(
        self, mock_db, admin_ctx, make_record
    ):
        record = make_record()

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_repo.get_by_id = AsyncMock(return_value=record)
            mock_repo.save = AsyncMock()
            mock_app_service.confirm_enrollment = AsyncMock(
                side_effect=StateGuardError("not pending", "INVALID_APPLICATION_STATE")
            )

            with pytest.raises(StateGuardError):
                await service.approve(mock_db, record.id, admin_ctx)

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reject_rejects_application_with_prefixed_reason(
        self, mock_db, admin_ctx, make_record
    ):
        record = make_record()

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_repo.get_by_id = AsyncMock(return_value=record)
            mock_repo.save = AsyncMock()
            mock_app_service.reject = AsyncMock()

            result = await service.reject(mock_db, record.id, "  not enrolled  ", admin_ctx)

        assert result.status == VerificationStatus.REJECTED
        assert result.verification_notes == "not enrolled"
        assert mock_app_service.reject.call_args.args[2] == REJECTION_REASON_PREFIX + "not enrolled"

    @pytest.mark.asyncio
    async def test_reject_requires_notes(self, mock_db, admin_ctx):
        with pytest.raises(ValidationError):
            await service.reject(mock_db, uuid4(), "", admin_ctx)

    @pytest.mark.asyncio
    async def test_decided_record_cannot_be_approved(self, mock_db, admin_ctx, make_record):
        record = make_record(VerificationStatus.VERIFIED)

        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=record)

            with pytest.raises(InvalidVerificationStateError) as exc_info:
                await service.approve(mock_db, record.id, admin_ctx)

        assert exc_info.value.details["allowed_from"] == ["needs_review", "pending"]

    @pytest.mark.asyncio
    async def test_flag_only_from_pending(self, mock_db, admin_ctx, make_record):
        pending, flagged = make_record(), make_record(VerificationStatus.NEEDS_REVIEW)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_repo.get_by_id = AsyncMock(side_effect=[pending, flagged])
            mock_repo.save = AsyncMock(side_effect=lambda db, obj, **kw: obj)

            result = await service.flag_for_review(mock_db, pending.id, "blurry scan", admin_ctx)
            with pytest.raises(InvalidVerificationStateError):
                await service.flag_for_review(mock_db, flagged.id, "again", admin_ctx)

        assert result.status == VerificationStatus.NEEDS_REVIEW
        assert mock_app_service.mock_calls == []

    @pytest.mark.asyncio
    async def test_other_school_record_is_not_found(self, mock_db, rep_ctx, make_record):
        record = make_record(school_id=uuid4())

        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=record)

            with pytest.raises(VerificationNotFoundError):
                await service.get_verification(mock_db, record.id, rep_ctx)


class TestListing:
    @pytest.mark.asyncio
    async def test_pending_applications_are_merged_newest_first(
        self, mock_db, admin_ctx, make_application, make_record
    ):
        now = datetime.now(UTC)
        old_app = make_application(ApplicationStatus.APPROVED_PENDING_VERIFICATION)
        record = make_record(created_at=now - timedelta(days=2), application_id=old_app.id)
        waiting = make_application(
            ApplicationStatus.APPROVED_PENDING_VERIFICATION, approved_at=now - timedelta(hours=1)
        )

        with patch(REPOSITORY) as mock_repo:
            mock_repo.list_records = AsyncMock(return_value=[(record, old_app)])
            mock_repo.list_pending_applications = AsyncMock(return_value=[waiting])

            page = await service.list_verifications(mock_db, admin_ctx)

        assert page["total"] == 2
        first, second = page["items"]
        assert first.kind == "pending_application"
        assert first.verification_id is None
        assert first.status == VerificationStatus.PENDING
        assert second.kind == "record"
        assert second.verification_id == record.id

    @pytest.mark.asyncio
    async def test_status_filter_skips_projection(self, mock_db, admin_ctx):
        with patch(REPOSITORY) as mock_repo:
            mock_repo.list_records = AsyncMock(return_value=[])
            mock_repo.list_pending_applications = AsyncMock(return_value=[])

            await service.list_verifications(mock_db, admin_ctx, status=VerificationStatus.VERIFIED)

        mock_repo.list_pending_applications.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_statistics_count_projected_pending(self, mock_db, admin_ctx, school_id):
        other_school = uuid4()

        with patch(REPOSITORY) as mock_repo, patch(SCHOOL_NAMES, AsyncMock(return_value={school_id: "Rizal"})):
            mock_repo.count_by_school_and_status = AsyncMock(
                return_value=[
                    (school_id, VerificationStatus.VERIFIED, 3),
                    (school_id, VerificationStatus.PENDING, 1),
                ]
            )
            mock_repo.count_pending_applications_by_school = AsyncMock(
                return_value=[(school_id, 2), (other_school, 4)]
            )

            stats = await service.get_statistics(mock_db, admin_ctx)

        assert stats.total == 10
        assert stats.by_status["pending"] == 7
        assert stats.by_status["verified"] == 3
        assert stats.pending_applications_without_record == 6
        by_school = {s.school_id: s for s in stats.by_school}
        assert by_school[school_id].total == 6
        assert by_school[school_id].school_name == "Rizal"
        assert by_school[other_school].school_name is None

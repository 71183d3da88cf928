"""
Unit tests for the payment service layer.

These tests cover:
- Processing a payment exactly once and releasing its grant
- Bulk processing with pending applications and completed payments mixed in
- Best-effort distribution logging
- Creating payments from approved applications
- The in-flight guard of processApprovedApplications
- Cancelling and failing payments, and cancelling applications
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from scholarship_aid.core.exceptions import ConflictError, ValidationError
from scholarship_aid.modules.applications.models import ApplicationStatus
from scholarship_aid.modules.payments import service
from scholarship_aid.modules.payments.models import Payment, PaymentStatus
from scholarship_aid.modules.payments.queue import PendingApplication, QueueItemRef, RealPayment
from scholarship_aid.modules.payments.service import (
    ApplicationNotPayableError,
    InFlightConflictError,
    InvalidPaymentStateError,
    PaymentAlreadyCompletedError,
    PaymentNotFoundError,
    SyntheticPaymentError,
    generate_reference_number,
)

REPOSITORY = "scholarship_aid.modules.payments.service.repository"
APPLICATION_REPOSITORY = "scholarship_aid.modules.payments.service.application_repository"
APPLICATION_SERVICE = "scholarship_aid.modules.payments.service.application_service"
DISTRIBUTION_SERVICE = "scholarship_aid.modules.payments.service.distribution_service"


@pytest.fixture
def make_payment(school_id):
    def _make(status=PaymentStatus.PENDING, **overrides):
        payment = MagicMock(spec=Payment)
        payment.id = uuid4()
        payment.application_id = uuid4()
        payment.school_id = school_id
        payment.student_name = "Maria Santos"
        payment.student_number = "2024-0001"
        payment.amount = Decimal("5000.00")
        payment.currency = "PHP"
        payment.payment_status = status
        payment.reference_number = None
        payment.transaction_fee = Decimal("0.00")
        payment.notes = None
        for key, value in overrides.items():
            setattr(payment, key, value)
        return payment

    return _make


def _distribution(payment_ids, batch_number="BATCH-2024-12-15T10-00-00"):
    return {
        "batch_number": batch_number,
        "results": [{"payment_id": pid, "success": True} for pid in payment_ids],
        "successful": len(payment_ids),
        "failed": 0,
    }


def _ref(payment) -> QueueItemRef:
    return QueueItemRef("payment", payment.id)


class TestReferenceNumber:
    def test_format(self):
        payment_id = uuid4()
        ref = generate_reference_number(payment_id, datetime(2024, 12, 15, tzinfo=UTC))
        assert ref == f"PAY-20241215-{str(payment_id)[:8].upper()}"


class TestProcessPayment:
    @pytest.mark.asyncio
    async def test_completes_payment_and_releases_grant(
        self, mock_db, finance_ctx, make_payment, make_application
    ):
        payment = make_payment()
        application = make_application(ApplicationStatus.APPROVED, id=payment.application_id)

        with (
            patch(REPOSITORY) as mock_repo,
            patch(APPLICATION_REPOSITORY) as mock_app_repo,
            patch(APPLICATION_SERVICE) as mock_app_service,
            patch(DISTRIBUTION_SERVICE) as mock_distribution,
        ):
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_repo.save = AsyncMock()
            mock_app_repo.get_by_id = AsyncMock(return_value=application)
            mock_app_service.process = AsyncMock()
            mock_app_service.release = AsyncMock()
            mock_distribution.create_logs_from_payments = AsyncMock(
                return_value=_distribution([payment.id])
            )

            result = await service.process_payment(mock_db, _ref(payment), finance_ctx)

        assert payment.payment_status == PaymentStatus.COMPLETED
        assert payment.processed_by == "Fin Officer"
        assert payment.reference_number.startswith("PAY-")
        assert result["warnings"] == []
        assert result["distribution"]["batch_number"].startswith("BATCH-")

        assert mock_app_service.process.call_args.kwargs["commit"] is False
        assert mock_app_service.release.call_args.kwargs["commit"] is False
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_grants_processing_application_is_only_released(
        self, mock_db, finance_ctx, make_payment, make_application
    ):
        payment = make_payment(PaymentStatus.PROCESSING)
        application = make_application(ApplicationStatus.GRANTS_PROCESSING)

        with (
            patch(REPOSITORY) as mock_repo,
            patch(APPLICATION_REPOSITORY) as mock_app_repo,
            patch(APPLICATION_SERVICE) as mock_app_service,
        ):
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_repo.save = AsyncMock()
            mock_app_repo.get_by_id = AsyncMock(return_value=application)
            mock_app_service.process = AsyncMock()
            mock_app_service.release = AsyncMock()

            await service.process_payment(mock_db, _ref(payment), finance_ctx, auto_log=False)

        mock_app_service.process.assert_not_awaited()
        mock_app_service.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_process_of_same_payment_is_refused(
        self, mock_db, finance_ctx, make_payment, make_application
    ):
        payment = make_payment()
        application = make_application(ApplicationStatus.APPROVED)

        with (
            patch(REPOSITORY) as mock_repo,
            patch(APPLICATION_REPOSITORY) as mock_app_repo,
            patch(APPLICATION_SERVICE) as mock_app_service,
        ):
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_repo.save = AsyncMock()
            mock_app_repo.get_by_id = AsyncMock(return_value=application)
            mock_app_service.process = AsyncMock()
            mock_app_service.release = AsyncMock()

            await service.process_payment(mock_db, _ref(payment), finance_ctx, auto_log=False)
            first_reference = payment.reference_number

            with pytest.raises(PaymentAlreadyCompletedError) as exc_info:
                await service.process_payment(mock_db, _ref(payment), finance_ctx, auto_log=False)

        assert exc_info.value.status_code == 409
        assert payment.reference_number == first_reference
        assert mock_app_service.release.await_count == 1
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pending_application_ref_is_refused(self, mock_db, finance_ctx):
        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_payment = AsyncMock()

            with pytest.raises(SyntheticPaymentError):
                await service.process_payment(
                    mock_db, QueueItemRef("application", uuid4()), finance_ctx
                )

        mock_repo.get_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_payment_cannot_be_processed(self, mock_db, finance_ctx, make_payment):
        payment = make_payment(PaymentStatus.CANCELLED)

        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_payment = AsyncMock(return_value=payment)

            with pytest.raises(InvalidPaymentStateError):
                await service.process_payment(mock_db, _ref(payment), finance_ctx)

    @pytest.mark.asyncio
    async def test_application_that_moved_on_rolls_back(
        self, mock_db, finance_ctx, make_payment, make_application
    ):
        payment = make_payment()
        application = make_application(ApplicationStatus.CANCELLED)

        with (
            patch(REPOSITORY) as mock_repo,
            patch(APPLICATION_REPOSITORY) as mock_app_repo,
            patch(APPLICATION_SERVICE),
        ):
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_app_repo.get_by_id = AsyncMock(return_value=application)

            with pytest.raises(ApplicationNotPayableError):
                await service.process_payment(mock_db, _ref(payment), finance_ctx)

        assert payment.payment_status == PaymentStatus.PENDING
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_distribution_failure_is_a_warning(
        self, mock_db, finance_ctx, make_payment
    ):
        payment = make_payment(application_id=None)

        with patch(REPOSITORY) as mock_repo, patch(DISTRIBUTION_SERVICE) as mock_distribution:
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_repo.save = AsyncMock()
            mock_distribution.create_logs_from_payments = AsyncMock(
                side_effect=RuntimeError("connection reset")
            )

            result = await service.process_payment(mock_db, _ref(payment), finance_ctx)

        assert payment.payment_status == PaymentStatus.COMPLETED
        assert result["distribution"] is None
        assert len(result["warnings"]) == 1
        assert "connection reset" in result["warnings"][0]
        assert mock_db.refresh.await_count == 2

    @pytest.mark.asyncio
    async def test_other_school_payment_is_not_found(self, mock_db, rep_ctx, make_payment):
        payment = make_payment(school_id=uuid4())

        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_payment = AsyncMock(return_value=payment)

            with pytest.raises(PaymentNotFoundError):
                await service.get_payment(mock_db, payment.id, rep_ctx)


class TestBulkProcess:
    @pytest.mark.asyncio
    async def test_mixed_batch_reports_each_kind(
        self, mock_db, finance_ctx, make_payment, make_application
    ):
        completed = make_payment(PaymentStatus.COMPLETED)
        valid = make_payment()
        pending_application = QueueItemRef("application", uuid4())
        payments = {completed.id: completed, valid.id: valid}

        with (
            patch(REPOSITORY) as mock_repo,
            patch(APPLICATION_REPOSITORY) as mock_app_repo,
            patch(APPLICATION_SERVICE) as mock_app_service,
            patch(DISTRIBUTION_SERVICE) as mock_distribution,
        ):
            mock_repo.get_payment = AsyncMock(side_effect=lambda db, pid, **kw: payments[pid])
            mock_repo.save = AsyncMock()
            mock_app_repo.get_by_id = AsyncMock(
                return_value=make_application(ApplicationStatus.APPROVED)
            )
            mock_app_service.process = AsyncMock()
            mock_app_service.release = AsyncMock()
            mock_distribution.create_logs_from_payments = AsyncMock(
                return_value=_distribution([valid.id])
            )

            result = await service.bulk_process(
                mock_db, [_ref(completed), pending_application, _ref(valid)], finance_ctx
            )

        assert [item["id"] for item in result["processed"]] == [valid.id]
        assert [item["id"] for item in result["rejected_synthetic"]] == [pending_application.id]
        assert result["rejected_synthetic"][0]["error"] == "SYNTHETIC_PAYMENT"
        assert [item["id"] for item in result["rejected_completed"]] == [completed.id]
        assert result["failed"] == []
        assert result["summary"] == {"total": 3, "successful": 1, "failed": 2}
        assert result["batch_number"] == "BATCH-2024-12-15T10-00-00"

        logged_ids = mock_distribution.create_logs_from_payments.call_args.args[1]
        assert logged_ids == [valid.id]

    @pytest.mark.asyncio
    async def test_nothing_processed_skips_distribution(self, mock_db, finance_ctx):
        with patch(DISTRIBUTION_SERVICE) as mock_distribution:
            mock_distribution.create_logs_from_payments = AsyncMock()

            result = await service.bulk_process(
                mock_db, [QueueItemRef("application", uuid4())], finance_ctx
            )

        mock_distribution.create_logs_from_payments.assert_not_awaited()
        assert result["batch_number"] is None

    @pytest.mark.asyncio
    async def test_skipped_log_becomes_warning(self, mock_db, finance_ctx, make_payment):
        payment = make_payment(application_id=None)

        with patch(REPOSITORY) as mock_repo, patch(DISTRIBUTION_SERVICE) as mock_distribution:
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_repo.save = AsyncMock()
            mock_distribution.create_logs_from_payments = AsyncMock(
                return_value={
                    "batch_number": "BATCH-X",
                    "results": [
                        {
                            "payment_id": payment.id,
                            "success": False,
                            "error": "ALREADY_LOGGED",
                            "message": "Payment already has a distribution log",
                        }
                    ],
                }
            )

            result = await service.bulk_process(mock_db, [_ref(payment)], finance_ctx)

        assert len(result["warnings"]) == 1
        assert str(payment.id) in result["warnings"][0]


class TestCreateFromApplications:
    @pytest.mark.asyncio
    async def test_creates_one_payment_per_application(
        self, mock_db, finance_ctx, make_application
    ):
        application = make_application(ApplicationStatus.APPROVED)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_REPOSITORY) as mock_app_repo:
            mock_app_repo.get_by_id = AsyncMock(return_value=application)
            mock_repo.get_live_payment_for_application = AsyncMock(return_value=None)
            mock_repo.find_unlinked_identity_match = AsyncMock(return_value=None)
            mock_repo.add = AsyncMock()

            result = await service.create_from_applications(
                mock_db, [application.id, application.id], finance_ctx
            )

        assert result["summary"] == {"total": 1, "successful": 1, "failed": 0}
        payment = mock_repo.add.call_args.args[1]
        assert isinstance(payment, Payment)
        assert payment.application_id == application.id
        assert payment.idempotency_key == f"aid-application-{application.id}"
        assert payment.amount == Decimal("5000.00")
        assert payment.aid_type == "tuition"
        assert payment.payment_method == "bank_transfer"
        assert payment.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_future_date_is_scheduled(self, mock_db, finance_ctx, make_application):
        application = make_application(ApplicationStatus.PAYMENT_FAILED)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_REPOSITORY) as mock_app_repo:
            mock_app_repo.get_by_id = AsyncMock(return_value=application)
            mock_repo.get_live_payment_for_application = AsyncMock(return_value=None)
            mock_repo.find_unlinked_identity_match = AsyncMock(return_value=None)
            mock_repo.add = AsyncMock()

            await service.create_from_applications(
                mock_db,
                [application.id],
                finance_ctx,
                scheduled_date=date.today() + timedelta(days=7),
            )

        assert mock_repo.add.call_args.args[1].payment_status == PaymentStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_failures_are_reported_per_item(
        self, mock_db, finance_ctx, make_application, make_payment
    ):
        covered = make_application(ApplicationStatus.APPROVED)
        legacy = make_application(ApplicationStatus.APPROVED)
        unverified = make_application(ApplicationStatus.APPROVED_PENDING_VERIFICATION)
        applications = {a.id: a for a in (covered, legacy, unverified)}
        live = make_payment(application_id=covered.id)
        unlinked = make_payment(application_id=None)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_REPOSITORY) as mock_app_repo:
            mock_app_repo.get_by_id = AsyncMock(side_effect=lambda db, aid, **kw: applications[aid])
            mock_repo.get_live_payment_for_application = AsyncMock(
                side_effect=lambda db, aid: live if aid == covered.id else None
            )
            mock_repo.find_unlinked_identity_match = AsyncMock(return_value=unlinked)
            mock_repo.add = AsyncMock()

            result = await service.create_from_applications(
                mock_db, [covered.id, legacy.id, unverified.id], finance_ctx
            )

        errors = {r["id"]: r for r in result["results"]}
        assert errors[covered.id]["error"] == "PAYMENT_EXISTS"
        assert errors[legacy.id]["error"] == "PAYMENT_EXISTS"
        assert errors[unverified.id]["error"] == "APPLICATION_NOT_PAYABLE"
        assert result["summary"] == {"total": 3, "successful": 0, "failed": 3}
        mock_repo.add.assert_not_awaited()
        assert mock_db.rollback.await_count == 3

    @pytest.mark.asyncio
    async def test_concurrent_creation_is_a_conflict(
        self, mock_db, finance_ctx, make_application
    ):
        application = make_application(ApplicationStatus.APPROVED)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_REPOSITORY) as mock_app_repo:
            mock_app_repo.get_by_id = AsyncMock(return_value=application)
            mock_repo.get_live_payment_for_application = AsyncMock(return_value=None)
            mock_repo.find_unlinked_identity_match = AsyncMock(return_value=None)
            mock_repo.add = AsyncMock(
                side_effect=IntegrityError("INSERT", {}, Exception("uq_payments_live_application"))
            )

            result = await service.create_from_applications(mock_db, [application.id], finance_ctx)

        (outcome,) = result["results"]
        assert outcome["success"] is False
        assert outcome["error"] == "PAYMENT_EXISTS"


class TestProcessApprovedApplications:
    @pytest.mark.asyncio
    async def test_in_flight_application_is_refused(self, mock_db, finance_ctx):
        application_id = uuid4()

        with patch(REPOSITORY) as mock_repo:
            mock_repo.purge_stale_claims = AsyncMock(return_value=0)
            mock_repo.get_claimed_application_ids = AsyncMock(return_value=[application_id])
            mock_repo.insert_claims = AsyncMock()
            mock_repo.release_claims = AsyncMock()

            with pytest.raises(InFlightConflictError) as exc_info:
                await service.process_approved_applications(mock_db, [application_id], finance_ctx)

        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.details["application_ids"] == [str(application_id)]
        mock_repo.insert_claims.assert_not_awaited()
        mock_repo.release_claims.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_claim_race_is_refused(self, mock_db, finance_ctx):
        application_id = uuid4()

        with patch(REPOSITORY) as mock_repo:
            mock_repo.purge_stale_claims = AsyncMock(return_value=0)
            mock_repo.get_claimed_application_ids = AsyncMock(side_effect=[[], [application_id]])
            mock_repo.insert_claims = AsyncMock(
                side_effect=IntegrityError("INSERT", {}, Exception("payment_processing_claims_pkey"))
            )

            with pytest.raises(InFlightConflictError):
                await service.process_approved_applications(mock_db, [application_id], finance_ctx)

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_creates_processes_and_releases_claims(self, mock_db, finance_ctx):
        application_id, payment_id = uuid4(), uuid4()
        created = {
            "results": [{"kind": "application", "id": application_id, "success": True, "payment_id": payment_id}],
            "summary": {"total": 1, "successful": 1, "failed": 0},
        }
        processing = {"processed": [], "warnings": ["logging failed"]}

        with (
            patch(REPOSITORY) as mock_repo,
            patch.object(service, "create_from_applications", AsyncMock(return_value=created)),
            patch.object(service, "bulk_process", AsyncMock(return_value=processing)) as mock_bulk,
        ):
            mock_repo.purge_stale_claims = AsyncMock(return_value=0)
            mock_repo.get_claimed_application_ids = AsyncMock(return_value=[])
            mock_repo.insert_claims = AsyncMock()
            mock_repo.release_claims = AsyncMock(return_value=1)

            result = await service.process_approved_applications(
                mock_db, [application_id], finance_ctx
            )

        assert mock_bulk.call_args.args[1] == [QueueItemRef("payment", payment_id)]
        assert result["warnings"] == ["logging failed"]
        token = mock_repo.insert_claims.call_args.args[2]
        mock_repo.release_claims.assert_awaited_once_with(mock_db, token)

    @pytest.mark.asyncio
    async def test_claims_released_when_creation_fails(self, mock_db, finance_ctx):
        with (
            patch(REPOSITORY) as mock_repo,
            patch.object(
                service, "create_from_applications", AsyncMock(side_effect=RuntimeError("boom"))
            ),
        ):
            mock_repo.purge_stale_claims = AsyncMock(return_value=0)
            mock_repo.get_claimed_application_ids = AsyncMock(return_value=[])
            mock_repo.insert_claims = AsyncMock()
            mock_repo.release_claims = AsyncMock(return_value=1)

            with pytest.raises(RuntimeError):
                await service.process_approved_applications(mock_db, [uuid4()], finance_ctx)

        mock_repo.release_claims.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_requires_application_ids(self, mock_db, finance_ctx):
        with pytest.raises(ValidationError):
            await service.process_approved_applications(mock_db, [], finance_ctx)


class TestCancelAndFail:
    @pytest.mark.asyncio
    async def test_cancel_pending_payment(self, mock_db, finance_ctx, make_payment):
        payment = make_payment(PaymentStatus.SCHEDULED)

        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_repo.save = AsyncMock(side_effect=lambda db, obj, **kw: obj)

            result = await service.cancel_payment(mock_db, payment.id, "Duplicate", finance_ctx)

        assert result.payment_status == PaymentStatus.CANCELLED
        assert result.cancellation_reason == "Duplicate"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.CANCELLED]
    )
    async def test_cancel_refused_once_in_progress(
        self, mock_db, finance_ctx, make_payment, status
    ):
        payment = make_payment(status)

        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_payment = AsyncMock(return_value=payment)

            with pytest.raises(InvalidPaymentStateError):
                await service.cancel_payment(mock_db, payment.id, "Duplicate", finance_ctx)

    @pytest.mark.asyncio
    async def test_cancel_requires_reason(self, mock_db, finance_ctx):
        with pytest.raises(ValidationError):
            await service.cancel_payment(mock_db, uuid4(), "  ", finance_ctx)

    @pytest.mark.asyncio
    async def test_fail_marks_application_payment_failed(
        self, mock_db, finance_ctx, make_payment
    ):
        payment = make_payment(PaymentStatus.PROCESSING)

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_SERVICE) as mock_app_service:
            mock_repo.get_payment = AsyncMock(return_value=payment)
            mock_repo.save = AsyncMock()
            mock_app_service.mark_payment_failed = AsyncMock()

            result = await service.fail_payment(mock_db, payment.id, "Bank rejected", finance_ctx)

        assert result.payment_status == PaymentStatus.FAILED
        assert result.failure_reason == "Bank rejected"
        call = mock_app_service.mark_payment_failed.call_args
        assert call.args[1] == payment.application_id
        assert call.kwargs["commit"] is False
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_completed_payment_cannot_fail(self, mock_db, finance_ctx, make_payment):
        payment = make_payment(PaymentStatus.COMPLETED)

        with patch(REPOSITORY) as mock_repo:
            mock_repo.get_payment = AsyncMock(return_value=payment)

            with pytest.raises(InvalidPaymentStateError):
                await service.fail_payment(mock_db, payment.id, "Bank rejected", finance_ctx)

    @pytest.mark.asyncio
    async def test_cancel_application_voids_open_payments(
        self, mock_db, finance_ctx, make_application, make_payment
    ):
        application = make_application(ApplicationStatus.PAYMENT_FAILED)
        failed = make_payment(PaymentStatus.FAILED, application_id=application.id)

        with (
            patch(REPOSITORY) as mock_repo,
            patch(APPLICATION_REPOSITORY) as mock_app_repo,
            patch(APPLICATION_SERVICE) as mock_app_service,
        ):
            mock_app_repo.get_by_id = AsyncMock(return_value=application)
            mock_repo.get_open_payments_for_application = AsyncMock(return_value=[failed])
            mock_app_service.cancel = AsyncMock(return_value=application)

            await service.cancel_application(mock_db, application.id, "Student withdrew", finance_ctx)

        assert failed.payment_status == PaymentStatus.CANCELLED
        assert failed.cancellation_reason == "Application cancelled: Student withdrew"
        assert mock_app_service.cancel.call_args.kwargs["commit"] is False
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_application_requires_payable_status(
        self, mock_db, finance_ctx, make_application
    ):
        application = make_application(ApplicationStatus.GRANTS_PROCESSING)

        with patch(APPLICATION_REPOSITORY) as mock_app_repo:
            mock_app_repo.get_by_id = AsyncMock(return_value=application)

            with pytest.raises(ApplicationNotPayableError):
                await service.cancel_application(mock_db, application.id, "late", finance_ctx)


class TestPayableQueue:
    @pytest.mark.asyncio
    async def test_unlinked_completed_payment_hides_application(
        self, mock_db, finance_ctx, make_payment, make_application
    ):
        paid = make_payment(
            PaymentStatus.COMPLETED,
            application_id=None,
            student_name="Jane Doe",
            student_number="2024-0099",
            amount=Decimal("500.00"),
            school_name="Rizal High School",
            aid_type="tuition",
            payment_method="bank_transfer",
            scheduled_date=None,
            processed_date=None,
            created_at=None,
        )
        jane = make_application(
            ApplicationStatus.APPROVED,
            student_name="Jane Doe",
            student_number="2024-0099",
            payable_amount=Decimal("500.00"),
        )
        other = make_application(ApplicationStatus.APPROVED, student_number="2024-0100")

        with patch(REPOSITORY) as mock_repo, patch(APPLICATION_REPOSITORY) as mock_app_repo:
            mock_repo.list_payments = AsyncMock(return_value=[paid])
            mock_app_repo.get_by_statuses = AsyncMock(return_value=[jane, other])

            queue = await service.get_payable_queue(mock_db, finance_ctx)

        items = queue["items"]
        assert isinstance(items[0], RealPayment)
        pending = [item for item in items if isinstance(item, PendingApplication)]
        assert [item.application_id for item in pending] == [other.id]
        assert queue["statistics"]["pending_applications"] == 1

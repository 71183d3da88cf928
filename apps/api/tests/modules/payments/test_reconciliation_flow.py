"""
Reconciliation tests against a real session.

These walk an approved application through the payable queue, payment
creation and processing, and check what the response layer sees when
distribution logging fails after the payment has committed.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from scholarship_aid.core.exceptions import ConflictError
from scholarship_aid.modules.applications.models import ApplicationStatus
from scholarship_aid.modules.distribution_logs.models import DistributionLog
from scholarship_aid.modules.payments import service
from scholarship_aid.modules.payments.models import PaymentStatus
from scholarship_aid.modules.payments.queue import (
    PAYMENT,
    PendingApplication,
    QueueItemRef,
    RealPayment,
)
from scholarship_aid.modules.payments.schemas import PaymentResponse

CREATE_LOGS = (
    "scholarship_aid.modules.payments.service.distribution_service.create_logs_from_payments"
)


@pytest.fixture
def add_approved_application(add_application):
    async def _add(**overrides):
        return await add_application(
            ApplicationStatus.APPROVED,
            approved_amount=Decimal("1000.00"),
            approved_at=datetime.now(UTC),
            **overrides,
        )

    return _add


async def _create_payment(db_session, application_id, ctx) -> QueueItemRef:
    created = await service.create_from_applications(db_session, [application_id], ctx)
    assert created["summary"]["successful"] == 1
    return QueueItemRef(PAYMENT, created["results"][0]["payment_id"])


class TestApprovedApplicationRoundTrip:
    @pytest.mark.asyncio
    async def test_queue_create_process_queue(
        self, db_session, finance_ctx, add_approved_application
    ):
        application = await add_approved_application()
        application_id = application.id

        queue = await service.get_payable_queue(db_session, finance_ctx)
        assert len(queue["items"]) == 1
        pending = queue["items"][0]
        assert isinstance(pending, PendingApplication)
        assert pending.application_id == application_id
        assert pending.student_name == "J. Dela Cruz"
        assert pending.amount == Decimal("1000.00")
        assert pending.payment_status == PaymentStatus.PENDING

        ref = await _create_payment(db_session, application_id, finance_ctx)

        queue = await service.get_payable_queue(db_session, finance_ctx)
        assert [type(item) for item in queue["items"]] == [RealPayment]

        result = await service.bulk_process(db_session, [ref], finance_ctx)

        assert result["summary"] == {"total": 1, "successful": 1, "failed": 0}
        assert result["batch_number"].startswith("BATCH-")
        assert result["warnings"] == []

        queue = await service.get_payable_queue(db_session, finance_ctx)
        assert len(queue["items"]) == 1
        completed = queue["items"][0]
        assert isinstance(completed, RealPayment)
        assert completed.payment_id == ref.id
        assert completed.application_id == application_id
        assert completed.payment_status == PaymentStatus.COMPLETED
        assert completed.reference_number.startswith("PAY-")
        assert queue["statistics"]["completed_amount"] == Decimal("1000.00")

        await db_session.refresh(application)
        assert application.status == ApplicationStatus.GRANTS_DISBURSED

        logs = (await db_session.execute(select(DistributionLog))).scalars().all()
        assert [log.payment_id for log in logs] == [ref.id]
        assert logs[0].batch_number == result["batch_number"]

    @pytest.mark.asyncio
    async def test_second_payment_for_same_application_is_refused(
        self, db_session, finance_ctx, add_approved_application
    ):
        application = await add_approved_application()
        await _create_payment(db_session, application.id, finance_ctx)

        created = await service.create_from_applications(db_session, [application.id], finance_ctx)

        assert created["summary"]["failed"] == 1
        assert created["results"][0]["error"] == "PAYMENT_EXISTS"


class TestDistributionFailureAfterCommit:
    @pytest.mark.asyncio
    async def test_completed_payment_is_returned_with_warning(
        self, db_session, finance_ctx, add_approved_application
    ):
        application = await add_approved_application()
        ref = await _create_payment(db_session, application.id, finance_ctx)

        with patch(
            CREATE_LOGS,
            AsyncMock(side_effect=ConflictError("Payment already logged", "ALREADY_LOGGED")),
        ):
            result = await service.process_payment(db_session, ref, finance_ctx)

        response = PaymentResponse.model_validate(result["payment"])

        assert response.id == ref.id
        assert response.payment_status == PaymentStatus.COMPLETED
        assert response.processed_by == "Fin Officer"
        assert result["distribution"] is None
        assert len(result["warnings"]) == 1
        assert "distribution logging failed" in result["warnings"][0]

        await db_session.refresh(application)
        assert application.status == ApplicationStatus.GRANTS_DISBURSED

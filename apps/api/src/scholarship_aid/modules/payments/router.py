"""
Payments Router

Endpoints:
- GET /payments - The payable queue with statistics
- GET /payments/{id}
- POST /payments/process - Complete one stored payment
- POST /payments/bulk-process - Complete many stored payments
- POST /payments/from-applications - Create payments for approved applications
- POST /payments/process-approved - Create and immediately process payments
- POST /payments/{id}/cancel
- POST /payments/{id}/fail
- POST /payments/applications/{application_id}/cancel - Cancel a payable application
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, Role, require_roles
from scholarship_aid.core.database import get_db
from scholarship_aid.core.exceptions import ServiceError
from scholarship_aid.core.rate_limit import enforce_rate_limit
from scholarship_aid.core.responses import ApiResponse, ok, raise_http_error
from scholarship_aid.modules.applications.schemas import ApplicationResponse, ReasonRequest
from scholarship_aid.modules.payments import service
from scholarship_aid.modules.payments.queue import PendingApplication, QueueItemRef
from scholarship_aid.modules.payments.schemas import (
    BulkProcessRequest,
    BulkProcessResult,
    CancelPaymentRequest,
    CreateFromApplicationsRequest,
    CreatePaymentsResult,
    FailPaymentRequest,
    PaymentQueueResponse,
    PaymentResponse,
    ProcessApprovedApplicationsRequest,
    ProcessApprovedResult,
    ProcessPaymentRequest,
    QueueItemRefIn,
    QueueItemResponse,
    QueueStatistics,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_finance = require_roles(Role.ADMIN, Role.FINANCE)


def _ref(item: QueueItemRefIn) -> QueueItemRef:
    return QueueItemRef(item.kind, item.id)


def _queue_item_response(item) -> QueueItemResponse:
    if isinstance(item, PendingApplication):
        return QueueItemResponse(
            kind=item.kind,
            payment_id=None,
            application_id=item.application_id,
            reference=item.display_reference,
            student_name=item.student_name,
            student_number=item.student_number,
            school_id=item.school_id,
            school_name=item.school_name,
            aid_type=item.aid_type,
            amount=item.amount,
            currency=item.currency,
            payment_method=item.payment_method,
            payment_status=item.payment_status,
            transaction_fee=0,
        )

    return QueueItemResponse(
        kind=item.kind,
        payment_id=item.payment_id,
        application_id=item.application_id,
        reference=item.reference_number,
        student_name=item.student_name,
        student_number=item.student_number,
        school_id=item.school_id,
        school_name=item.school_name,
        aid_type=item.aid_type,
        amount=item.amount,
        currency=item.currency,
        payment_method=item.payment_method,
        payment_status=item.payment_status,
        transaction_fee=item.transaction_fee,
        scheduled_date=item.scheduled_date,
        processed_date=item.processed_date,
    )


@router.get("", response_model=ApiResponse[PaymentQueueResponse])
async def get_payable_queue(
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    queue = await service.get_payable_queue(db, ctx)
    return ok(
        PaymentQueueResponse(
            items=[_queue_item_response(item) for item in queue["items"]],
            statistics=QueueStatistics(**queue["statistics"]),
        )
    )


@router.post("/process", response_model=ApiResponse[PaymentResponse])
async def process_payment(
    body: ProcessPaymentRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await service.process_payment(
            db,
            _ref(body.item),
            ctx,
            reference_number=body.reference_number,
            transaction_fee=body.transaction_fee,
            notes=body.notes,
        )
    except ServiceError as e:
        raise_http_error(e)

    message = "Payment processed"
    if result["distribution"]:
        message += f" and logged in {result['distribution']['batch_number']}"
    return ok(PaymentResponse.model_validate(result["payment"]), message, result["warnings"])


@router.post("/bulk-process", response_model=ApiResponse[BulkProcessResult])
async def bulk_process(
    body: BulkProcessRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    await enforce_rate_limit("payments:bulk-process", ctx.user_id, limit=10, window_seconds=60)

    result = await service.bulk_process(db, [_ref(i) for i in body.items], ctx, notes=body.notes)
    summary = result["summary"]
    return ok(
        result,
        f"Processed {summary['successful']} of {summary['total']} payments",
        result["warnings"],
    )


@router.post(
    "/from-applications",
    response_model=ApiResponse[CreatePaymentsResult],
    status_code=status.HTTP_201_CREATED,
)
async def create_from_applications(
    body: CreateFromApplicationsRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    await enforce_rate_limit("payments:create", ctx.user_id, limit=10, window_seconds=60)

    result = await service.create_from_applications(
        db,
        body.application_ids,
        ctx,
        payment_method=body.payment_method,
        scheduled_date=body.scheduled_date,
        notes=body.notes,
    )
    summary = result["summary"]
    return ok(result, f"Created {summary['successful']} of {summary['total']} payments")


@router.post("/process-approved", response_model=ApiResponse[ProcessApprovedResult])
async def process_approved_applications(
    body: ProcessApprovedApplicationsRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    await enforce_rate_limit("payments:process-approved", ctx.user_id, limit=5, window_seconds=60)

    try:
        result = await service.process_approved_applications(
            db,
            body.application_ids,
            ctx,
            payment_method=body.payment_method,
            notes=body.notes,
        )
    except ServiceError as e:
        raise_http_error(e)

    processed = result["processing"]["summary"]["successful"] if result["processing"] else 0
    return ok(
        result,
        f"Processed {processed} of {len(body.application_ids)} applications",
        result["warnings"],
    )


@router.post(
    "/applications/{application_id}/cancel", response_model=ApiResponse[ApplicationResponse]
)
async def cancel_application(
    application_id: UUID,
    body: ReasonRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.cancel_application(db, application_id, body.reason, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(ApplicationResponse.model_validate(application), "Application cancelled")


@router.get("/{payment_id}", response_model=ApiResponse[PaymentResponse])
async def get_payment(
    payment_id: UUID,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        payment = await service.get_payment(db, payment_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(PaymentResponse.model_validate(payment))


@router.post("/{payment_id}/cancel", response_model=ApiResponse[PaymentResponse])
async def cancel_payment(
    payment_id: UUID,
    body: CancelPaymentRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        payment = await service.cancel_payment(db, payment_id, body.reason, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(PaymentResponse.model_validate(payment), "Payment cancelled")


@router.post("/{payment_id}/fail", response_model=ApiResponse[PaymentResponse])
async def fail_payment(
    payment_id: UUID,
    body: FailPaymentRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        payment = await service.fail_payment(db, payment_id, body.reason, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(PaymentResponse.model_validate(payment), "Payment marked as failed")

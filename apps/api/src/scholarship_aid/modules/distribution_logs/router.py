"""
Distribution Logs Router

Endpoints:
- GET /distribution-logs - List logs with filters and pagination
- GET /distribution-logs/statistics - Aggregates over the log table
- POST /distribution-logs/from-payments - Log a batch of completed payments
- GET /distribution-logs/{id}
- PATCH /distribution-logs/{id}/status
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, Role, get_auth_context, require_roles
from scholarship_aid.core.database import get_db
from scholarship_aid.core.exceptions import ServiceError
from scholarship_aid.core.rate_limit import enforce_rate_limit
from scholarship_aid.core.responses import ApiResponse, ok, raise_http_error
from scholarship_aid.modules.distribution_logs import service
from scholarship_aid.modules.distribution_logs.models import DistributionStatus
from scholarship_aid.modules.distribution_logs.schemas import (
    CreateLogsRequest,
    CreateLogsResult,
    DistributionLogListResponse,
    DistributionLogResponse,
    DistributionStatistics,
    UpdateStatusRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_finance = require_roles(Role.ADMIN, Role.FINANCE)


@router.get("", response_model=ApiResponse[DistributionLogListResponse])
async def list_logs(
    batch_number: str | None = Query(None, max_length=50),
    status_filter: DistributionStatus | None = Query(None, alias="status"),
    school_id: UUID | None = Query(None),
    aid_type: str | None = Query(None, max_length=100),
    search: str | None = Query(None, max_length=200),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    result = await service.list_logs(
        db,
        ctx,
        batch_number=batch_number,
        status=status_filter,
        school_id=school_id,
        aid_type=aid_type,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return ok(
        DistributionLogListResponse(
            logs=[DistributionLogResponse.model_validate(log) for log in result["logs"]],
            total=result["total"],
            skip=result["skip"],
            limit=result["limit"],
        )
    )


@router.get("/statistics", response_model=ApiResponse[DistributionStatistics])
async def get_statistics(
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return ok(await service.get_statistics(db, ctx))


@router.post(
    "/from-payments",
    response_model=ApiResponse[CreateLogsResult],
    status_code=status.HTTP_201_CREATED,
)
async def create_logs_from_payments(
    body: CreateLogsRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    await enforce_rate_limit("distribution-logs:create", ctx.user_id, limit=30, window_seconds=60)

    try:
        result = await service.create_logs_from_payments(
            db,
            body.payment_ids,
            ctx,
            batch_number=body.batch_number,
            processed_by=body.processed_by,
            notes=body.notes,
        )
    except ServiceError as e:
        raise_http_error(e)

    warnings = [
        f"{r['payment_id']}: {r['message']}" for r in result["results"] if not r["success"]
    ]
    return ok(
        result,
        f"Logged {result['successful']} of {len(result['results'])} payments in {result['batch_number']}",
        warnings,
    )


@router.get("/{log_id}", response_model=ApiResponse[DistributionLogResponse])
async def get_log(
    log_id: UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        log = await service.get_log(db, log_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(DistributionLogResponse.model_validate(log))


@router.patch("/{log_id}/status", response_model=ApiResponse[DistributionLogResponse])
async def update_status(
    log_id: UUID,
    body: UpdateStatusRequest,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        log = await service.update_status(db, log_id, body.distribution_status, ctx, body.notes)
    except ServiceError as e:
        raise_http_error(e)
    return ok(DistributionLogResponse.model_validate(log), "Distribution status updated")

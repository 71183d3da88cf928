"""
Enrollment Verification Router

Endpoints:
- GET /enrollment-verifications - Records merged with applications awaiting proof
- GET /enrollment-verifications/statistics
- GET /enrollment-verifications/{id}
- POST /enrollment-verifications/applications/{application_id}/proof
- POST /enrollment-verifications/{id}/approve
- POST /enrollment-verifications/{id}/reject
- POST /enrollment-verifications/{id}/flag
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, Role, get_auth_context, require_roles
from scholarship_aid.core.database import get_db
from scholarship_aid.core.exceptions import ServiceError
from scholarship_aid.core.responses import ApiResponse, ok, raise_http_error
from scholarship_aid.modules.enrollment_verification import service
from scholarship_aid.modules.enrollment_verification.models import VerificationStatus
from scholarship_aid.modules.enrollment_verification.schemas import (
    EnrollmentProofSubmit,
    VerificationListResponse,
    VerificationNotes,
    VerificationReason,
    VerificationResponse,
    VerificationStatistics,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_verifiers = require_roles(Role.ADMIN, Role.REVIEWER, Role.SCHOOL_REP)


@router.get("", response_model=ApiResponse[VerificationListResponse])
async def list_verifications(
    status_filter: VerificationStatus | None = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    result = await service.list_verifications(
        db, ctx, status=status_filter, skip=skip, limit=limit
    )
    return ok(VerificationListResponse(**result))


@router.get("/statistics", response_model=ApiResponse[VerificationStatistics])
async def get_statistics(
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return ok(await service.get_statistics(db, ctx))


@router.get("/{verification_id}", response_model=ApiResponse[VerificationResponse])
async def get_verification(
    verification_id: UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        record = await service.get_verification(db, verification_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(VerificationResponse.model_validate(record))


@router.post(
    "/applications/{application_id}/proof",
    response_model=ApiResponse[VerificationResponse],
)
async def submit_enrollment_proof(
    application_id: UUID,
    data: EnrollmentProofSubmit,
    ctx: AuthContext = Depends(_verifiers),
    db: AsyncSession = Depends(get_db),
):
    try:
        record = await service.submit_enrollment_proof(db, application_id, data, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(VerificationResponse.model_validate(record), "Enrollment proof submitted")


@router.post("/{verification_id}/approve", response_model=ApiResponse[VerificationResponse])
async def approve_verification(
    verification_id: UUID,
    body: VerificationNotes | None = None,
    ctx: AuthContext = Depends(_verifiers),
    db: AsyncSession = Depends(get_db),
):
    try:
        record = await service.approve(db, verification_id, ctx, body.notes if body else None)
    except ServiceError as e:
        raise_http_error(e)
    return ok(VerificationResponse.model_validate(record), "Enrollment verified")


@router.post("/{verification_id}/reject", response_model=ApiResponse[VerificationResponse])
async def reject_verification(
    verification_id: UUID,
    body: VerificationReason,
    ctx: AuthContext = Depends(_verifiers),
    db: AsyncSession = Depends(get_db),
):
    try:
        record = await service.reject(db, verification_id, body.notes, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(VerificationResponse.model_validate(record), "Enrollment verification rejected")


@router.post("/{verification_id}/flag", response_model=ApiResponse[VerificationResponse])
async def flag_for_review(
    verification_id: UUID,
    body: VerificationReason,
    ctx: AuthContext = Depends(_verifiers),
    db: AsyncSession = Depends(get_db),
):
    try:
        record = await service.flag_for_review(db, verification_id, body.notes, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(VerificationResponse.model_validate(record), "Verification flagged for review")

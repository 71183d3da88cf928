"""
Aid Applications Router

Endpoints:
- GET /applications - List applications with filters and pagination
- POST /applications - Create a draft application
- GET /applications/{id} - Get application details
- PATCH /applications/{id} - Edit a draft application
- DELETE /applications/{id} - Delete a draft application
- GET /applications/{id}/history - Status history
- POST /applications/{id}/submit
- POST /applications/{id}/documents-reviewed
- POST /applications/{id}/review
- POST /applications/{id}/flag
- POST /applications/{id}/resolve-compliance
- POST /applications/{id}/approve
- POST /applications/{id}/reject
- POST /applications/{id}/process
- POST /applications/{id}/release
- POST /applications/{id}/cancel

Interview scheduling/completion and enrollment confirmation are driven by the
interviews and enrollment verification endpoints, not exposed here.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, Role, get_auth_context, require_roles
from scholarship_aid.core.database import get_db
from scholarship_aid.core.exceptions import ServiceError
from scholarship_aid.core.responses import ApiResponse, ok, raise_http_error
from scholarship_aid.modules.applications import service
from scholarship_aid.modules.applications.models import ApplicationStatus
from scholarship_aid.modules.applications.schemas import (
    ApplicationCreate,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationUpdate,
    ApproveRequest,
    NotesRequest,
    ReasonRequest,
    StatusHistoryEntry,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_applicants = require_roles(Role.ADMIN, Role.REVIEWER, Role.SCHOOL_REP)
_reviewers = require_roles(Role.ADMIN, Role.REVIEWER)
_finance = require_roles(Role.ADMIN, Role.FINANCE)


def _to_response(application) -> ApplicationResponse:
    return ApplicationResponse.model_validate(application)


# ============================================
# Queries
# ============================================


@router.get("", response_model=ApiResponse[ApplicationListResponse], summary="List Applications")
async def list_applications(
    status_filter: ApplicationStatus | None = Query(None, alias="status"),
    school_id: UUID | None = Query(None),
    category: str | None = Query(None, max_length=100),
    search: str | None = Query(None, max_length=200),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    result = await service.list_applications(
        db,
        ctx,
        status=status_filter,
        school_id=school_id,
        category=category,
        search=search,
        skip=skip,
        limit=limit,
    )
    return ok(
        ApplicationListResponse(
            applications=[_to_response(a) for a in result["applications"]],
            total=result["total"],
            skip=result["skip"],
            limit=result["limit"],
        )
    )


@router.get("/{application_id}", response_model=ApiResponse[ApplicationResponse])
async def get_application(
    application_id: UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.get_application(db, application_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application))


@router.get("/{application_id}/history", response_model=ApiResponse[list[StatusHistoryEntry]])
async def get_history(
    application_id: UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        history = await service.get_status_history(db, application_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok([StatusHistoryEntry.model_validate(h) for h in history])


# ============================================
# Draft management
# ============================================


@router.post(
    "",
    response_model=ApiResponse[ApplicationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_application(
    data: ApplicationCreate,
    ctx: AuthContext = Depends(_applicants),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.create_application(db, data, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Draft application created")


@router.patch("/{application_id}", response_model=ApiResponse[ApplicationResponse])
async def update_application(
    application_id: UUID,
    data: ApplicationUpdate,
    ctx: AuthContext = Depends(_applicants),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.update_application(db, application_id, data, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application))


@router.delete("/{application_id}", response_model=ApiResponse[None])
async def delete_application(
    application_id: UUID,
    ctx: AuthContext = Depends(_applicants),
    db: AsyncSession = Depends(get_db),
):
    try:
        await service.delete_application(db, application_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(message="Draft application deleted")


# ============================================
# Transitions
# ============================================


@router.post("/{application_id}/submit", response_model=ApiResponse[ApplicationResponse])
async def submit_application(
    application_id: UUID,
    body: NotesRequest | None = None,
    ctx: AuthContext = Depends(_applicants),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.submit(db, application_id, ctx, body.notes if body else None)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Application submitted")


@router.post(
    "/{application_id}/documents-reviewed", response_model=ApiResponse[ApplicationResponse]
)
async def mark_documents_reviewed(
    application_id: UUID,
    ctx: AuthContext = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.mark_documents_reviewed(db, application_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Documents marked as reviewed")


@router.post("/{application_id}/review", response_model=ApiResponse[ApplicationResponse])
async def review_application(
    application_id: UUID,
    body: NotesRequest | None = None,
    ctx: AuthContext = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.review(db, application_id, ctx, body.notes if body else None)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Application is under review")


@router.post("/{application_id}/flag", response_model=ApiResponse[ApplicationResponse])
async def flag_for_compliance(
    application_id: UUID,
    body: ReasonRequest,
    ctx: AuthContext = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.flag_for_compliance(db, application_id, body.reason, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Application flagged for compliance")


@router.post(
    "/{application_id}/resolve-compliance", response_model=ApiResponse[ApplicationResponse]
)
async def resolve_compliance(
    application_id: UUID,
    body: NotesRequest | None = None,
    ctx: AuthContext = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.resolve_compliance(
            db, application_id, ctx, body.notes if body else None
        )
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Compliance concern resolved")


@router.post("/{application_id}/approve", response_model=ApiResponse[ApplicationResponse])
async def approve_application(
    application_id: UUID,
    body: ApproveRequest,
    ctx: AuthContext = Depends(require_roles(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.approve(
            db,
            application_id,
            body.approved_amount,
            ctx,
            notes=body.notes,
            requires_verification=body.requires_verification,
        )
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Application approved")


@router.post("/{application_id}/reject", response_model=ApiResponse[ApplicationResponse])
async def reject_application(
    application_id: UUID,
    body: ReasonRequest,
    ctx: AuthContext = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.reject(db, application_id, body.reason, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Application rejected")


@router.post("/{application_id}/process", response_model=ApiResponse[ApplicationResponse])
async def process_application(
    application_id: UUID,
    body: NotesRequest | None = None,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.process(
            db, application_id, ctx, notes=body.notes if body else None
        )
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Grant processing started")


@router.post("/{application_id}/release", response_model=ApiResponse[ApplicationResponse])
async def release_application(
    application_id: UUID,
    body: NotesRequest | None = None,
    ctx: AuthContext = Depends(_finance),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.release(
            db, application_id, ctx, notes=body.notes if body else None
        )
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Grant released")


@router.post("/{application_id}/cancel", response_model=ApiResponse[ApplicationResponse])
async def cancel_application(
    application_id: UUID,
    body: ReasonRequest,
    ctx: AuthContext = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        application = await service.cancel(db, application_id, body.reason, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(_to_response(application), "Application cancelled")

"""
Interviews Router

Endpoints:
- GET /interviews/slots - Available slots for a date and interview type
- GET /interviews/calendar - Month view grouped by date
- GET /interviews - List interviews
- POST /interviews - Book an interview
- GET /interviews/{id}
- POST /interviews/{id}/reschedule
- POST /interviews/{id}/complete
- POST /interviews/{id}/cancel
- POST /interviews/{id}/no-show
- GET /interviews/evaluations - List evaluations
- POST /interviews/evaluations - Submit an evaluation
- GET /interviews/evaluations/{id}
- PATCH /interviews/evaluations/{id}
"""

import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from scholarship_aid.core.auth import AuthContext, Role, get_auth_context, require_roles
from scholarship_aid.core.database import get_db
from scholarship_aid.core.exceptions import ServiceError
from scholarship_aid.core.responses import ApiResponse, ok, raise_http_error
from scholarship_aid.modules.interviews import service
from scholarship_aid.modules.interviews.models import InterviewStatus, InterviewType
from scholarship_aid.modules.interviews.schemas import (
    AvailableSlotsResponse,
    CalendarResponse,
    CancelRequest,
    CompleteRequest,
    EvaluationCreate,
    EvaluationResponse,
    EvaluationUpdate,
    InterviewCreate,
    InterviewResponse,
    NoShowRequest,
    RescheduleRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_schedulers = require_roles(Role.ADMIN, Role.REVIEWER)
_interviewers = require_roles(Role.ADMIN, Role.REVIEWER, Role.INTERVIEWER)


# ============================================
# Slots & calendar
# ============================================


@router.get("/slots", response_model=ApiResponse[AvailableSlotsResponse])
async def get_available_slots(
    interview_date: date = Query(..., alias="date"),
    interview_type: InterviewType = Query(..., alias="type"),
    interviewer_id: UUID | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    slots = await service.get_available_slots(db, interview_date, interview_type, interviewer_id)
    return ok(
        AvailableSlotsResponse(
            interview_date=interview_date,
            interview_type=interview_type,
            interviewer_id=interviewer_id,
            available_slots=slots,
        )
    )


@router.get("/calendar", response_model=ApiResponse[CalendarResponse])
async def get_calendar(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    interviewer_id: UUID | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        days = await service.get_calendar(db, year, month, ctx, interviewer_id)
    except ServiceError as e:
        raise_http_error(e)

    return ok(
        CalendarResponse(
            year=year,
            month=month,
            days={
                day: [InterviewResponse.model_validate(s) for s in schedules]
                for day, schedules in days.items()
            },
            total=sum(len(schedules) for schedules in days.values()),
        )
    )


# ============================================
# Evaluations
# ============================================


@router.get("/evaluations", response_model=ApiResponse[list[EvaluationResponse]])
async def list_evaluations(
    application_id: UUID | None = Query(None),
    student_id: UUID | None = Query(None),
    interviewer_id: UUID | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    evaluations = await service.list_evaluations(
        db,
        ctx,
        application_id=application_id,
        student_id=student_id,
        interviewer_id=interviewer_id,
        skip=skip,
        limit=limit,
    )
    return ok([EvaluationResponse.model_validate(e) for e in evaluations])


@router.post(
    "/evaluations",
    response_model=ApiResponse[EvaluationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def submit_evaluation(
    data: EvaluationCreate,
    ctx: AuthContext = Depends(_interviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        evaluation = await service.submit_evaluation(db, data, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(EvaluationResponse.model_validate(evaluation), "Evaluation recorded")


@router.get("/evaluations/{evaluation_id}", response_model=ApiResponse[EvaluationResponse])
async def get_evaluation(
    evaluation_id: UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        evaluation = await service.get_evaluation(db, evaluation_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(EvaluationResponse.model_validate(evaluation))


@router.patch("/evaluations/{evaluation_id}", response_model=ApiResponse[EvaluationResponse])
async def update_evaluation(
    evaluation_id: UUID,
    data: EvaluationUpdate,
    ctx: AuthContext = Depends(_interviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        evaluation = await service.update_evaluation(db, evaluation_id, data, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(EvaluationResponse.model_validate(evaluation), "Evaluation updated")


# ============================================
# Schedules
# ============================================


@router.get("", response_model=ApiResponse[list[InterviewResponse]])
async def list_interviews(
    status_filter: InterviewStatus | None = Query(None, alias="status"),
    interview_type: InterviewType | None = Query(None, alias="type"),
    interviewer_id: UUID | None = Query(None),
    application_id: UUID | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    schedules = await service.list_interviews(
        db,
        ctx,
        status=status_filter,
        interview_type=interview_type,
        interviewer_id=interviewer_id,
        application_id=application_id,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return ok([InterviewResponse.model_validate(s) for s in schedules])


@router.post(
    "",
    response_model=ApiResponse[InterviewResponse],
    status_code=status.HTTP_201_CREATED,
)
async def schedule_interview(
    data: InterviewCreate,
    ctx: AuthContext = Depends(_schedulers),
    db: AsyncSession = Depends(get_db),
):
    try:
        schedule = await service.schedule_interview(db, data, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(InterviewResponse.model_validate(schedule), "Interview scheduled")


@router.get("/{schedule_id}", response_model=ApiResponse[InterviewResponse])
async def get_interview(
    schedule_id: UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        schedule = await service.get_interview(db, schedule_id, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(InterviewResponse.model_validate(schedule))


@router.post("/{schedule_id}/reschedule", response_model=ApiResponse[InterviewResponse])
async def reschedule_interview(
    schedule_id: UUID,
    body: RescheduleRequest,
    ctx: AuthContext = Depends(_schedulers),
    db: AsyncSession = Depends(get_db),
):
    try:
        schedule = await service.reschedule_interview(
            db, schedule_id, body.interview_date, body.interview_time, body.reason, ctx
        )
    except ServiceError as e:
        raise_http_error(e)
    return ok(InterviewResponse.model_validate(schedule), "Interview rescheduled")


@router.post("/{schedule_id}/complete", response_model=ApiResponse[InterviewResponse])
async def complete_interview(
    schedule_id: UUID,
    body: CompleteRequest,
    ctx: AuthContext = Depends(_interviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        schedule = await service.complete_interview(db, schedule_id, body.result, ctx, body.notes)
    except ServiceError as e:
        raise_http_error(e)
    return ok(InterviewResponse.model_validate(schedule), "Interview completed")


@router.post("/{schedule_id}/cancel", response_model=ApiResponse[InterviewResponse])
async def cancel_interview(
    schedule_id: UUID,
    body: CancelRequest,
    ctx: AuthContext = Depends(_schedulers),
    db: AsyncSession = Depends(get_db),
):
    try:
        schedule = await service.cancel_interview(db, schedule_id, body.reason, ctx)
    except ServiceError as e:
        raise_http_error(e)
    return ok(InterviewResponse.model_validate(schedule), "Interview cancelled")


@router.post("/{schedule_id}/no-show", response_model=ApiResponse[InterviewResponse])
async def mark_no_show(
    schedule_id: UUID,
    body: NoShowRequest | None = None,
    ctx: AuthContext = Depends(_interviewers),
    db: AsyncSession = Depends(get_db),
):
    try:
        schedule = await service.mark_no_show(db, schedule_id, ctx, body.notes if body else None)
    except ServiceError as e:
        raise_http_error(e)
    return ok(InterviewResponse.model_validate(schedule), "Interview marked as no-show")

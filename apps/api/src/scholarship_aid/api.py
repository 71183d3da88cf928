from fastapi import APIRouter

from scholarship_aid.modules.applications import router as applications_router
from scholarship_aid.modules.distribution_logs import router as distribution_logs_router
from scholarship_aid.modules.enrollment_verification import router as enrollment_router
from scholarship_aid.modules.interviews import router as interviews_router
from scholarship_aid.modules.payments import router as payments_router

api_router = APIRouter()

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(interviews_router, prefix="/interviews", tags=["Interviews"])

api_router.include_router(
    enrollment_router,
    prefix="/enrollment-verifications",
    tags=["Enrollment Verification"],
)

api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])

api_router.include_router(
    distribution_logs_router, prefix="/distribution-logs", tags=["Distribution Logs"]
)

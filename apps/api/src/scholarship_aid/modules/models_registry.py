"""
Model registry.

Importing this module registers every ORM model on Base.metadata, for
create_all in development and for migration autogeneration.
"""

from scholarship_aid.modules.applications.models import Application, ApplicationStatusHistory
from scholarship_aid.modules.distribution_logs.models import DistributionLog
from scholarship_aid.modules.enrollment_verification.models import EnrollmentVerification
from scholarship_aid.modules.interviews.models import InterviewEvaluation, InterviewSchedule
from scholarship_aid.modules.payments.models import Payment, PaymentProcessingClaim
from scholarship_aid.modules.schools.models import School, SchoolRepresentative

__all__ = [
    "Application",
    "ApplicationStatusHistory",
    "DistributionLog",
    "EnrollmentVerification",
    "InterviewEvaluation",
    "InterviewSchedule",
    "Payment",
    "PaymentProcessingClaim",
    "School",
    "SchoolRepresentative",
]

"""
Aid Applications Module

Owns an application's status and its guarded transitions:
draft -> submitted -> under_review -> interview_scheduled -> interview_completed
-> approved_pending_verification -> approved -> grants_processing -> grants_disbursed,
with compliance flags, rejection, payment failure and cancellation branches.

Every transition appends an immutable status-history row in the same transaction.
"""

from .router import router

__all__ = ["router"]

"""
Application State Machine

Declares every guarded operation on an aid application as a Transition
(allowed source statuses and possible target statuses). The per-status edge
table VALID_STATUS_TRANSITIONS is derived from it, so the two can never
disagree.

Terminal statuses (grants_disbursed, rejected, cancelled) have no outgoing
edges.
"""

from dataclasses import dataclass

from scholarship_aid.modules.applications.models import ApplicationStatus

S = ApplicationStatus

TERMINAL_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {S.GRANTS_DISBURSED, S.REJECTED, S.CANCELLED}
)

NON_TERMINAL_STATUSES: frozenset[ApplicationStatus] = frozenset(
    s for s in ApplicationStatus if s not in TERMINAL_STATUSES
)

# States in which a compliance concern may be raised
REVIEWABLE_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {
        S.SUBMITTED,
        S.UNDER_REVIEW,
        S.INTERVIEW_SCHEDULED,
        S.INTERVIEW_COMPLETED,
        S.APPROVED_PENDING_VERIFICATION,
    }
)

# Approved but not yet paid out
PAYABLE_PENDING_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {S.APPROVED, S.PAYMENT_FAILED}
)


class Operation:
    """Names of the guarded operations."""

    SUBMIT = "submit"
    REVIEW = "review"
    SCHEDULE_INTERVIEW = "schedule_interview"
    COMPLETE_INTERVIEW = "complete_interview"
    FLAG_FOR_COMPLIANCE = "flag_for_compliance"
    RESOLVE_COMPLIANCE = "resolve_compliance"
    APPROVE = "approve"
    CONFIRM_ENROLLMENT = "confirm_enrollment"
    REJECT = "reject"
    PROCESS = "process"
    RELEASE = "release"
    MARK_PAYMENT_FAILED = "mark_payment_failed"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Transition:
    operation: str
    sources: frozenset[ApplicationStatus]
    targets: frozenset[ApplicationStatus]

    def allows(self, current: ApplicationStatus, target: ApplicationStatus) -> bool:
        return current in self.sources and target in self.targets


def _t(operation: str, sources, targets) -> Transition:
    return Transition(operation, frozenset(sources), frozenset(targets))


TRANSITIONS: dict[str, Transition] = {
    t.operation: t
    for t in (
        _t(Operation.SUBMIT, {S.DRAFT}, {S.SUBMITTED}),
        _t(Operation.REVIEW, {S.SUBMITTED}, {S.UNDER_REVIEW}),
        _t(Operation.SCHEDULE_INTERVIEW, {S.UNDER_REVIEW}, {S.INTERVIEW_SCHEDULED}),
        _t(
            Operation.COMPLETE_INTERVIEW,
            {S.INTERVIEW_SCHEDULED},
            {S.INTERVIEW_COMPLETED, S.REJECTED},
        ),
        _t(Operation.FLAG_FOR_COMPLIANCE, REVIEWABLE_STATUSES, {S.FLAGGED_FOR_COMPLIANCE}),
        _t(Operation.RESOLVE_COMPLIANCE, {S.FLAGGED_FOR_COMPLIANCE}, {S.UNDER_REVIEW}),
        _t(
            Operation.APPROVE,
            {S.INTERVIEW_COMPLETED},
            {S.APPROVED_PENDING_VERIFICATION, S.APPROVED},
        ),
        _t(Operation.CONFIRM_ENROLLMENT, {S.APPROVED_PENDING_VERIFICATION}, {S.APPROVED}),
        _t(Operation.REJECT, NON_TERMINAL_STATUSES - {S.DRAFT}, {S.REJECTED}),
        _t(Operation.PROCESS, PAYABLE_PENDING_STATUSES, {S.GRANTS_PROCESSING}),
        _t(Operation.RELEASE, {S.GRANTS_PROCESSING}, {S.GRANTS_DISBURSED}),
        _t(
            Operation.MARK_PAYMENT_FAILED,
            {S.APPROVED, S.GRANTS_PROCESSING},
            {S.PAYMENT_FAILED},
        ),
        _t(Operation.CANCEL, NON_TERMINAL_STATUSES - {S.GRANTS_PROCESSING}, {S.CANCELLED}),
    )
}


def _build_edge_table() -> dict[ApplicationStatus, set[ApplicationStatus]]:
    edges: dict[ApplicationStatus, set[ApplicationStatus]] = {s: set() for s in ApplicationStatus}
    for transition in TRANSITIONS.values():
        for source in transition.sources:
            edges[source] |= transition.targets
    return edges


# Valid status transitions - prevents invalid state changes
VALID_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = _build_edge_table()


class InvalidStatusTransitionError(ValueError):
    """Raised when an operation is attempted from a status that does not permit it."""

    def __init__(
        self,
        operation: str,
        current_status: ApplicationStatus,
        new_status: ApplicationStatus | None = None,
    ):
        self.operation = operation
        self.current_status = current_status
        self.new_status = new_status
        transition = TRANSITIONS.get(operation)
        self.allowed_from = sorted(s.value for s in transition.sources) if transition else []
        super().__init__(
            f"Cannot {operation.replace('_', ' ')} an application in status "
            f"{current_status.value}. Allowed from: {self.allowed_from}"
        )


def check_transition(
    operation: str,
    current_status: ApplicationStatus,
    new_status: ApplicationStatus,
) -> None:
    """
    Guard an operation.

    Raises:
        InvalidStatusTransitionError: If the operation is unknown, not allowed
            from current_status, or cannot lead to new_status
    """
    transition = TRANSITIONS.get(operation)
    if transition is None or not transition.allows(current_status, new_status):
        raise InvalidStatusTransitionError(operation, current_status, new_status)


def can_transition(operation: str, current_status: ApplicationStatus) -> bool:
    transition = TRANSITIONS.get(operation)
    return transition is not None and current_status in transition.sources


def can_proceed_to_interview(application) -> bool:
    """Documents must be reviewed before an interview can be booked."""
    return application.status == S.UNDER_REVIEW and bool(application.documents_reviewed)


def can_be_processed(application) -> bool:
    return can_transition(Operation.PROCESS, application.status)


def can_be_released(application) -> bool:
    return can_transition(Operation.RELEASE, application.status)


def is_terminal(status: ApplicationStatus) -> bool:
    return status in TERMINAL_STATUSES

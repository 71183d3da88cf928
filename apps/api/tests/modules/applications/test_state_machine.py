"""
Unit tests for the application state machine.

These tests focus on the transition table: every (status, operation) pair not
declared in TRANSITIONS is refused.
"""

import pytest

from scholarship_aid.modules.applications.models import ApplicationStatus
from scholarship_aid.modules.applications.state_machine import (
    PAYABLE_PENDING_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    VALID_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    Operation,
    can_be_processed,
    can_be_released,
    can_proceed_to_interview,
    can_transition,
    check_transition,
    is_terminal,
)

S = ApplicationStatus

EXPECTED_EDGES = {
    Operation.SUBMIT: ({S.DRAFT}, {S.SUBMITTED}),
    Operation.REVIEW: ({S.SUBMITTED}, {S.UNDER_REVIEW}),
    Operation.SCHEDULE_INTERVIEW: ({S.UNDER_REVIEW}, {S.INTERVIEW_SCHEDULED}),
    Operation.COMPLETE_INTERVIEW: ({S.INTERVIEW_SCHEDULED}, {S.INTERVIEW_COMPLETED, S.REJECTED}),
    Operation.CONFIRM_ENROLLMENT: ({S.APPROVED_PENDING_VERIFICATION}, {S.APPROVED}),
    Operation.PROCESS: ({S.APPROVED, S.PAYMENT_FAILED}, {S.GRANTS_PROCESSING}),
    Operation.RELEASE: ({S.GRANTS_PROCESSING}, {S.GRANTS_DISBURSED}),
}


class TestTransitionGrid:
    """Every pair outside the declared edges is refused."""

    @pytest.mark.parametrize("operation", list(TRANSITIONS))
    def test_undeclared_sources_are_refused(self, operation):
        transition = TRANSITIONS[operation]
        target = next(iter(transition.targets))

        for status in ApplicationStatus:
            if status in transition.sources:
                check_transition(operation, status, target)
            else:
                with pytest.raises(InvalidStatusTransitionError):
                    check_transition(operation, status, target)

    @pytest.mark.parametrize("operation", list(TRANSITIONS))
    def test_undeclared_targets_are_refused(self, operation):
        transition = TRANSITIONS[operation]
        source = next(iter(transition.sources))

        for status in ApplicationStatus:
            if status not in transition.targets:
                with pytest.raises(InvalidStatusTransitionError):
                    check_transition(operation, source, status)

    @pytest.mark.parametrize("operation,edges", list(EXPECTED_EDGES.items()))
    def test_linear_edges(self, operation, edges):
        sources, targets = edges
        assert TRANSITIONS[operation].sources == frozenset(sources)
        assert TRANSITIONS[operation].targets == frozenset(targets)

    def test_unknown_operation_is_refused(self):
        with pytest.raises(InvalidStatusTransitionError):
            check_transition("teleport", S.DRAFT, S.APPROVED)


class TestStatusTransitions:
    """Tests for the derived edge table."""

    def test_terminal_states_have_no_transitions(self):
        for status in TERMINAL_STATUSES:
            assert VALID_STATUS_TRANSITIONS[status] == set()
            assert is_terminal(status)

    def test_all_statuses_are_in_transition_map(self):
        for status in ApplicationStatus:
            assert status in VALID_STATUS_TRANSITIONS

    def test_draft_can_only_be_submitted_or_cancelled(self):
        assert VALID_STATUS_TRANSITIONS[S.DRAFT] == {S.SUBMITTED, S.CANCELLED}

    def test_reject_allowed_from_every_non_terminal_state_but_draft(self):
        for status in ApplicationStatus:
            expected = status not in TERMINAL_STATUSES and status != S.DRAFT
            assert can_transition(Operation.REJECT, status) is expected

    def test_grants_processing_cannot_be_cancelled(self):
        assert not can_transition(Operation.CANCEL, S.GRANTS_PROCESSING)

    def test_payable_pending_statuses_can_be_processed(self):
        for status in PAYABLE_PENDING_STATUSES:
            assert can_transition(Operation.PROCESS, status)
        assert not can_transition(Operation.PROCESS, S.APPROVED_PENDING_VERIFICATION)

    def test_compliance_flag_returns_to_review(self):
        assert VALID_STATUS_TRANSITIONS[S.FLAGGED_FOR_COMPLIANCE] >= {S.UNDER_REVIEW}


class TestInvalidStatusTransitionError:
    def test_error_message_contains_status_and_allowed_sources(self):
        error = InvalidStatusTransitionError(Operation.RELEASE, S.APPROVED, S.GRANTS_DISBURSED)
        assert "approved" in str(error)
        assert error.allowed_from == ["grants_processing"]


class TestCanProceedToInterview:
    def test_requires_reviewed_documents(self, make_application):
        assert can_proceed_to_interview(make_application(S.UNDER_REVIEW, documents_reviewed=True))
        assert not can_proceed_to_interview(
            make_application(S.UNDER_REVIEW, documents_reviewed=False)
        )

    def test_requires_under_review(self, make_application):
        assert not can_proceed_to_interview(make_application(S.SUBMITTED))


class TestPaymentPredicates:
    def test_approved_and_failed_payments_can_be_processed(self, make_application):
        assert can_be_processed(make_application(S.APPROVED))
        assert can_be_processed(make_application(S.PAYMENT_FAILED))
        assert not can_be_processed(make_application(S.GRANTS_PROCESSING))
        assert not can_be_processed(make_application(S.APPROVED_PENDING_VERIFICATION))

    def test_only_grants_processing_can_be_released(self, make_application):
        assert can_be_released(make_application(S.GRANTS_PROCESSING))
        assert not can_be_released(make_application(S.APPROVED))
        assert not can_be_released(make_application(S.GRANTS_DISBURSED))

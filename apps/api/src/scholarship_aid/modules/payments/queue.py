"""
Payable Queue Assembly

Builds the single de-duplicated work queue shown to finance staff: every real
payment plus one pending entry for each approved application that is not yet
covered by a payment.

An application counts as covered when:
1. a live (non-cancelled) payment references it explicitly, or
2. a live payment without an application reference carries the same student
   name, student number and an amount within the match epsilon (legacy rows
   created before the reference was preserved).

A final pass drops any pending entry whose identity matches a completed
payment, in case one completed between reading the snapshot and building it.

Queue entries are a tagged union of RealPayment and PendingApplication so the
two cases are told apart by type, never by inspecting ids.

Everything here is pure; the service loads the snapshot and converts rows.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from scholarship_aid.modules.payments.models import PaymentStatus

DEFAULT_MATCH_EPSILON = Decimal("0.01")

PAYMENT = "payment"
APPLICATION = "application"


@dataclass(frozen=True)
class RealPayment:
    """A stored payment row."""

    payment_id: UUID
    application_id: UUID | None
    student_name: str
    student_number: str
    school_id: UUID | None
    school_name: str | None
    aid_type: str | None
    amount: Decimal
    currency: str
    payment_method: str
    payment_status: PaymentStatus
    reference_number: str | None = None
    transaction_fee: Decimal = Decimal("0.00")
    scheduled_date: date | None = None
    processed_date: datetime | None = None
    created_at: datetime | None = None

    kind: Literal["payment"] = PAYMENT

    @property
    def ref(self) -> "QueueItemRef":
        return QueueItemRef(PAYMENT, self.payment_id)

    @classmethod
    def from_model(cls, payment) -> "RealPayment":
        return cls(
            payment_id=payment.id,
            application_id=payment.application_id,
            student_name=payment.student_name,
            student_number=payment.student_number,
            school_id=payment.school_id,
            school_name=payment.school_name,
            aid_type=payment.aid_type,
            amount=Decimal(payment.amount),
            currency=payment.currency,
            payment_method=payment.payment_method,
            payment_status=payment.payment_status,
            reference_number=payment.reference_number,
            transaction_fee=Decimal(payment.transaction_fee or 0),
            scheduled_date=payment.scheduled_date,
            processed_date=payment.processed_date,
            created_at=payment.created_at,
        )


@dataclass(frozen=True)
class PendingApplication:
    """
    An approved application with no payment yet.

    Read-only; it has to be materialized with createFromApplications before
    anything can be paid.
    """

    application_id: UUID
    student_name: str
    student_number: str
    school_id: UUID | None
    school_name: str | None
    aid_type: str | None
    amount: Decimal
    currency: str
    payment_method: str
    approved_at: datetime | None = None

    kind: Literal["application"] = APPLICATION
    payment_status: PaymentStatus = PaymentStatus.PENDING

    @property
    def ref(self) -> "QueueItemRef":
        return QueueItemRef(APPLICATION, self.application_id)

    @property
    def display_reference(self) -> str:
        return f"APP-{str(self.application_id)[-8:].upper()}"

    @classmethod
    def from_model(cls, application, default_method: str) -> "PendingApplication":
        return cls(
            application_id=application.id,
            student_name=application.student_name,
            student_number=application.student_number,
            school_id=application.school_id,
            school_name=application.school_name,
            aid_type=application.category,
            amount=Decimal(application.payable_amount),
            currency=application.currency,
            payment_method=application.payment_method or default_method,
            approved_at=application.approved_at,
        )


QueueItem = RealPayment | PendingApplication


@dataclass(frozen=True)
class QueueItemRef:
    """Typed reference to a queue entry, as sent by clients."""

    kind: Literal["payment", "application"]
    id: UUID

    @property
    def is_synthetic(self) -> bool:
        return self.kind == APPLICATION


def identity_matches(
    name_a: str,
    number_a: str,
    amount_a: Decimal,
    name_b: str,
    number_b: str,
    amount_b: Decimal,
    epsilon: Decimal = DEFAULT_MATCH_EPSILON,
) -> bool:
    """Same student name and number, amounts differing by less than epsilon."""
    return (
        name_a == name_b
        and number_a == number_b
        and abs(Decimal(amount_a) - Decimal(amount_b)) < epsilon
    )


def _matches_any(item: PendingApplication, payments: Iterable[RealPayment], epsilon: Decimal) -> bool:
    return any(
        identity_matches(
            item.student_name,
            item.student_number,
            item.amount,
            p.student_name,
            p.student_number,
            p.amount,
            epsilon,
        )
        for p in payments
    )


def build_payable_queue(
    payments: Sequence[RealPayment],
    candidates: Sequence[PendingApplication],
    epsilon: Decimal = DEFAULT_MATCH_EPSILON,
) -> list[QueueItem]:
    """
    Merge real payments with approved applications not yet covered.

    Args:
        payments: Every stored payment, any status
        candidates: Approved applications
        epsilon: Amount tolerance for identity matching

    Returns:
        Real payments first (input order), then pending entries
    """
    live = [p for p in payments if p.payment_status != PaymentStatus.CANCELLED]

    linked = {p.application_id for p in live if p.application_id is not None}
    unlinked = [p for p in live if p.application_id is None]

    payable = [
        c
        for c in candidates
        if c.application_id not in linked and not _matches_any(c, unlinked, epsilon)
    ]

    completed = [p for p in payments if p.payment_status == PaymentStatus.COMPLETED]
    payable = [c for c in payable if not _matches_any(c, completed, epsilon)]

    return [*payments, *payable]


def compute_queue_statistics(queue: Sequence[QueueItem]) -> dict:
    """Totals shown above the queue."""
    by_status = {s.value: 0 for s in PaymentStatus}
    total_amount = Decimal("0.00")
    pending_amount = Decimal("0.00")
    completed_amount = Decimal("0.00")
    total_fees = Decimal("0.00")
    pending_applications = 0

    for item in queue:
        by_status[item.payment_status.value] += 1
        if item.payment_status == PaymentStatus.CANCELLED:
            continue

        total_amount += item.amount
        if item.payment_status == PaymentStatus.COMPLETED:
            completed_amount += item.amount
        elif item.payment_status in (PaymentStatus.PENDING, PaymentStatus.SCHEDULED):
            pending_amount += item.amount

        if isinstance(item, PendingApplication):
            pending_applications += 1
        else:
            total_fees += item.transaction_fee

    return {
        "total": len(queue),
        "by_status": by_status,
        "total_amount": total_amount,
        "pending_amount": pending_amount,
        "completed_amount": completed_amount,
        "total_fees": total_fees,
        "pending_applications": pending_applications,
    }

"""
Payment domain types (``grant_kernel.domain.payment``).

Responsibility
--------------
Pure value objects for disbursement obligations: the payment lifecycle
table and the read-side amount masking policy.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``pending -> eligible -> paid`` is linear; ``cancelled`` is reachable
  from ``pending`` or ``eligible``.  ``paid`` and ``cancelled`` are
  terminal and no operation reverses them.
* Amounts stay hidden from the scholar while the payment is pending and
  its report is not approved.  This is a presentation rule only; stored
  amounts never change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from grant_kernel.domain.installment import InstallmentKey
from grant_kernel.domain.report import ReportStatus


class PaymentStatus(str, Enum):
    """Lifecycle states of a payment obligation."""

    PENDING = "pending"
    ELIGIBLE = "eligible"
    PAID = "paid"
    CANCELLED = "cancelled"


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.ELIGIBLE,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.ELIGIBLE: frozenset({
        PaymentStatus.PAID,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

TERMINAL_PAYMENT_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.CANCELLED,
})

# Statuses that require an approved report for the same installment.
REPORT_BACKED_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.ELIGIBLE,
    PaymentStatus.PAID,
})


def is_amount_locked(
    payment_status: PaymentStatus,
    report_status: ReportStatus | None,
) -> bool:
    """True while the scholar must not see the installment amount."""
    return (
        payment_status == PaymentStatus.PENDING
        and report_status != ReportStatus.APPROVED
    )


@dataclass(frozen=True)
class PaymentRecord:
    """Immutable view of one persisted payment."""

    id: UUID
    user_id: UUID
    enrollment_id: UUID
    installment_number: int
    reference_month: str
    amount: Decimal
    status: PaymentStatus
    report_id: UUID | None = None
    paid_at: datetime | None = None
    receipt_reference: str | None = None

    @property
    def key(self) -> InstallmentKey:
        return InstallmentKey(self.user_id, self.reference_month)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES

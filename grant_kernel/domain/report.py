"""
Report domain types (``grant_kernel.domain.report``).

Responsibility
--------------
Pure value objects for monthly report versions: the per-row lifecycle,
review decisions, and the immutable record handed across layers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Each report row transitions exactly once: ``under_review`` to
  ``approved`` or ``rejected``.  Both outcomes are terminal for the row;
  the installment as a whole cycles by inserting a new version.
* A rejected row always carries feedback and a resubmission deadline
  strictly after its review instant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from grant_kernel.domain.installment import InstallmentKey


class ReportStatus(str, Enum):
    """Lifecycle states of one report version."""

    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


REPORT_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.UNDER_REVIEW: frozenset({
        ReportStatus.APPROVED,
        ReportStatus.REJECTED,
    }),
    ReportStatus.APPROVED: frozenset(),
    ReportStatus.REJECTED: frozenset(),
}

TERMINAL_REPORT_STATUSES: frozenset[ReportStatus] = frozenset({
    ReportStatus.APPROVED,
    ReportStatus.REJECTED,
})


class ReviewDecision(str, Enum):
    """Decisions a reviewer can make about a report under review."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def target_status(self) -> ReportStatus:
        match self:
            case ReviewDecision.APPROVE:
                return ReportStatus.APPROVED
            case ReviewDecision.REJECT:
                return ReportStatus.REJECTED


@dataclass(frozen=True)
class ReportRecord:
    """Immutable view of one persisted report version."""

    id: UUID
    user_id: UUID
    reference_month: str
    installment_number: int
    version: int
    file_reference: str
    observations: str | None
    status: ReportStatus
    submitted_at: datetime
    feedback: str | None = None
    resubmission_deadline: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None

    @property
    def key(self) -> InstallmentKey:
        return InstallmentKey(self.user_id, self.reference_month)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REPORT_STATUSES

"""
Enrollment domain types (``grant_kernel.domain.enrollment``).

An enrollment is a scholar's participation in one subproject at a fixed
monthly grant value.  Its installment schedule is generated once, at
creation; afterwards only the status moves.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ENROLLMENT_TRANSITIONS: dict[EnrollmentStatus, frozenset[EnrollmentStatus]] = {
    EnrollmentStatus.ACTIVE: frozenset({
        EnrollmentStatus.SUSPENDED,
        EnrollmentStatus.COMPLETED,
        EnrollmentStatus.CANCELLED,
    }),
    EnrollmentStatus.SUSPENDED: frozenset({
        EnrollmentStatus.ACTIVE,
        EnrollmentStatus.CANCELLED,
    }),
    EnrollmentStatus.COMPLETED: frozenset(),
    EnrollmentStatus.CANCELLED: frozenset(),
}


class GrantModality(str, Enum):
    """Grant categories a scholar can be enrolled under."""

    ICT = "ict"
    EXT = "ext"
    ENS = "ens"
    INO = "ino"
    DCT_A = "dct_a"
    DCT_B = "dct_b"
    DCT_C = "dct_c"
    POSTDOC = "postdoc"
    SENIOR = "senior"
    PROD = "prod"
    VISITOR = "visitor"


@dataclass(frozen=True)
class EnrollmentRecord:
    id: UUID
    user_id: UUID
    subproject_id: UUID
    modality: GrantModality
    grant_value: Decimal
    start_date: date
    end_date: date
    total_installments: int
    status: EnrollmentStatus
    organization_id: UUID | None = None

    @property
    def total_forecast(self) -> Decimal:
        return self.grant_value * self.total_installments

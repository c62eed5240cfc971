"""
Module: grant_kernel.models.enrollment
Responsibility: ORM persistence for scholar enrollments.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - One active enrollment per scholar (partial unique index).
    - total_installments >= 1 and grant_value > 0 (check constraints).
    - Schedule columns (value, dates, installment count) are frozen after
      insert; only status may change (ORM listener).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, Integer, String, event, inspect, text
from sqlalchemy.orm import Mapped, mapped_column

from grant_kernel.db.base import TrackedBase, UUIDString
from grant_kernel.domain.enrollment import EnrollmentRecord, EnrollmentStatus, GrantModality
from grant_kernel.exceptions import ImmutabilityViolationError

_FROZEN_COLUMNS = (
    "user_id",
    "subproject_id",
    "grant_value",
    "start_date",
    "end_date",
    "total_installments",
)


class Enrollment(TrackedBase):
    """A scholar's participation in one subproject."""

    __tablename__ = "enrollments"

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'suspended', 'completed', 'cancelled')",
            name="ck_enrollments_valid_status",
        ),
        CheckConstraint("total_installments >= 1", name="ck_enrollments_installments"),
        CheckConstraint("grant_value > 0", name="ck_enrollments_grant_value"),
        CheckConstraint("end_date > start_date", name="ck_enrollments_date_range"),
        Index(
            "ix_enrollments_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_enrollments_user_status", "user_id", "status"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    subproject_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    organization_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    modality: Mapped[str] = mapped_column(String(20), nullable=False, default="ict")
    grant_value: Mapped[Decimal] = mapped_column(nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    def __repr__(self) -> str:
        return f"<Enrollment {self.id} user={self.user_id} status={self.status}>"

    def to_dto(self) -> EnrollmentRecord:
        return EnrollmentRecord(
            id=self.id,
            user_id=self.user_id,
            subproject_id=self.subproject_id,
            modality=GrantModality(self.modality),
            grant_value=self.grant_value,
            start_date=self.start_date,
            end_date=self.end_date,
            total_installments=self.total_installments,
            status=EnrollmentStatus(self.status),
            organization_id=self.organization_id,
        )


@event.listens_for(Enrollment, "before_update")
def _guard_enrollment_schedule(mapper, connection, target: Enrollment) -> None:
    state = inspect(target)
    for column in _FROZEN_COLUMNS:
        if state.attrs[column].history.has_changes():
            raise ImmutabilityViolationError(
                "enrollment", str(target.id), f"{column} is fixed after creation"
            )

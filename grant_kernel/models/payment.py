"""
Module: grant_kernel.models.payment
Responsibility: ORM persistence for installment payment obligations.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - Valid status values (check constraint).
    - A paid row has paid_at (check constraint).
    - An eligible or paid row references a report (check constraint); that
      the reference is the approved report of the same installment is
      enforced by PaymentSettlementService.
    - At most one live (non-cancelled) payment per (user_id, reference_month)
      so an installment key resolves to a single obligation.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from grant_kernel.db.base import TrackedBase, UUIDString
from grant_kernel.domain.payment import PaymentRecord, PaymentStatus


class Payment(TrackedBase):
    """One monthly disbursement obligation of an enrollment."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'eligible', 'paid', 'cancelled')",
            name="ck_payments_valid_status",
        ),
        CheckConstraint(
            "status != 'paid' OR paid_at IS NOT NULL",
            name="ck_payments_paid_has_paid_at",
        ),
        CheckConstraint(
            "status NOT IN ('eligible', 'paid') OR report_id IS NOT NULL",
            name="ck_payments_eligible_has_report",
        ),
        CheckConstraint("amount > 0", name="ck_payments_amount"),
        UniqueConstraint(
            "enrollment_id", "installment_number",
            name="uq_payments_enrollment_installment",
        ),
        Index(
            "ix_payments_live_installment_key",
            "user_id", "reference_month",
            unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
        Index("ix_payments_status", "status"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    enrollment_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("enrollments.id"), nullable=False,
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_month: Mapped[str] = mapped_column(String(7), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    report_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("reports.id"), nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    receipt_reference: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Payment {self.id} {self.user_id}:{self.reference_month} "
            f"status={self.status}>"
        )

    def to_dto(self) -> PaymentRecord:
        return PaymentRecord(
            id=self.id,
            user_id=self.user_id,
            enrollment_id=self.enrollment_id,
            installment_number=self.installment_number,
            reference_month=self.reference_month,
            amount=self.amount,
            status=PaymentStatus(self.status),
            report_id=self.report_id,
            paid_at=self.paid_at,
            receipt_reference=self.receipt_reference,
        )

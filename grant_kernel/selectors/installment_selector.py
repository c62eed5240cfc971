"""
Module: grant_kernel.selectors.installment_selector
Responsibility: Read models over installments -- the pairing of a payment
    with the report versions sharing its (user_id, reference_month).
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Amount masking: ``InstallmentView.visible_amount`` is None while the
      payment is pending and its latest report is not approved.
    - Derived figures (received totals, pending reports) are computed from
      payments and reports on every call; nothing is stored.

Audit relevance:
    ``find_unbacked_payments`` is the reconciliation query for the
    eligibility rule: it must always return an empty list.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, exists, select

from grant_kernel.domain.enrollment import EnrollmentStatus
from grant_kernel.domain.payment import (
    REPORT_BACKED_STATUSES,
    PaymentStatus,
    is_amount_locked,
)
from grant_kernel.domain.report import ReportStatus
from grant_kernel.models.enrollment import Enrollment
from grant_kernel.models.payment import Payment
from grant_kernel.models.report import Report
from grant_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class InstallmentView:
    """One installment as shown to a scholar or manager."""

    payment_id: UUID
    enrollment_id: UUID
    installment_number: int
    reference_month: str
    payment_status: PaymentStatus
    report_status: ReportStatus | None
    latest_report_id: UUID | None
    report_versions: int
    visible_amount: Decimal | None
    paid_at: datetime | None = None
    has_receipt: bool = False

    @property
    def amount_locked(self) -> bool:
        return self.visible_amount is None


@dataclass(frozen=True)
class ScholarSummary:
    """Per-scholar disbursement figures."""

    user_id: UUID
    total_forecast: Decimal
    total_received: Decimal
    paid_installments: int
    total_installments: int
    reports_sent: int
    approved_reports: int
    pending_reports: int


class InstallmentSelector(BaseSelector[Payment]):
    """Installment read models."""

    def _reports_by_month(self, user_id: UUID) -> dict[str, list[Report]]:
        rows = self.session.execute(
            select(Report)
            .where(Report.user_id == user_id)
            .order_by(Report.reference_month, Report.version.desc())
        ).scalars().all()
        grouped: dict[str, list[Report]] = defaultdict(list)
        for row in rows:
            grouped[row.reference_month].append(row)
        return grouped

    def list_installments(
        self,
        user_id: UUID,
        enrollment_id: UUID | None = None,
    ) -> list[InstallmentView]:
        """Installments of a scholar ordered by reference month."""
        stmt = select(Payment).where(Payment.user_id == user_id)
        if enrollment_id is not None:
            stmt = stmt.where(Payment.enrollment_id == enrollment_id)
        payments = self.session.execute(
            stmt.order_by(Payment.reference_month, Payment.installment_number)
        ).scalars().all()
        reports = self._reports_by_month(user_id)

        views = []
        for payment in payments:
            versions = reports.get(payment.reference_month, [])
            latest = versions[0] if versions else None
            payment_status = PaymentStatus(payment.status)
            report_status = ReportStatus(latest.status) if latest else None
            locked = is_amount_locked(payment_status, report_status)
            views.append(
                InstallmentView(
                    payment_id=payment.id,
                    enrollment_id=payment.enrollment_id,
                    installment_number=payment.installment_number,
                    reference_month=payment.reference_month,
                    payment_status=payment_status,
                    report_status=report_status,
                    latest_report_id=latest.id if latest else None,
                    report_versions=len(versions),
                    visible_amount=None if locked else payment.amount,
                    paid_at=payment.paid_at,
                    has_receipt=payment.receipt_reference is not None,
                )
            )
        return views

    def scholar_summary(self, user_id: UUID, current_month: str) -> ScholarSummary:
        """
        Totals for a scholar as of ``current_month``.

        pending_reports = installments already due (reference month not
        after ``current_month``) that have no approved report.
        """
        enrollments = self.session.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id,
                Enrollment.status != EnrollmentStatus.CANCELLED.value,
            )
        ).scalars().all()
        payments = self.session.execute(
            select(Payment).where(
                Payment.user_id == user_id,
                Payment.status != PaymentStatus.CANCELLED.value,
            )
        ).scalars().all()
        reports = self._reports_by_month(user_id)

        paid = [p for p in payments if p.status == PaymentStatus.PAID.value]
        approved_months = {
            month
            for month, versions in reports.items()
            if any(v.status == ReportStatus.APPROVED.value for v in versions)
        }
        due_months = {p.reference_month for p in payments if p.reference_month <= current_month}

        return ScholarSummary(
            user_id=user_id,
            total_forecast=sum(
                (e.grant_value * e.total_installments for e in enrollments), Decimal("0"),
            ),
            total_received=sum((p.amount for p in paid), Decimal("0")),
            paid_installments=len(paid),
            total_installments=len(payments),
            reports_sent=sum(len(v) for v in reports.values()),
            approved_reports=len(approved_months),
            pending_reports=len(due_months - approved_months),
        )

    def reminder_candidates(self, reference_month: str) -> list[UUID]:
        """
        Scholars with an active enrollment and a live installment in
        ``reference_month`` who have not submitted any report for it.
        """
        has_report = exists().where(
            Report.user_id == Payment.user_id,
            Report.reference_month == Payment.reference_month,
        )
        rows = self.session.execute(
            select(Payment.user_id)
            .join(Enrollment, Enrollment.id == Payment.enrollment_id)
            .where(
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Payment.reference_month == reference_month,
                Payment.status != PaymentStatus.CANCELLED.value,
                ~has_report,
            )
            .distinct()
            .order_by(Payment.user_id)
        ).scalars().all()
        return list(rows)

    def find_unbacked_payments(self) -> list[UUID]:
        """Eligible or paid payments without their approved report."""
        backed = exists().where(
            and_(
                Report.id == Payment.report_id,
                Report.user_id == Payment.user_id,
                Report.reference_month == Payment.reference_month,
                Report.status == ReportStatus.APPROVED.value,
            )
        )
        rows = self.session.execute(
            select(Payment.id).where(
                Payment.status.in_([s.value for s in REPORT_BACKED_STATUSES]),
                ~backed,
            )
        ).scalars().all()
        return list(rows)

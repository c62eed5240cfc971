"""
PaymentSettlementService -- payment status transitions and receipts.

Responsibility:
    Moves payments along ``pending -> eligible -> paid`` (or to
    ``cancelled``) and attaches receipts to paid rows.

Architecture position:
    Kernel > Services.  Writes ONLY ``payments`` rows.  Eligibility is
    granted exclusively through ``on_report_approved``, which the
    DisbursementOrchestrator calls inside its review transaction.

Invariants enforced:
    - A payment becomes eligible only for an approved report of the same
      (user_id, reference_month), and report_id references that report.
    - Every transition is a compare-and-swap on the expected status, so
      a repeated or concurrent call observes InvalidStateError instead of
      double-transitioning.
    - paid rows always have paid_at; attaching a receipt never changes
      status or paid_at.
    - paid and cancelled are terminal.

Failure modes:
    - PaymentNotFoundError: no payment for the id / installment key.
    - InvalidStateError: operation not valid from the current status, or
      the report handed to on_report_approved is not approved.

Audit relevance:
    mark_paid, attach_receipt and cancel each write one audit entry.
    on_report_approved writes none; the orchestrator's review entry
    covers it.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, select

from grant_kernel.domain.installment import InstallmentKey
from grant_kernel.domain.payment import PAYMENT_TRANSITIONS, PaymentRecord, PaymentStatus
from grant_kernel.domain.report import ReportRecord, ReportStatus
from grant_kernel.exceptions import InvalidStateError, PaymentNotFoundError, ValidationError
from grant_kernel.logging_config import get_logger
from grant_kernel.models.audit_event import AuditAction, AuditEntityType
from grant_kernel.models.payment import Payment
from grant_kernel.services.base import BaseService, snapshot

logger = get_logger("services.payment_settlement")


@dataclass(frozen=True)
class PaymentTransition:
    """Before/after pair of one payment update."""

    before: PaymentRecord
    after: PaymentRecord


class PaymentSettlementService(BaseService[Payment]):
    """
    Payment lifecycle operations.

    Non-goals:
        - Does NOT check bank-account validation; that is advisory and
          surfaced by the facade.
        - Does NOT store receipt files; ``receipt_reference`` is opaque.
    """

    model = Payment
    not_found = PaymentNotFoundError

    def get_payment(self, payment_id: UUID) -> PaymentRecord:
        return self._load(payment_id).to_dto()

    def find_by_key(self, key: InstallmentKey) -> PaymentRecord:
        """The installment's payment, preferring a live row over cancelled ones."""
        row = self._session.execute(
            select(Payment)
            .where(
                Payment.user_id == key.user_id,
                Payment.reference_month == key.reference_month,
            )
            .order_by(
                case((Payment.status == PaymentStatus.CANCELLED.value, 1), else_=0),
                Payment.installment_number,
            )
            .limit(1)
        ).scalar_one_or_none()
        if row is None:
            raise PaymentNotFoundError(str(key))
        return row.to_dto()

    def _transition(
        self,
        payment_id: UUID,
        operation: str,
        from_statuses: frozenset[PaymentStatus],
        to_status: PaymentStatus,
        values: dict,
    ) -> PaymentTransition:
        before = self._load(payment_id).to_dto()
        if before.status not in from_statuses or to_status not in PAYMENT_TRANSITIONS[before.status]:
            raise InvalidStateError("payment", payment_id, before.status.value, operation)

        values = {"status": to_status.value, **values}
        if not self._compare_and_set(payment_id, before.status.value, values):
            current = self._load(payment_id)
            raise InvalidStateError("payment", payment_id, current.status, operation)

        after = self._load(payment_id).to_dto()
        logger.info(
            "payment_status_changed",
            extra={
                "payment_id": str(payment_id),
                "from_status": before.status.value,
                "to_status": after.status.value,
                "operation": operation,
            },
        )
        return PaymentTransition(before=before, after=after)

    def on_report_approved(self, report: ReportRecord) -> PaymentTransition:
        """
        Make the installment's payment eligible for an approved report.

        Preconditions:
            - ``report.status`` is approved (checked).
        Postconditions:
            - The payment is eligible with ``report_id == report.id``.

        Raises:
            PaymentNotFoundError: no payment for the report's key.
            InvalidStateError: report not approved, or payment not pending.
        """
        if report.status != ReportStatus.APPROVED:
            raise InvalidStateError("report", report.id, report.status.value, "unlock payment for")

        payment = self.find_by_key(report.key)
        return self._transition(
            payment.id,
            "mark eligible",
            frozenset({PaymentStatus.PENDING}),
            PaymentStatus.ELIGIBLE,
            {"report_id": report.id},
        )

    def mark_paid(
        self,
        payment_id: UUID,
        actor_id: UUID,
        receipt_reference: str | None = None,
    ) -> PaymentRecord:
        """``eligible -> paid`` with paid_at = now and an optional receipt."""
        paid_at: datetime = self._clock.now_utc()
        values = {"paid_at": paid_at, "updated_by_id": actor_id}
        if receipt_reference:
            values["receipt_reference"] = receipt_reference

        transition = self._transition(
            payment_id,
            "mark paid",
            frozenset({PaymentStatus.ELIGIBLE}),
            PaymentStatus.PAID,
            values,
        )
        self._auditor.record(
            actor_id=actor_id,
            action=AuditAction.MARK_PAYMENT_PAID,
            entity_type=AuditEntityType.PAYMENT,
            entity_id=payment_id,
            previous_value=snapshot(transition.before),
            new_value=snapshot(transition.after),
            details={
                "amount": transition.after.amount,
                "paid_at": paid_at,
                "reference_month": transition.after.reference_month,
                "receipt_reference": receipt_reference,
            },
        )
        return transition.after

    def attach_receipt(
        self,
        payment_id: UUID,
        actor_id: UUID,
        receipt_reference: str,
    ) -> PaymentRecord:
        """Set or replace the receipt of a paid payment. Status is untouched."""
        if not receipt_reference:
            raise ValidationError("A receipt reference is required", field="receipt_reference")

        before = self._load(payment_id).to_dto()
        values = {"receipt_reference": receipt_reference, "updated_by_id": actor_id}
        if not self._compare_and_set(payment_id, PaymentStatus.PAID.value, values):
            current = self._load(payment_id)
            raise InvalidStateError("payment", payment_id, current.status, "attach receipt to")

        after = self._load(payment_id).to_dto()
        self._auditor.record(
            actor_id=actor_id,
            action=AuditAction.ATTACH_PAYMENT_RECEIPT,
            entity_type=AuditEntityType.PAYMENT,
            entity_id=payment_id,
            previous_value=snapshot(before),
            new_value=snapshot(after),
            details={"receipt_reference": receipt_reference},
        )
        logger.info(
            "payment_receipt_attached",
            extra={"payment_id": str(payment_id), "replaced": before.receipt_reference is not None},
        )
        return after

    def cancel(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PaymentRecord:
        """``pending | eligible -> cancelled`` (terminal)."""
        transition = self._transition(
            payment_id,
            "cancel",
            frozenset({PaymentStatus.PENDING, PaymentStatus.ELIGIBLE}),
            PaymentStatus.CANCELLED,
            {"updated_by_id": actor_id},
        )
        self._auditor.record(
            actor_id=actor_id,
            action=AuditAction.CANCEL_PAYMENT,
            entity_type=AuditEntityType.PAYMENT,
            entity_id=payment_id,
            previous_value=snapshot(transition.before),
            new_value=snapshot(transition.after),
            details={"reason": reason},
        )
        return transition.after

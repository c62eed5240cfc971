"""
DisbursementEngine -- the facade the presentation layer calls.

Responsibility:
    Wires the kernel services for one session, owns the transaction
    boundary of every operation, stores uploaded files through the
    BlobStore, notifies through the Notifier after commit, and converts
    typed kernel errors into ``OperationResult`` values.

Architecture position:
    Services.  May import grant_kernel and grant_config; nothing in the
    kernel imports this module.

Invariants enforced:
    - Business rule failures never raise: they come back as an
      ``OperationResult`` whose ``status`` preserves the error kind and
      whose ``error_code`` is the kernel error's ``code``.
    - Commit on success, rollback on a business failure.  A
      PartialFailureError is the exception: the decision was already
      rolled back to its savepoint and the ``review_decision_failed``
      audit entry must persist, so the session is committed.
    - Infrastructure errors (database, blob store) roll back and
      propagate unchanged.
    - Audit write failures are returned as ``warnings`` on an otherwise
      successful result.
    - Notifications are sent only after a successful commit; a failing
      notifier is logged and never changes the result.

Audit relevance:
    Every operation runs under a ``LogContext`` carrying a fresh
    correlation id, so the operation's log lines and its audit rows can
    be joined by time and actor.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from grant_config import GrantPolicy, get_active_config
from grant_kernel.domain.bank_account import BankAccountFields, BankAccountRecord
from grant_kernel.domain.calendar import ReportingCalendar
from grant_kernel.domain.clock import Clock, SystemClock
from grant_kernel.domain.enrollment import EnrollmentRecord, EnrollmentStatus, GrantModality
from grant_kernel.domain.installment import parse_reference_month
from grant_kernel.domain.payment import PaymentRecord
from grant_kernel.domain.ports import AuditWarning, BlobStore, Notifier
from grant_kernel.domain.report import ReportRecord, ReportStatus, ReviewDecision
from grant_kernel.exceptions import (
    ConflictError,
    DeadlineExpiredError,
    GrantKernelError,
    InvalidStateError,
    InvalidTransitionError,
    LockedError,
    NotFoundError,
    OutOfWindowError,
    PartialFailureError,
    ValidationError,
)
from grant_kernel.logging_config import LogContext, get_logger
from grant_kernel.models.audit_event import AuditEntityType
from grant_kernel.selectors.installment_selector import (
    InstallmentSelector,
    InstallmentView,
    ScholarSummary,
)
from grant_kernel.services.auditor_service import AuditorService, AuditTrace
from grant_kernel.services.bank_account_validator import BankAccountValidator
from grant_kernel.services.disbursement_orchestrator import (
    DisbursementOrchestrator,
    ReviewOutcome,
)
from grant_kernel.services.enrollment_service import EnrollmentService
from grant_kernel.services.payment_settlement import PaymentSettlementService
from grant_kernel.services.report_workflow import ReportWorkflowService
from grant_services.attachments import (
    Attachment,
    receipt_storage_key,
    report_storage_key,
    validate_attachment,
)

logger = get_logger("services.disbursement_engine")

T = TypeVar("T")


class OperationStatus(str, Enum):
    """Outcome kind of a facade operation."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    OUT_OF_WINDOW = "out_of_window"
    DEADLINE_EXPIRED = "deadline_expired"
    LOCKED = "locked"
    VALIDATION_ERROR = "validation_error"
    PARTIAL_FAILURE = "partial_failure"
    REJECTED = "rejected"


# Checked in order; subclasses before their bases.
_STATUS_BY_ERROR: tuple[tuple[type[GrantKernelError], OperationStatus], ...] = (
    (PartialFailureError, OperationStatus.PARTIAL_FAILURE),
    (NotFoundError, OperationStatus.NOT_FOUND),
    (InvalidTransitionError, OperationStatus.INVALID_TRANSITION),
    (InvalidStateError, OperationStatus.INVALID_STATE),
    (ConflictError, OperationStatus.CONFLICT),
    (OutOfWindowError, OperationStatus.OUT_OF_WINDOW),
    (DeadlineExpiredError, OperationStatus.DEADLINE_EXPIRED),
    (LockedError, OperationStatus.LOCKED),
    (ValidationError, OperationStatus.VALIDATION_ERROR),
)


def status_for(error: GrantKernelError) -> OperationStatus:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return OperationStatus.REJECTED


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Typed outcome of a facade operation."""

    status: OperationStatus
    value: T | None = None
    error_code: str | None = None
    message: str | None = None
    warnings: tuple[AuditWarning, ...] = ()
    advisories: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    @classmethod
    def success(
        cls,
        value: T,
        warnings: tuple[AuditWarning, ...] = (),
        advisories: tuple[str, ...] = (),
    ) -> OperationResult[T]:
        return cls(
            status=OperationStatus.SUCCESS,
            value=value,
            warnings=warnings,
            advisories=advisories,
        )

    @classmethod
    def failure(
        cls,
        error: GrantKernelError,
        warnings: tuple[AuditWarning, ...] = (),
    ) -> OperationResult[T]:
        return cls(
            status=status_for(error),
            error_code=error.code,
            message=error.message,
            warnings=warnings,
        )


class DisbursementEngine:
    """
    Entry point for every disbursement operation.

    Contract:
        Each write method runs in its own transaction (when
        ``auto_commit=True``) and returns an ``OperationResult``.
        Read methods return plain values.

    Non-goals:
        - Does NOT authenticate or authorize; actor ids are trusted.
        - Does NOT render notification content; it passes template keys.
    """

    def __init__(
        self,
        session: Session,
        blob_store: BlobStore,
        notifier: Notifier,
        config: GrantPolicy | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._blob_store = blob_store
        self._notifier = notifier
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        self._calendar = ReportingCalendar(self._clock, self._config.calendar.tz)
        self._auditor = AuditorService(session, self._clock)
        self._enrollments = EnrollmentService(session, self._auditor, self._clock)
        self._reports = ReportWorkflowService(
            session, self._auditor, self._clock, self._calendar,
        )
        self._payments = PaymentSettlementService(session, self._auditor, self._clock)
        self._orchestrator = DisbursementOrchestrator(
            session,
            self._auditor,
            self._clock,
            self._calendar,
            report_workflow=self._reports,
            payment_settlement=self._payments,
        )
        self._bank = BankAccountValidator(session, self._auditor, self._clock)
        self._installments = InstallmentSelector(session)

    @property
    def config(self) -> GrantPolicy:
        return self._config

    @property
    def calendar(self) -> ReportingCalendar:
        return self._calendar

    @property
    def auditor(self) -> AuditorService:
        return self._auditor

    # ------------------------------------------------------------------
    # Transaction and error boundary
    # ------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        fn: Callable[[], T],
        *,
        actor_id: UUID | None = None,
        entity_id: UUID | None = None,
        on_committed: Callable[[T], None] | None = None,
        advisories: list[str] | None = None,
    ) -> OperationResult[T]:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id else None,
            entity_id=str(entity_id) if entity_id else None,
            operation=operation,
        ):
            t0 = time.monotonic()
            try:
                value = fn()
            except PartialFailureError as exc:
                # Savepoint already rolled back; keep the failure audit row.
                warnings = self._auditor.drain_warnings()
                if self._auto_commit:
                    self._session.commit()
                logger.error(
                    "operation_partial_failure",
                    extra={
                        "error_code": exc.code,
                        "cause_code": exc.cause_code,
                        "duration_ms": self._elapsed_ms(t0),
                    },
                )
                return OperationResult.failure(exc, warnings)
            except GrantKernelError as exc:
                self._auditor.drain_warnings()
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    "operation_rejected",
                    extra={
                        "error_code": exc.code,
                        "reason": exc.message,
                        "duration_ms": self._elapsed_ms(t0),
                    },
                )
                return OperationResult.failure(exc)
            except Exception:
                self._auditor.drain_warnings()
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "operation_failed",
                    extra={"duration_ms": self._elapsed_ms(t0)},
                    exc_info=True,
                )
                raise

            warnings = self._auditor.drain_warnings()
            if self._auto_commit:
                self._session.commit()
            logger.info(
                "operation_completed",
                extra={
                    "duration_ms": self._elapsed_ms(t0),
                    "audit_warnings": len(warnings),
                },
            )
            if on_committed is not None:
                on_committed(value)
            return OperationResult.success(value, warnings, tuple(advisories or ()))

    @staticmethod
    def _elapsed_ms(t0: float) -> float:
        return round((time.monotonic() - t0) * 1000, 2)

    def _notify(self, user_id: UUID, template_key: str, data: dict[str, Any]) -> None:
        try:
            self._notifier.notify(user_id, template_key, data)
        except Exception:
            logger.warning(
                "notification_failed",
                extra={"user_id": str(user_id), "template_key": template_key},
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def create_enrollment(
        self,
        user_id: UUID,
        subproject_id: UUID,
        grant_value: Decimal,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        modality: GrantModality | None = None,
        organization_id: UUID | None = None,
    ) -> OperationResult[EnrollmentRecord]:
        """Assign a scholar to a subproject and generate its installments."""
        return self._execute(
            "create_enrollment",
            lambda: self._enrollments.create_enrollment(
                user_id=user_id,
                subproject_id=subproject_id,
                grant_value=grant_value,
                start_date=start_date,
                end_date=end_date,
                actor_id=actor_id,
                modality=modality or self._config.default_modality,
                organization_id=organization_id,
            ),
            actor_id=actor_id,
            entity_id=user_id,
        )

    def change_enrollment_status(
        self,
        enrollment_id: UUID,
        new_status: EnrollmentStatus,
        actor_id: UUID,
    ) -> OperationResult[EnrollmentRecord]:
        return self._execute(
            "change_enrollment_status",
            lambda: self._enrollments.change_status(enrollment_id, new_status, actor_id),
            actor_id=actor_id,
            entity_id=enrollment_id,
        )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def submit_report(
        self,
        user_id: UUID,
        reference_month: str,
        installment_number: int,
        file: Attachment,
        observations: str | None = None,
    ) -> OperationResult[ReportRecord]:
        """
        Store the report file and create a new version under review.

        The row is flushed before the upload so a refused submission never
        touches the blob store; an upload failure rolls the row back.
        """
        policy = self._config.report_attachments

        def submit() -> ReportRecord:
            extension = validate_attachment(file, policy)
            record = self._reports.submit(
                user_id=user_id,
                reference_month=reference_month,
                installment_number=installment_number,
                file_reference=lambda version: report_storage_key(
                    policy, user_id, reference_month, version,
                ),
                observations=observations,
            )
            self._blob_store.put(
                record.file_reference, file.data, policy.content_type_for(extension),
            )
            return record

        return self._execute(
            "submit_report",
            submit,
            actor_id=user_id,
            entity_id=user_id,
            on_committed=lambda report: self._notify(
                report.user_id,
                self._config.notifications.report_submitted,
                {"reference_month": report.reference_month, "version": report.version},
            ),
        )

    def review_report(
        self,
        report_id: UUID,
        reviewer_id: UUID,
        decision: ReviewDecision,
        feedback: str | None = None,
    ) -> OperationResult[ReviewOutcome]:
        """Approve or reject a report version; approval unlocks its payment."""
        return self._execute(
            "review_report",
            lambda: self._orchestrator.apply_review_decision(
                report_id, reviewer_id, decision, feedback,
            ),
            actor_id=reviewer_id,
            entity_id=report_id,
            on_committed=self._notify_review,
        )

    def _notify_review(self, outcome: ReviewOutcome) -> None:
        report = outcome.report
        templates = self._config.notifications
        if report.status == ReportStatus.APPROVED:
            self._notify(
                report.user_id,
                templates.report_approved,
                {
                    "reference_month": report.reference_month,
                    "version": report.version,
                    "payment_unlocked": outcome.payment_unlocked,
                },
            )
        else:
            self._notify(
                report.user_id,
                templates.report_rejected,
                {
                    "reference_month": report.reference_month,
                    "version": report.version,
                    "feedback": report.feedback,
                    "resubmission_deadline": report.resubmission_deadline.isoformat(),
                },
            )

    def list_report_versions(self, user_id: UUID, reference_month: str) -> list[ReportRecord]:
        return self._reports.list_versions(user_id, reference_month)

    def report_file_url(self, report_id: UUID) -> OperationResult[str]:
        """Short-lived URL of a report version's file."""
        ttl = self._config.signed_url_ttl_seconds
        return self._execute(
            "report_file_url",
            lambda: self._blob_store.signed_url(
                self._reports.get_report(report_id).file_reference, ttl,
            ),
            entity_id=report_id,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def mark_paid(
        self,
        payment_id: UUID,
        actor_id: UUID,
        receipt: Attachment | None = None,
    ) -> OperationResult[PaymentRecord]:
        """
        Settle an eligible payment, optionally with its receipt.

        A scholar without validated bank data does not block payment; the
        advisory code is returned in ``advisories``.
        """
        policy = self._config.receipt_attachments
        advisories: list[str] = []

        def pay() -> PaymentRecord:
            extension = validate_attachment(receipt, policy) if receipt else None
            payment = self._payments.get_payment(payment_id)
            key = None
            if receipt is not None:
                key = receipt_storage_key(
                    policy, payment.user_id, payment.reference_month, payment.id, extension,
                )
            paid = self._payments.mark_paid(payment_id, actor_id, receipt_reference=key)
            if receipt is not None:
                self._blob_store.put(key, receipt.data, policy.content_type_for(extension))

            advisory = self._bank.disbursement_advisory(paid.user_id)
            if advisory is not None:
                logger.warning(
                    "payment_bank_advisory",
                    extra={"payment_id": str(payment_id), "advisory": advisory},
                )
                advisories.append(advisory)
            return paid

        return self._execute(
            "mark_paid",
            pay,
            actor_id=actor_id,
            entity_id=payment_id,
            advisories=advisories,
            on_committed=lambda payment: self._notify(
                payment.user_id,
                self._config.notifications.payment_paid,
                {
                    "reference_month": payment.reference_month,
                    "installment_number": payment.installment_number,
                    "amount": str(payment.amount),
                },
            ),
        )

    def attach_receipt(
        self,
        payment_id: UUID,
        actor_id: UUID,
        receipt: Attachment,
    ) -> OperationResult[PaymentRecord]:
        """Attach or replace the receipt of a paid payment."""
        policy = self._config.receipt_attachments

        def attach() -> PaymentRecord:
            extension = validate_attachment(receipt, policy)
            payment = self._payments.get_payment(payment_id)
            key = receipt_storage_key(
                policy, payment.user_id, payment.reference_month, payment.id, extension,
            )
            updated = self._payments.attach_receipt(payment_id, actor_id, key)
            self._blob_store.put(key, receipt.data, policy.content_type_for(extension))
            return updated

        return self._execute("attach_receipt", attach, actor_id=actor_id, entity_id=payment_id)

    def cancel_payment(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> OperationResult[PaymentRecord]:
        return self._execute(
            "cancel_payment",
            lambda: self._payments.cancel(payment_id, actor_id, reason),
            actor_id=actor_id,
            entity_id=payment_id,
        )

    def receipt_url(self, payment_id: UUID) -> OperationResult[str]:
        ttl = self._config.signed_url_ttl_seconds

        def url() -> str:
            payment = self._payments.get_payment(payment_id)
            if payment.receipt_reference is None:
                raise ValidationError(
                    f"Payment {payment_id} has no receipt", field="receipt_reference",
                )
            return self._blob_store.signed_url(payment.receipt_reference, ttl)

        return self._execute("receipt_url", url, entity_id=payment_id)

    # ------------------------------------------------------------------
    # Bank accounts
    # ------------------------------------------------------------------

    def submit_bank_account(
        self,
        user_id: UUID,
        fields: BankAccountFields,
    ) -> OperationResult[BankAccountRecord]:
        return self._execute(
            "submit_bank_account",
            lambda: self._bank.submit(user_id, fields),
            actor_id=user_id,
            entity_id=user_id,
        )

    def begin_bank_review(self, account_id: UUID, actor_id: UUID) -> OperationResult[BankAccountRecord]:
        return self._execute(
            "begin_bank_review",
            lambda: self._bank.begin_review(account_id, actor_id),
            actor_id=actor_id,
            entity_id=account_id,
        )

    def release_bank_review(self, account_id: UUID, actor_id: UUID) -> OperationResult[BankAccountRecord]:
        return self._execute(
            "release_bank_review",
            lambda: self._bank.release_review(account_id, actor_id),
            actor_id=actor_id,
            entity_id=account_id,
        )

    def validate_bank_account(
        self,
        account_id: UUID,
        validator_id: UUID,
    ) -> OperationResult[BankAccountRecord]:
        return self._execute(
            "validate_bank_account",
            lambda: self._bank.validate(account_id, validator_id),
            actor_id=validator_id,
            entity_id=account_id,
            on_committed=lambda account: self._notify(
                account.user_id, self._config.notifications.bank_data_validated, {},
            ),
        )

    def return_bank_account(
        self,
        account_id: UUID,
        actor_id: UUID,
        notes: str,
    ) -> OperationResult[BankAccountRecord]:
        return self._execute(
            "return_bank_account",
            lambda: self._bank.return_for_correction(account_id, actor_id, notes),
            actor_id=actor_id,
            entity_id=account_id,
            on_committed=lambda account: self._notify(
                account.user_id,
                self._config.notifications.bank_data_returned,
                {"notes": account.notes_gestor},
            ),
        )

    def bank_status(self, user_id: UUID) -> str:
        return self._bank.status_for_user(user_id)

    # ------------------------------------------------------------------
    # Read side and reminders
    # ------------------------------------------------------------------

    def list_installments(
        self,
        user_id: UUID,
        enrollment_id: UUID | None = None,
    ) -> list[InstallmentView]:
        return self._installments.list_installments(user_id, enrollment_id)

    def scholar_summary(self, user_id: UUID) -> ScholarSummary:
        return self._installments.scholar_summary(
            user_id, self._calendar.current_reference_month(),
        )

    def audit_trace(self, entity_type: AuditEntityType | str, entity_id: UUID) -> AuditTrace:
        return self._auditor.get_trace(entity_type, entity_id)

    def send_report_reminders(self, reference_month: str | None = None) -> OperationResult[int]:
        """Remind every scholar who has not reported ``reference_month`` yet."""
        month = reference_month or self._calendar.current_reference_month()
        template = self._config.notifications.monthly_report_reminder

        def remind(user_ids: list[UUID]) -> None:
            for user_id in user_ids:
                self._notify(user_id, template, {"reference_month": month})
            logger.info(
                "report_reminders_sent",
                extra={"reference_month": month, "count": len(user_ids)},
            )

        def candidates() -> list[UUID]:
            parse_reference_month(month)
            return self._installments.reminder_candidates(month)

        result = self._execute("send_report_reminders", candidates, on_committed=remind)
        if not result.is_success:
            return OperationResult(
                status=result.status,
                error_code=result.error_code,
                message=result.message,
            )
        return OperationResult.success(len(result.value))

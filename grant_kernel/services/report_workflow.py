"""
ReportWorkflowService -- report submission, versioning and review.

Responsibility:
    Creates report versions for an installment and applies the terminal
    review update (approve / reject) to a single version.

Architecture position:
    Kernel > Services.  Writes ONLY ``reports`` rows.  Reads the payment
    row of an installment to lock the key during submission.  Review
    outcomes that touch payments go through DisbursementOrchestrator.

Invariants enforced:
    - At most one version per installment is under review; a new
      submission is refused while one is pending.
    - An approved installment accepts no further versions.
    - Future months are refused unless the latest version was rejected
      and its resubmission deadline is still open.
    - Version numbers are allocated by a count taken under the
      installment's row lock and backed by a unique constraint, so a
      retried or concurrent submit can never duplicate a version.
    - Review is a compare-and-swap on ``status = 'under_review'``.

Failure modes:
    - PaymentNotFoundError: no live installment for (user, month).
    - ReportUnderReviewError / ReportAlreadyApprovedError (Conflict).
    - OutOfWindowError, DeadlineExpiredError.
    - FeedbackRequiredError on reject without feedback.
    - InvalidStateError when the version is no longer under review.

Audit relevance:
    ``submit`` records ``submit_report``.  ``review`` records nothing on
    its own; the orchestrator writes the single entry covering the
    decision and any payment it unlocked.
"""

from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from grant_kernel.domain.calendar import MonthClassification, ReportingCalendar
from grant_kernel.domain.clock import Clock
from grant_kernel.domain.installment import InstallmentKey
from grant_kernel.domain.payment import PaymentStatus
from grant_kernel.domain.report import ReportRecord, ReportStatus, ReviewDecision
from grant_kernel.exceptions import (
    DeadlineExpiredError,
    FeedbackRequiredError,
    InvalidStateError,
    OutOfWindowError,
    PaymentNotFoundError,
    ReportAlreadyApprovedError,
    ReportNotFoundError,
    ReportUnderReviewError,
    ValidationError,
)
from grant_kernel.logging_config import get_logger
from grant_kernel.models.audit_event import AuditAction, AuditEntityType
from grant_kernel.models.payment import Payment
from grant_kernel.models.report import Report
from grant_kernel.services.auditor_service import AuditorService
from grant_kernel.services.base import BaseService, snapshot

logger = get_logger("services.report_workflow")


@dataclass(frozen=True)
class ReportReview:
    """Before/after pair of one review update."""

    before: ReportRecord
    after: ReportRecord
    decision: ReviewDecision


class ReportWorkflowService(BaseService[Report]):
    """
    Submission and review of report versions.

    Contract:
        ``submit`` returns the new version; ``review`` returns the
        before/after pair so the orchestrator can audit the decision
        together with its payment effect.

    Non-goals:
        - Does NOT touch payment rows.
        - Does NOT store files; ``file_reference`` is an opaque storage key.
    """

    model = Report
    not_found = ReportNotFoundError

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        calendar: ReportingCalendar | None = None,
    ):
        super().__init__(session, auditor, clock)
        self._calendar = calendar or ReportingCalendar(self._clock)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _versions(self, key: InstallmentKey, *, for_update: bool = False) -> list[Report]:
        stmt = (
            select(Report)
            .where(
                Report.user_id == key.user_id,
                Report.reference_month == key.reference_month,
            )
            .order_by(Report.version.desc())
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list(self._session.execute(stmt).scalars().all())

    def list_versions(self, user_id: UUID, reference_month: str) -> list[ReportRecord]:
        """All versions of an installment's report, newest first."""
        key = InstallmentKey(user_id, reference_month)
        return [row.to_dto() for row in self._versions(key)]

    def get_report(self, report_id: UUID) -> ReportRecord:
        return self._load(report_id).to_dto()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _lock_installment(self, key: InstallmentKey) -> Payment:
        """Lock the live payment row that anchors the installment key."""
        payment = self._session.execute(
            select(Payment)
            .where(
                Payment.user_id == key.user_id,
                Payment.reference_month == key.reference_month,
                Payment.status != PaymentStatus.CANCELLED.value,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(str(key))
        return payment

    def _check_window(self, key: InstallmentKey, latest: Report | None) -> None:
        if latest is not None and latest.status == ReportStatus.REJECTED.value:
            now = self._calendar.now()
            if self._calendar.is_expired(latest.resubmission_deadline):
                raise DeadlineExpiredError(
                    key.reference_month, latest.resubmission_deadline, now,
                )
            return

        if self._calendar.classify(key.reference_month) == MonthClassification.FUTURE:
            raise OutOfWindowError(
                key.reference_month, self._calendar.current_reference_month(),
            )

    def submit(
        self,
        user_id: UUID,
        reference_month: str,
        installment_number: int,
        file_reference: str | Callable[[int], str],
        observations: str | None = None,
    ) -> ReportRecord:
        """
        Create a new report version in ``under_review``.

        Preconditions:
            - A live payment exists for (user_id, reference_month) with
              the given installment number.
            - ``file_reference`` is a storage key, or a callable that
              builds one from the version allocated under the lock.
        Postconditions:
            - One new Report row with version = count(existing) + 1.
            - One ``submit_report`` audit entry.
        """
        key = InstallmentKey(user_id, reference_month)
        if not callable(file_reference) and not file_reference:
            raise ValidationError("A report file is required", field="file_reference")

        payment = self._lock_installment(key)
        if payment.installment_number != installment_number:
            raise ValidationError(
                f"Installment {installment_number} does not match "
                f"{reference_month} (installment {payment.installment_number})",
                field="installment_number",
            )

        versions = self._versions(key, for_update=True)
        pending = next(
            (v for v in versions if v.status == ReportStatus.UNDER_REVIEW.value), None,
        )
        if pending is not None:
            raise ReportUnderReviewError(user_id, reference_month, pending.id)

        latest = versions[0] if versions else None
        if latest is not None and latest.status == ReportStatus.APPROVED.value:
            raise ReportAlreadyApprovedError(user_id, reference_month, latest.id)

        self._check_window(key, latest)

        version = len(versions) + 1
        if callable(file_reference):
            file_reference = file_reference(version)

        report = Report(
            user_id=user_id,
            reference_month=reference_month,
            installment_number=installment_number,
            version=version,
            file_reference=file_reference,
            observations=observations,
            status=ReportStatus.UNDER_REVIEW.value,
            submitted_at=self._clock.now_utc(),
        )
        try:
            with self._session.begin_nested():
                self._session.add(report)
                self._session.flush()
        except IntegrityError:
            logger.warning(
                "report_submit_conflict",
                extra={"user_id": str(user_id), "reference_month": reference_month},
            )
            raise ReportUnderReviewError(user_id, reference_month) from None

        record = report.to_dto()
        self._auditor.record(
            actor_id=user_id,
            action=AuditAction.SUBMIT_REPORT,
            entity_type=AuditEntityType.REPORT,
            entity_id=record.id,
            new_value=snapshot(record),
            details={
                "reference_month": reference_month,
                "installment_number": installment_number,
                "version": record.version,
            },
        )

        logger.info(
            "report_submitted",
            extra={
                "report_id": str(record.id),
                "user_id": str(user_id),
                "reference_month": reference_month,
                "version": record.version,
            },
        )
        return record

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def review(
        self,
        report_id: UUID,
        reviewer_id: UUID,
        decision: ReviewDecision,
        feedback: str | None = None,
    ) -> ReportReview:
        """
        Move a version out of ``under_review``.

        approve: status=approved, reviewed_at/by set, feedback optional.
        reject:  feedback required, resubmission_deadline = reviewed_at + 5 days.

        Raises:
            ReportNotFoundError, FeedbackRequiredError, InvalidStateError.
        """
        decision = ReviewDecision(decision)
        before = self._load(report_id).to_dto()

        feedback = feedback.strip() if feedback else None
        if decision == ReviewDecision.REJECT and not feedback:
            raise FeedbackRequiredError(report_id)

        reviewed_at = self._clock.now_utc()
        values = {
            "status": decision.target_status.value,
            "reviewed_at": reviewed_at,
            "reviewed_by": reviewer_id,
            "feedback": feedback,
        }
        if decision == ReviewDecision.REJECT:
            values["resubmission_deadline"] = self._calendar.resubmission_deadline(reviewed_at)

        if not self._compare_and_set(report_id, ReportStatus.UNDER_REVIEW.value, values):
            current = self._load(report_id)
            raise InvalidStateError("report", report_id, current.status, decision.value)

        after = self._load(report_id).to_dto()
        logger.info(
            "report_reviewed",
            extra={
                "report_id": str(report_id),
                "decision": decision.value,
                "reviewer_id": str(reviewer_id),
                "reference_month": after.reference_month,
            },
        )
        return ReportReview(before=before, after=after, decision=decision)

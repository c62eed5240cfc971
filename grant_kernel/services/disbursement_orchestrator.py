"""
DisbursementOrchestrator -- applies a review decision to report and payment.

Responsibility:
    The only component that writes both a report and a payment.  Given a
    review decision it performs the report's terminal update, unlocks the
    installment's payment on approval, and writes one audit entry that
    covers both mutations.

Architecture position:
    Kernel > Services.  Composes ReportWorkflowService and
    PaymentSettlementService; neither of them calls the other.

Invariants enforced:
    - Atomicity: the report update and payment update run inside one
      SAVEPOINT.  If the payment step fails, the savepoint is rolled back
      (the report is back in ``under_review``) and PartialFailureError is
      raised.  No approved report is ever left with a pending payment.
    - A partial failure is never silent: a ``review_decision_failed``
      audit entry records the rolled-back decision and its cause.
    - Exactly one audit entry per successful decision.

Failure modes:
    - Errors from the report step (not found, not under review, missing
      feedback) propagate unchanged; nothing was written.
    - PartialFailureError when the payment step fails.
    - Infrastructure errors roll back the savepoint and propagate.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from grant_kernel.domain.calendar import ReportingCalendar
from grant_kernel.domain.clock import Clock, SystemClock
from grant_kernel.domain.payment import PaymentRecord
from grant_kernel.domain.report import ReportRecord, ReviewDecision
from grant_kernel.exceptions import GrantKernelError, PartialFailureError
from grant_kernel.logging_config import LogContext, get_logger
from grant_kernel.models.audit_event import AuditAction, AuditEntityType
from grant_kernel.services.auditor_service import AuditorService
from grant_kernel.services.base import snapshot
from grant_kernel.services.payment_settlement import PaymentSettlementService, PaymentTransition
from grant_kernel.services.report_workflow import ReportReview, ReportWorkflowService

logger = get_logger("services.disbursement_orchestrator")


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of applying a review decision."""

    report: ReportRecord
    payment: PaymentRecord | None = None

    @property
    def payment_unlocked(self) -> bool:
        return self.payment is not None


class DisbursementOrchestrator:
    """
    Cross-entity coordinator for review decisions.

    Contract:
        ``apply_review_decision`` either persists the report decision
        together with its payment effect, or persists neither.

    Non-goals:
        - Does NOT commit; the caller owns the outer transaction.
        - Does NOT notify; the facade notifies after commit.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        calendar: ReportingCalendar | None = None,
        report_workflow: ReportWorkflowService | None = None,
        payment_settlement: PaymentSettlementService | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._reports = report_workflow or ReportWorkflowService(
            session, auditor, self._clock, calendar,
        )
        self._payments = payment_settlement or PaymentSettlementService(
            session, auditor, self._clock,
        )

    def apply_review_decision(
        self,
        report_id: UUID,
        reviewer_id: UUID,
        decision: ReviewDecision,
        feedback: str | None = None,
    ) -> ReviewOutcome:
        """
        Apply approve/reject to a report and, on approval, its payment.

        Postconditions:
            - approve: report approved AND payment eligible with
              report_id set, in the same transaction.
            - reject: report rejected with deadline; payment untouched.
            - One audit entry on the report covering both snapshots.

        Raises:
            ReportNotFoundError, FeedbackRequiredError, InvalidStateError
                from the report step (nothing written).
            PartialFailureError if the payment step fails (rolled back).
        """
        decision = ReviewDecision(decision)
        with LogContext.bind(entity_id=str(report_id), actor_id=str(reviewer_id)):
            savepoint = self._session.begin_nested()
            try:
                review = self._reports.review(report_id, reviewer_id, decision, feedback)
            except Exception:
                savepoint.rollback()
                raise

            payment_transition: PaymentTransition | None = None
            if decision == ReviewDecision.APPROVE:
                try:
                    payment_transition = self._payments.on_report_approved(review.after)
                except GrantKernelError as exc:
                    savepoint.rollback()
                    self._record_failure(review, reviewer_id, exc)
                    raise PartialFailureError(report_id, exc) from exc
                except Exception:
                    savepoint.rollback()
                    raise

            savepoint.commit()
            self._record_decision(review, payment_transition, reviewer_id)

            logger.info(
                "review_decision_applied",
                extra={
                    "report_id": str(report_id),
                    "decision": decision.value,
                    "payment_id": (
                        str(payment_transition.after.id) if payment_transition else None
                    ),
                },
            )
            return ReviewOutcome(
                report=review.after,
                payment=payment_transition.after if payment_transition else None,
            )

    def _record_decision(
        self,
        review: ReportReview,
        payment_transition: PaymentTransition | None,
        reviewer_id: UUID,
    ) -> None:
        report = review.after
        previous_value = {"report": snapshot(review.before)}
        new_value = {"report": snapshot(report)}
        details = {
            "scholar_id": report.user_id,
            "reference_month": report.reference_month,
            "version": report.version,
            "feedback": report.feedback,
        }
        if review.decision == ReviewDecision.APPROVE:
            action = AuditAction.APPROVE_REPORT
            if payment_transition is not None:
                previous_value["payment"] = snapshot(payment_transition.before)
                new_value["payment"] = snapshot(payment_transition.after)
                details["payment_id"] = payment_transition.after.id
        else:
            action = AuditAction.REJECT_REPORT
            details["resubmission_deadline"] = report.resubmission_deadline

        self._auditor.record(
            actor_id=reviewer_id,
            action=action,
            entity_type=AuditEntityType.REPORT,
            entity_id=report.id,
            previous_value=previous_value,
            new_value=new_value,
            details=details,
        )

    def _record_failure(
        self,
        review: ReportReview,
        reviewer_id: UUID,
        cause: GrantKernelError,
    ) -> None:
        logger.error(
            "review_decision_rolled_back",
            extra={
                "report_id": str(review.before.id),
                "decision": review.decision.value,
                "cause_code": cause.code,
            },
        )
        self._auditor.record(
            actor_id=reviewer_id,
            action=AuditAction.REVIEW_DECISION_FAILED,
            entity_type=AuditEntityType.REPORT,
            entity_id=review.before.id,
            previous_value={"report": snapshot(review.before)},
            new_value=None,
            details={
                "decision": review.decision.value,
                "cause_code": cause.code,
                "cause": cause.message,
                "scholar_id": review.before.user_id,
                "reference_month": review.before.reference_month,
            },
        )

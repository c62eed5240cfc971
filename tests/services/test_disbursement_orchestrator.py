"""
Tests for DisbursementOrchestrator.

Covers:
- Approval unlocks the payment in the same transaction
- Rejection leaves the payment untouched
- One audit entry per decision, holding both snapshots
- Partial failure: report rolled back, failure audited, error raised
- Concurrent review: the loser observes InvalidStateError
"""

from uuid import uuid4

import pytest

from grant_kernel.domain.payment import PaymentStatus
from grant_kernel.domain.report import ReportStatus, ReviewDecision
from grant_kernel.exceptions import (
    FeedbackRequiredError,
    InvalidStateError,
    PartialFailureError,
    ReportNotFoundError,
)
from grant_kernel.models.audit_event import AuditAction, AuditEntityType


@pytest.fixture
def submitted_report(create_enrollment, submit_report, scholar_id):
    create_enrollment(user_id=scholar_id)
    return submit_report(scholar_id, "2024-03")


class TestApprove:
    def test_report_approved_and_payment_eligible(
        self, orchestrator, payment_settlement, submitted_report, test_actor_id,
    ):
        outcome = orchestrator.apply_review_decision(
            submitted_report.id, test_actor_id, ReviewDecision.APPROVE,
        )

        assert outcome.report.status == ReportStatus.APPROVED
        assert outcome.payment_unlocked
        assert outcome.payment.status == PaymentStatus.ELIGIBLE
        assert outcome.payment.report_id == submitted_report.id

        payment = payment_settlement.find_by_key(submitted_report.key)
        assert payment.status == PaymentStatus.ELIGIBLE

    def test_single_audit_entry_with_both_snapshots(
        self, orchestrator, auditor_service, submitted_report, test_actor_id,
    ):
        outcome = orchestrator.apply_review_decision(
            submitted_report.id, test_actor_id, ReviewDecision.APPROVE, "ok",
        )

        trace = auditor_service.get_trace(AuditEntityType.REPORT, submitted_report.id)
        assert trace.actions == (AuditAction.SUBMIT_REPORT, AuditAction.APPROVE_REPORT)
        entry = trace.entries[-1]
        assert entry.actor_id == test_actor_id
        assert entry.previous_value["report"]["status"] == "under_review"
        assert entry.previous_value["payment"]["status"] == "pending"
        assert entry.new_value["report"]["status"] == "approved"
        assert entry.new_value["payment"]["status"] == "eligible"
        assert entry.details["payment_id"] == str(outcome.payment.id)
        assert entry.details["feedback"] == "ok"

        payment_trace = auditor_service.get_trace(AuditEntityType.PAYMENT, outcome.payment.id)
        assert payment_trace.is_empty

    def test_string_decision_accepted(self, orchestrator, submitted_report, test_actor_id):
        outcome = orchestrator.apply_review_decision(submitted_report.id, test_actor_id, "approve")
        assert outcome.report.status == ReportStatus.APPROVED


class TestReject:
    def test_payment_untouched(self, orchestrator, payment_settlement, submitted_report, test_actor_id):
        outcome = orchestrator.apply_review_decision(
            submitted_report.id, test_actor_id, ReviewDecision.REJECT, "assinatura ausente",
        )

        assert outcome.report.status == ReportStatus.REJECTED
        assert not outcome.payment_unlocked
        assert payment_settlement.find_by_key(submitted_report.key).status == PaymentStatus.PENDING

    def test_audit_records_deadline(self, orchestrator, auditor_service, submitted_report, test_actor_id):
        outcome = orchestrator.apply_review_decision(
            submitted_report.id, test_actor_id, ReviewDecision.REJECT, "assinatura ausente",
        )

        trace = auditor_service.get_trace(AuditEntityType.REPORT, submitted_report.id)
        entry = trace.entries[-1]
        assert entry.action == AuditAction.REJECT_REPORT
        assert "payment" not in entry.new_value
        assert entry.details["resubmission_deadline"] == outcome.report.resubmission_deadline.isoformat()
        assert entry.details["feedback"] == "assinatura ausente"

    def test_missing_feedback_writes_nothing(
        self, orchestrator, report_workflow, auditor_service, submitted_report, test_actor_id,
    ):
        with pytest.raises(FeedbackRequiredError):
            orchestrator.apply_review_decision(submitted_report.id, test_actor_id, ReviewDecision.REJECT)

        assert report_workflow.get_report(submitted_report.id).status == ReportStatus.UNDER_REVIEW
        trace = auditor_service.get_trace(AuditEntityType.REPORT, submitted_report.id)
        assert trace.actions == (AuditAction.SUBMIT_REPORT,)


class TestPartialFailure:
    @pytest.fixture
    def cancelled_installment(self, payment_settlement, submitted_report, test_actor_id):
        payment = payment_settlement.find_by_key(submitted_report.key)
        payment_settlement.cancel(payment.id, test_actor_id)
        return submitted_report

    def test_report_rolled_back(self, orchestrator, report_workflow, cancelled_installment, test_actor_id):
        with pytest.raises(PartialFailureError) as exc_info:
            orchestrator.apply_review_decision(
                cancelled_installment.id, test_actor_id, ReviewDecision.APPROVE,
            )

        assert exc_info.value.report_id == str(cancelled_installment.id)
        assert exc_info.value.cause_code == "INVALID_STATE"
        report = report_workflow.get_report(cancelled_installment.id)
        assert report.status == ReportStatus.UNDER_REVIEW
        assert report.reviewed_at is None

    def test_failure_is_audited(self, orchestrator, auditor_service, cancelled_installment, test_actor_id):
        with pytest.raises(PartialFailureError):
            orchestrator.apply_review_decision(
                cancelled_installment.id, test_actor_id, ReviewDecision.APPROVE,
            )

        trace = auditor_service.get_trace(AuditEntityType.REPORT, cancelled_installment.id)
        assert trace.actions == (AuditAction.SUBMIT_REPORT, AuditAction.REVIEW_DECISION_FAILED)
        entry = trace.entries[-1]
        assert entry.new_value is None
        assert entry.details["decision"] == "approve"
        assert entry.details["cause_code"] == "INVALID_STATE"

    def test_failure_is_logged(self, orchestrator, captured_logs, cancelled_installment, test_actor_id):
        with pytest.raises(PartialFailureError):
            orchestrator.apply_review_decision(
                cancelled_installment.id, test_actor_id, ReviewDecision.APPROVE,
            )

        rolled_back = [r for r in captured_logs() if r["message"] == "review_decision_rolled_back"]
        assert len(rolled_back) == 1
        assert rolled_back[0]["level"] == "ERROR"
        assert rolled_back[0]["cause_code"] == "INVALID_STATE"

    def test_no_unbacked_payment_left(self, orchestrator, installment_selector, cancelled_installment, test_actor_id):
        with pytest.raises(PartialFailureError):
            orchestrator.apply_review_decision(
                cancelled_installment.id, test_actor_id, ReviewDecision.APPROVE,
            )
        assert installment_selector.find_unbacked_payments() == []


class TestConcurrentReview:
    def test_second_reviewer_loses(self, orchestrator, auditor_service, submitted_report, test_actor_id):
        orchestrator.apply_review_decision(submitted_report.id, test_actor_id, ReviewDecision.APPROVE)

        with pytest.raises(InvalidStateError) as exc_info:
            orchestrator.apply_review_decision(
                submitted_report.id, uuid4(), ReviewDecision.REJECT, "tarde",
            )

        assert exc_info.value.current_status == "approved"
        trace = auditor_service.get_trace(AuditEntityType.REPORT, submitted_report.id)
        assert trace.actions.count(AuditAction.APPROVE_REPORT) == 1
        assert AuditAction.REJECT_REPORT not in trace.actions

    def test_double_approval_unlocks_once(
        self, orchestrator, payment_settlement, submitted_report, test_actor_id,
    ):
        first = orchestrator.apply_review_decision(submitted_report.id, test_actor_id, ReviewDecision.APPROVE)

        with pytest.raises(InvalidStateError):
            orchestrator.apply_review_decision(submitted_report.id, test_actor_id, ReviewDecision.APPROVE)

        assert payment_settlement.get_payment(first.payment.id) == first.payment

    def test_unknown_report(self, orchestrator, test_actor_id):
        with pytest.raises(ReportNotFoundError):
            orchestrator.apply_review_decision(uuid4(), test_actor_id, ReviewDecision.APPROVE)

"""
Tests for ReportWorkflowService.

Covers:
- Version allocation by insertion
- One version under review per installment
- Approved installments accept no resubmission
- Submission window: past/current allowed, future refused
- Resubmission deadline after a rejection
- Review compare-and-swap
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from grant_kernel.domain.report import ReportStatus, ReviewDecision
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
from grant_kernel.models.audit_event import AuditAction, AuditEntityType


@pytest.fixture
def enrolled_scholar(create_enrollment, scholar_id):
    """Scholar with installments 2024-01 .. 2024-06 (clock is 2024-03-15)."""
    create_enrollment(user_id=scholar_id)
    return scholar_id


class TestSubmit:
    def test_first_version(self, submit_report, enrolled_scholar, deterministic_clock):
        report = submit_report(enrolled_scholar, "2024-03", observations="primeiro relatorio")

        assert report.version == 1
        assert report.status == ReportStatus.UNDER_REVIEW
        assert report.installment_number == 3
        assert report.observations == "primeiro relatorio"
        assert report.submitted_at == deterministic_clock.now_utc()
        assert report.feedback is None
        assert report.resubmission_deadline is None

    def test_past_month_allowed(self, submit_report, enrolled_scholar):
        assert submit_report(enrolled_scholar, "2024-01").status == ReportStatus.UNDER_REVIEW

    def test_future_month_refused(self, submit_report, enrolled_scholar):
        with pytest.raises(OutOfWindowError) as exc_info:
            submit_report(enrolled_scholar, "2024-04")
        assert exc_info.value.reference_month == "2024-04"
        assert exc_info.value.current_month == "2024-03"

    def test_conflict_while_under_review(self, submit_report, enrolled_scholar):
        first = submit_report(enrolled_scholar, "2024-03")

        with pytest.raises(ReportUnderReviewError) as exc_info:
            submit_report(enrolled_scholar, "2024-03")
        assert exc_info.value.report_id == str(first.id)

    def test_conflict_after_approval(self, submit_report, report_workflow, enrolled_scholar, test_actor_id):
        report = submit_report(enrolled_scholar, "2024-03")
        report_workflow.review(report.id, test_actor_id, ReviewDecision.APPROVE)

        with pytest.raises(ReportAlreadyApprovedError):
            submit_report(enrolled_scholar, "2024-03")

    def test_requires_installment(self, submit_report, enrolled_scholar):
        with pytest.raises(PaymentNotFoundError):
            submit_report(enrolled_scholar, "2023-12", installment_number=1)

    def test_installment_number_must_match_month(self, submit_report, enrolled_scholar):
        with pytest.raises(ValidationError) as exc_info:
            submit_report(enrolled_scholar, "2024-03", installment_number=2)
        assert exc_info.value.field == "installment_number"

    def test_requires_file(self, report_workflow, enrolled_scholar):
        with pytest.raises(ValidationError) as exc_info:
            report_workflow.submit(enrolled_scholar, "2024-03", 3, file_reference="")
        assert exc_info.value.field == "file_reference"

    def test_audited(self, submit_report, auditor_service, enrolled_scholar):
        report = submit_report(enrolled_scholar, "2024-03")

        trace = auditor_service.get_trace(AuditEntityType.REPORT, report.id)
        assert trace.actions == (AuditAction.SUBMIT_REPORT,)
        assert trace.entries[0].actor_id == enrolled_scholar
        assert trace.entries[0].details == {
            "reference_month": "2024-03",
            "installment_number": 3,
            "version": 1,
        }


class TestResubmission:
    def _reject(self, report_workflow, report_id, reviewer_id, feedback="corrigir data"):
        return report_workflow.review(report_id, reviewer_id, ReviewDecision.REJECT, feedback)

    def test_new_version_after_rejection(self, submit_report, report_workflow, enrolled_scholar, test_actor_id):
        first = submit_report(enrolled_scholar, "2024-03")
        self._reject(report_workflow, first.id, test_actor_id)

        second = submit_report(enrolled_scholar, "2024-03")

        assert second.version == 2
        assert second.id != first.id
        versions = report_workflow.list_versions(enrolled_scholar, "2024-03")
        assert [v.version for v in versions] == [2, 1]
        assert [v.status for v in versions] == [ReportStatus.UNDER_REVIEW, ReportStatus.REJECTED]

    def test_file_reference_built_from_allocated_version(
        self, submit_report, report_workflow, enrolled_scholar, test_actor_id,
    ):
        first = submit_report(enrolled_scholar, "2024-03")
        self._reject(report_workflow, first.id, test_actor_id)
        seen = []

        def key_for(version):
            seen.append(version)
            return f"reports/{enrolled_scholar}/2024-03/v{version}.pdf"

        second = submit_report(enrolled_scholar, "2024-03", file_reference=key_for)

        assert seen == [2]
        assert second.version == 2
        assert second.file_reference == f"reports/{enrolled_scholar}/2024-03/v2.pdf"

    def test_key_builder_not_called_when_refused(self, submit_report, enrolled_scholar):
        submit_report(enrolled_scholar, "2024-03")
        seen = []

        with pytest.raises(ReportUnderReviewError):
            submit_report(enrolled_scholar, "2024-03", file_reference=lambda v: seen.append(v) or "k")

        assert seen == []

    def test_one_second_before_deadline_succeeds(
        self, submit_report, report_workflow, enrolled_scholar, test_actor_id, deterministic_clock,
    ):
        first = submit_report(enrolled_scholar, "2024-03")
        review = self._reject(report_workflow, first.id, test_actor_id)
        deadline = review.after.resubmission_deadline

        deterministic_clock.set_time(deadline - timedelta(seconds=1))

        assert submit_report(enrolled_scholar, "2024-03").version == 2

    def test_one_second_after_deadline_fails(
        self, submit_report, report_workflow, enrolled_scholar, test_actor_id, deterministic_clock,
    ):
        first = submit_report(enrolled_scholar, "2024-03")
        review = self._reject(report_workflow, first.id, test_actor_id)
        deadline = review.after.resubmission_deadline

        deterministic_clock.set_time(deadline + timedelta(seconds=1))

        with pytest.raises(DeadlineExpiredError) as exc_info:
            submit_report(enrolled_scholar, "2024-03")
        assert exc_info.value.reference_month == "2024-03"

    def test_deadline_spans_month_change(
        self, submit_report, report_workflow, enrolled_scholar, test_actor_id, deterministic_clock,
    ):
        """Rejected on March 30th, resubmitted on April 3rd: still open."""
        deterministic_clock.advance(days=15)
        report = submit_report(enrolled_scholar, "2024-03")
        self._reject(report_workflow, report.id, test_actor_id)

        deterministic_clock.advance(days=4)

        assert submit_report(enrolled_scholar, "2024-03").version == 2

    def test_expired_deadline_blocks_past_month(
        self, submit_report, report_workflow, enrolled_scholar, test_actor_id, deterministic_clock,
    ):
        """A rejected key follows its deadline even though past months are open."""
        report = submit_report(enrolled_scholar, "2024-01")
        self._reject(report_workflow, report.id, test_actor_id)

        deterministic_clock.advance(days=6)

        with pytest.raises(DeadlineExpiredError):
            submit_report(enrolled_scholar, "2024-01")

    def test_history_preserved(self, submit_report, report_workflow, enrolled_scholar, test_actor_id):
        first = submit_report(enrolled_scholar, "2024-03", file_reference="reports/a/v1.pdf")
        self._reject(report_workflow, first.id, test_actor_id)
        submit_report(enrolled_scholar, "2024-03", file_reference="reports/a/v2.pdf")

        original = report_workflow.get_report(first.id)
        assert original.status == ReportStatus.REJECTED
        assert original.file_reference == "reports/a/v1.pdf"
        assert original.feedback == "corrigir data"


class TestReview:
    def test_approve(self, submit_report, report_workflow, enrolled_scholar, test_actor_id, deterministic_clock):
        report = submit_report(enrolled_scholar, "2024-03")
        deterministic_clock.advance(3600)

        review = report_workflow.review(report.id, test_actor_id, ReviewDecision.APPROVE)

        assert review.before.status == ReportStatus.UNDER_REVIEW
        assert review.after.status == ReportStatus.APPROVED
        assert review.after.reviewed_by == test_actor_id
        assert review.after.reviewed_at == deterministic_clock.now_utc()
        assert review.after.resubmission_deadline is None

    def test_approve_with_optional_feedback(self, submit_report, report_workflow, enrolled_scholar, test_actor_id):
        report = submit_report(enrolled_scholar, "2024-03")
        review = report_workflow.review(report.id, test_actor_id, ReviewDecision.APPROVE, "  otimo  ")
        assert review.after.feedback == "otimo"

    def test_reject_sets_deadline_five_days_out(
        self, submit_report, report_workflow, enrolled_scholar, test_actor_id, deterministic_clock,
    ):
        report = submit_report(enrolled_scholar, "2024-03")

        review = report_workflow.review(report.id, test_actor_id, ReviewDecision.REJECT, "corrigir data")

        assert review.after.status == ReportStatus.REJECTED
        assert review.after.feedback == "corrigir data"
        assert review.after.resubmission_deadline == deterministic_clock.now_utc() + timedelta(days=5)
        assert review.after.resubmission_deadline > review.after.reviewed_at

    @pytest.mark.parametrize("feedback", [None, "", "   "])
    def test_reject_requires_feedback(self, submit_report, report_workflow, enrolled_scholar, test_actor_id, feedback):
        report = submit_report(enrolled_scholar, "2024-03")

        with pytest.raises(FeedbackRequiredError):
            report_workflow.review(report.id, test_actor_id, ReviewDecision.REJECT, feedback)

        assert report_workflow.get_report(report.id).status == ReportStatus.UNDER_REVIEW

    def test_second_review_observes_invalid_state(self, submit_report, report_workflow, enrolled_scholar, test_actor_id):
        report = submit_report(enrolled_scholar, "2024-03")
        report_workflow.review(report.id, test_actor_id, ReviewDecision.APPROVE)

        with pytest.raises(InvalidStateError) as exc_info:
            report_workflow.review(report.id, uuid4(), ReviewDecision.REJECT, "tarde demais")

        assert exc_info.value.current_status == "approved"
        assert report_workflow.get_report(report.id).status == ReportStatus.APPROVED

    def test_unknown_report(self, report_workflow, test_actor_id):
        with pytest.raises(ReportNotFoundError):
            report_workflow.review(uuid4(), test_actor_id, ReviewDecision.APPROVE)

    def test_review_writes_no_audit_on_its_own(self, submit_report, report_workflow, auditor_service, enrolled_scholar, test_actor_id):
        report = submit_report(enrolled_scholar, "2024-03")
        report_workflow.review(report.id, test_actor_id, ReviewDecision.APPROVE)

        trace = auditor_service.get_trace(AuditEntityType.REPORT, report.id)
        assert trace.actions == (AuditAction.SUBMIT_REPORT,)

"""
Lifecycle tables and read-side policies of the pure domain layer.

Every status enum must have an entry in its transition table, so an
unhandled status cannot slip through as a silent no-op.
"""

import pytest

from grant_kernel.domain.bank_account import (
    BANK_TRANSITIONS,
    LOCKED_BANK_STATUSES,
    BankValidationStatus,
    PixKeyType,
    lock_for,
    mask_pix_key,
)
from grant_kernel.domain.enrollment import ENROLLMENT_TRANSITIONS, EnrollmentStatus, GrantModality
from grant_kernel.domain.payment import (
    PAYMENT_TRANSITIONS,
    TERMINAL_PAYMENT_STATUSES,
    PaymentStatus,
    is_amount_locked,
)
from grant_kernel.domain.report import (
    REPORT_TRANSITIONS,
    TERMINAL_REPORT_STATUSES,
    ReportStatus,
    ReviewDecision,
)


class TestTablesAreExhaustive:
    @pytest.mark.parametrize(
        "enum_type, table",
        [
            (ReportStatus, REPORT_TRANSITIONS),
            (PaymentStatus, PAYMENT_TRANSITIONS),
            (BankValidationStatus, BANK_TRANSITIONS),
            (EnrollmentStatus, ENROLLMENT_TRANSITIONS),
        ],
    )
    def test_every_status_has_an_entry(self, enum_type, table):
        assert set(table) == set(enum_type)


class TestReportTransitions:
    def test_under_review_moves_once(self):
        assert REPORT_TRANSITIONS[ReportStatus.UNDER_REVIEW] == {
            ReportStatus.APPROVED,
            ReportStatus.REJECTED,
        }

    def test_reviewed_versions_are_terminal(self):
        for status in TERMINAL_REPORT_STATUSES:
            assert REPORT_TRANSITIONS[status] == frozenset()

    def test_decision_targets(self):
        assert ReviewDecision.APPROVE.target_status == ReportStatus.APPROVED
        assert ReviewDecision.REJECT.target_status == ReportStatus.REJECTED


class TestPaymentTransitions:
    def test_linear_path(self):
        assert PaymentStatus.ELIGIBLE in PAYMENT_TRANSITIONS[PaymentStatus.PENDING]
        assert PaymentStatus.PAID in PAYMENT_TRANSITIONS[PaymentStatus.ELIGIBLE]
        assert PaymentStatus.PAID not in PAYMENT_TRANSITIONS[PaymentStatus.PENDING]

    def test_cancel_reachable_before_payment(self):
        assert PaymentStatus.CANCELLED in PAYMENT_TRANSITIONS[PaymentStatus.PENDING]
        assert PaymentStatus.CANCELLED in PAYMENT_TRANSITIONS[PaymentStatus.ELIGIBLE]

    def test_paid_and_cancelled_are_terminal(self):
        assert TERMINAL_PAYMENT_STATUSES == {PaymentStatus.PAID, PaymentStatus.CANCELLED}
        for status in TERMINAL_PAYMENT_STATUSES:
            assert PAYMENT_TRANSITIONS[status] == frozenset()


class TestAmountMasking:
    @pytest.mark.parametrize(
        "payment_status, report_status, locked",
        [
            (PaymentStatus.PENDING, None, True),
            (PaymentStatus.PENDING, ReportStatus.UNDER_REVIEW, True),
            (PaymentStatus.PENDING, ReportStatus.REJECTED, True),
            (PaymentStatus.PENDING, ReportStatus.APPROVED, False),
            (PaymentStatus.ELIGIBLE, ReportStatus.APPROVED, False),
            (PaymentStatus.PAID, ReportStatus.APPROVED, False),
            (PaymentStatus.CANCELLED, None, False),
        ],
    )
    def test_locked_only_while_pending_without_approval(self, payment_status, report_status, locked):
        assert is_amount_locked(payment_status, report_status) is locked


class TestBankTransitions:
    def test_pending_and_under_review_are_reversible(self):
        assert BankValidationStatus.UNDER_REVIEW in BANK_TRANSITIONS[BankValidationStatus.PENDING]
        assert BankValidationStatus.PENDING in BANK_TRANSITIONS[BankValidationStatus.UNDER_REVIEW]

    def test_returned_only_goes_back_to_review(self):
        assert BANK_TRANSITIONS[BankValidationStatus.RETURNED] == frozenset({BankValidationStatus.UNDER_REVIEW})

    def test_validated_is_terminal(self):
        assert BANK_TRANSITIONS[BankValidationStatus.VALIDATED] == frozenset()

    def test_pending_cannot_be_validated_directly(self):
        assert BankValidationStatus.VALIDATED not in BANK_TRANSITIONS[BankValidationStatus.PENDING]

    @pytest.mark.parametrize("status", list(BankValidationStatus))
    def test_lock_follows_status(self, status):
        assert lock_for(status) is (status in LOCKED_BANK_STATUSES)
        expected = status in (BankValidationStatus.UNDER_REVIEW, BankValidationStatus.VALIDATED)
        assert lock_for(status) is expected


class TestPixMasking:
    def test_email_keeps_first_char_and_domain(self):
        assert mask_pix_key("maria.silva@ufpe.br", PixKeyType.EMAIL) == "m***@ufpe.br"

    def test_email_detected_without_type(self):
        assert mask_pix_key("joao@gmail.com") == "j***@gmail.com"

    def test_cpf_keeps_last_four(self):
        assert mask_pix_key("12345678901", PixKeyType.CPF) == "*******8901"

    def test_short_key_fully_hidden(self):
        assert mask_pix_key("123", PixKeyType.RANDOM) == "***"

    def test_missing_key(self):
        assert mask_pix_key(None) is None
        assert mask_pix_key("") is None


class TestModalities:
    def test_all_grant_modalities(self):
        assert {m.value for m in GrantModality} == {
            "ict", "ext", "ens", "ino", "dct_a", "dct_b", "dct_c",
            "postdoc", "senior", "prod", "visitor",
        }

"""
Pure domain layer.

Value objects, status tables and calendar arithmetic with NO dependencies
on the ORM, the database, the system clock or other I/O.
"""

from grant_kernel.domain.bank_account import (
    BANK_TRANSITIONS,
    AccountType,
    BankAccountFields,
    BankAccountRecord,
    BankValidationStatus,
    PixKeyType,
    mask_pix_key,
)
from grant_kernel.domain.calendar import (
    RESUBMISSION_WINDOW,
    MonthClassification,
    ReportingCalendar,
)
from grant_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from grant_kernel.domain.enrollment import (
    ENROLLMENT_TRANSITIONS,
    EnrollmentRecord,
    EnrollmentStatus,
    GrantModality,
)
from grant_kernel.domain.installment import InstallmentKey, build_schedule
from grant_kernel.domain.payment import (
    PAYMENT_TRANSITIONS,
    PaymentRecord,
    PaymentStatus,
    is_amount_locked,
)
from grant_kernel.domain.ports import AuditSink, AuditWarning, BlobStore, Notifier
from grant_kernel.domain.report import (
    REPORT_TRANSITIONS,
    ReportRecord,
    ReportStatus,
    ReviewDecision,
)

__all__ = [
    "AccountType",
    "AuditSink",
    "AuditWarning",
    "BANK_TRANSITIONS",
    "BankAccountFields",
    "BankAccountRecord",
    "BankValidationStatus",
    "BlobStore",
    "Clock",
    "DeterministicClock",
    "ENROLLMENT_TRANSITIONS",
    "EnrollmentRecord",
    "EnrollmentStatus",
    "GrantModality",
    "InstallmentKey",
    "MonthClassification",
    "Notifier",
    "PAYMENT_TRANSITIONS",
    "PaymentRecord",
    "PaymentStatus",
    "PixKeyType",
    "REPORT_TRANSITIONS",
    "RESUBMISSION_WINDOW",
    "ReportRecord",
    "ReportStatus",
    "ReportingCalendar",
    "ReviewDecision",
    "SystemClock",
    "build_schedule",
    "is_amount_locked",
    "mask_pix_key",
]

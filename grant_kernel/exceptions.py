"""
Typed Exception Hierarchy for the Grant Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected business rule in the disbursement lifecycle is an expected
outcome that the presentation layer must be able to map to a specific,
actionable message.  Callers therefore never parse message strings:

    try:
        workflow.submit(...)
    except DeadlineExpiredError as e:
        show_deadline_banner(e.deadline)          # Structured data
        api_response(code=e.code)                 # Machine-readable

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (ids, statuses, deadlines)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from GrantKernelError:

    GrantKernelError (base)
    |
    +-- NotFoundError
    |   +-- EnrollmentNotFoundError
    |   +-- ReportNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- BankAccountNotFoundError
    |
    +-- InvalidStateError
    |
    +-- InvalidTransitionError
    |
    +-- ConflictError
    |   +-- ReportUnderReviewError
    |   +-- ReportAlreadyApprovedError
    |   +-- ActiveEnrollmentExistsError
    |   +-- InstallmentOverlapError
    |
    +-- OutOfWindowError
    |
    +-- DeadlineExpiredError
    |
    +-- LockedError
    |   +-- BankAccountLockedError
    |
    +-- ValidationError
    |   +-- FeedbackRequiredError
    |   +-- NotesRequiredError
    |   +-- InvalidDateRangeError
    |   +-- InvalidReferenceMonthError
    |   +-- InvalidAttachmentError
    |
    +-- PartialFailureError
    |
    +-- AuditError
    |   +-- AuditWriteError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|----------------------------------
NotFound        | ENROLLMENT_NOT_FOUND          | Enrollment id doesn't exist
                | REPORT_NOT_FOUND              | Report id doesn't exist
                | PAYMENT_NOT_FOUND             | No payment for id / installment key
                | BANK_ACCOUNT_NOT_FOUND        | Bank account id doesn't exist
----------------|-------------------------------|----------------------------------
State           | INVALID_STATE                 | Operation not valid from status
                | INVALID_TRANSITION            | Move not in a transition table
----------------|-------------------------------|----------------------------------
Conflict        | REPORT_UNDER_REVIEW           | A version is already in review
                | REPORT_ALREADY_APPROVED       | Installment already satisfied
                | SCHOLAR_HAS_ACTIVE_ENROLLMENT | Second active enrollment
                | INSTALLMENT_OVERLAP           | Months already scheduled
----------------|-------------------------------|----------------------------------
Window          | OUT_OF_WINDOW                 | Report for a future month
                | DEADLINE_EXPIRED              | Resubmission after deadline
----------------|-------------------------------|----------------------------------
Lock            | BANK_ACCOUNT_LOCKED           | Scholar edit while locked
----------------|-------------------------------|----------------------------------
Validation      | FEEDBACK_REQUIRED             | Reject without feedback
                | NOTES_REQUIRED                | Return without notes
                | INVALID_DATE_RANGE            | End date not after start date
                | INVALID_REFERENCE_MONTH       | Not a YYYY-MM string
                | INVALID_ATTACHMENT            | File type or size refused
----------------|-------------------------------|----------------------------------
Orchestration   | PARTIAL_FAILURE               | Report/payment pair rolled back
----------------|-------------------------------|----------------------------------
Audit           | AUDIT_WRITE_FAILED            | Audit row could not be written
                | AUDIT_CHAIN_BROKEN            | Hash chain validation failed
                | IMMUTABILITY_VIOLATION        | Append-only data was modified
"""

from datetime import datetime
from uuid import UUID


class GrantKernelError(Exception):
    """Base exception for all grant kernel errors."""

    code: str = "GRANT_KERNEL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# Not found errors


class NotFoundError(GrantKernelError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: UUID | str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class EnrollmentNotFoundError(NotFoundError):
    code: str = "ENROLLMENT_NOT_FOUND"
    entity_type: str = "enrollment"


class ReportNotFoundError(NotFoundError):
    code: str = "REPORT_NOT_FOUND"
    entity_type: str = "report"


class PaymentNotFoundError(NotFoundError):
    """No payment for an id, or for an installment key ``user:YYYY-MM``."""

    code: str = "PAYMENT_NOT_FOUND"
    entity_type: str = "payment"


class BankAccountNotFoundError(NotFoundError):
    code: str = "BANK_ACCOUNT_NOT_FOUND"
    entity_type: str = "bank_account"


# State errors


class InvalidStateError(GrantKernelError):
    """Operation is not valid from the entity's current status.

    Covers double approval, double payment and receipts on unpaid rows.
    """

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID | str,
        current_status: str,
        operation: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id}: "
            f"status is '{current_status}'"
        )


class InvalidTransitionError(GrantKernelError):
    """Requested move is not in the entity's transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID | str,
        from_status: str,
        to_status: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {entity_type} transition for {entity_id}: "
            f"'{from_status}' -> '{to_status}'"
        )


# Conflict errors


class ConflictError(GrantKernelError):
    """Request collides with an existing in-flight or completed record."""

    code: str = "CONFLICT"


class ReportUnderReviewError(ConflictError):
    """A version for the installment is already awaiting review."""

    code: str = "REPORT_UNDER_REVIEW"

    def __init__(self, user_id: UUID, reference_month: str, report_id: UUID | None = None):
        self.user_id = str(user_id)
        self.reference_month = reference_month
        self.report_id = str(report_id) if report_id else None
        super().__init__(
            f"Report for {reference_month} is already under review"
        )


class ReportAlreadyApprovedError(ConflictError):
    """The installment already has an approved report."""

    code: str = "REPORT_ALREADY_APPROVED"

    def __init__(self, user_id: UUID, reference_month: str, report_id: UUID):
        self.user_id = str(user_id)
        self.reference_month = reference_month
        self.report_id = str(report_id)
        super().__init__(
            f"Report for {reference_month} is already approved"
        )


class ActiveEnrollmentExistsError(ConflictError):
    code: str = "SCHOLAR_HAS_ACTIVE_ENROLLMENT"

    def __init__(self, user_id: UUID, enrollment_id: UUID):
        self.user_id = str(user_id)
        self.enrollment_id = str(enrollment_id)
        super().__init__(
            f"Scholar {user_id} already has active enrollment {enrollment_id}"
        )


class InstallmentOverlapError(ConflictError):
    code: str = "INSTALLMENT_OVERLAP"

    def __init__(self, user_id: UUID, reference_months: list[str]):
        self.user_id = str(user_id)
        self.reference_months = reference_months
        super().__init__(
            f"Scholar {user_id} already has installments for "
            f"{', '.join(reference_months)}"
        )


# Window errors


class OutOfWindowError(GrantKernelError):
    """Report submitted for a month that has not started yet."""

    code: str = "OUT_OF_WINDOW"

    def __init__(self, reference_month: str, current_month: str):
        self.reference_month = reference_month
        self.current_month = current_month
        super().__init__(
            f"Reference month {reference_month} is in the future "
            f"(current month is {current_month})"
        )


class DeadlineExpiredError(GrantKernelError):
    """Resubmission attempted after the rejection deadline."""

    code: str = "DEADLINE_EXPIRED"

    def __init__(self, reference_month: str, deadline: datetime, attempted_at: datetime):
        self.reference_month = reference_month
        self.deadline = deadline
        self.attempted_at = attempted_at
        super().__init__(
            f"Resubmission deadline for {reference_month} expired at "
            f"{deadline.isoformat()}"
        )


# Lock errors


class LockedError(GrantKernelError):
    code: str = "LOCKED"


class BankAccountLockedError(LockedError):
    """Scholar attempted to edit bank data while it is locked for review."""

    code: str = "BANK_ACCOUNT_LOCKED"

    def __init__(self, account_id: UUID, validation_status: str):
        self.account_id = str(account_id)
        self.validation_status = validation_status
        super().__init__(
            f"Bank account {account_id} is locked for edit "
            f"(status '{validation_status}')"
        )


# Validation errors


class ValidationError(GrantKernelError):
    """A required input is missing or malformed."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class FeedbackRequiredError(ValidationError):
    code: str = "FEEDBACK_REQUIRED"

    def __init__(self, report_id: UUID):
        self.report_id = str(report_id)
        super().__init__("Feedback is required to reject a report", field="feedback")


class NotesRequiredError(ValidationError):
    code: str = "NOTES_REQUIRED"

    def __init__(self, account_id: UUID):
        self.account_id = str(account_id)
        super().__init__("Notes are required to return bank data", field="notes")


class InvalidDateRangeError(ValidationError):
    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start: object, end: object):
        self.start = str(start)
        self.end = str(end)
        super().__init__(
            f"End date {end} must be after start date {start}", field="end_date"
        )


class InvalidReferenceMonthError(ValidationError):
    code: str = "INVALID_REFERENCE_MONTH"

    def __init__(self, value: object):
        self.value = repr(value)
        super().__init__(
            f"Reference month must be a YYYY-MM string, got {value!r}",
            field="reference_month",
        )


class InvalidAttachmentError(ValidationError):
    """Uploaded file refused by type or size policy."""

    code: str = "INVALID_ATTACHMENT"

    def __init__(self, file_name: str, reason: str):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"File '{file_name}' rejected: {reason}", field="file")


# Orchestration errors


class PartialFailureError(GrantKernelError):
    """Review decision could not be applied to report and payment together.

    Raised after the partial work has been rolled back; neither row changed.
    """

    code: str = "PARTIAL_FAILURE"

    def __init__(self, report_id: UUID, cause: GrantKernelError):
        self.report_id = str(report_id)
        self.cause_code = cause.code
        super().__init__(
            f"Review of report {report_id} rolled back: {cause.message}"
        )


# Audit errors


class AuditError(GrantKernelError):
    code: str = "AUDIT_ERROR"


class AuditWriteError(AuditError):
    """Audit row could not be persisted."""

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, action: str, entity_type: str, entity_id: UUID, reason: str):
        self.action = action
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Audit record '{action}' for {entity_type} {entity_id} failed: {reason}"
        )


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: "
            f"expected {expected_hash[:16]}..., got {actual_hash[:16]}..."
        )


class ImmutabilityViolationError(GrantKernelError):
    """Attempted change to append-only or superseded data."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )

"""Services for the grant kernel (write side)."""

from grant_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from grant_kernel.services.bank_account_validator import BankAccountValidator
from grant_kernel.services.disbursement_orchestrator import DisbursementOrchestrator, ReviewOutcome
from grant_kernel.services.enrollment_service import EnrollmentService
from grant_kernel.services.payment_settlement import PaymentSettlementService, PaymentTransition
from grant_kernel.services.report_workflow import ReportReview, ReportWorkflowService
from grant_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "BankAccountValidator",
    "DisbursementOrchestrator",
    "EnrollmentService",
    "PaymentSettlementService",
    "PaymentTransition",
    "ReportReview",
    "ReportWorkflowService",
    "ReviewOutcome",
    "SequenceService",
]

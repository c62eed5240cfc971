"""ORM models for the grant kernel."""

from grant_kernel.models.audit_event import AuditAction, AuditEntityType, AuditEvent
from grant_kernel.models.bank_account import BankAccount
from grant_kernel.models.enrollment import Enrollment
from grant_kernel.models.payment import Payment
from grant_kernel.models.report import Report

__all__ = [
    "AuditAction",
    "AuditEntityType",
    "AuditEvent",
    "BankAccount",
    "Enrollment",
    "Payment",
    "Report",
]

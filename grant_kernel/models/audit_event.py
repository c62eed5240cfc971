"""
Module: grant_kernel.models.audit_event
Responsibility: Append-only, hash-chained audit rows for every state change
    in the disbursement lifecycle.
Architecture position: Kernel > Models.  May import from db/base.py.

Invariants enforced:
    - Append-only: UPDATE and DELETE through the ORM raise
      ImmutabilityViolationError.
    - seq is unique and monotonically increasing.
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      computed by AuditorService.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from grant_kernel.db.base import Base, UUIDString
from grant_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Types of auditable actions.

    Every state-changing operation maps to exactly one member.
    """

    # Enrollment lifecycle
    ASSIGN_SCHOLAR_TO_PROJECT = "assign_scholar_to_project"
    CHANGE_ENROLLMENT_STATUS = "change_enrollment_status"

    # Report lifecycle
    SUBMIT_REPORT = "submit_report"
    APPROVE_REPORT = "approve_report"
    REJECT_REPORT = "reject_report"
    REVIEW_DECISION_FAILED = "review_decision_failed"

    # Payment lifecycle
    MARK_PAYMENT_PAID = "mark_payment_paid"
    ATTACH_PAYMENT_RECEIPT = "attach_payment_receipt"
    CANCEL_PAYMENT = "cancel_payment"

    # Bank data lifecycle
    BANK_DATA_SUBMITTED = "bank_data_submitted"
    BANK_DATA_UNDER_REVIEW = "bank_data_under_review"
    BANK_DATA_REVIEW_RELEASED = "bank_data_review_released"
    BANK_DATA_VALIDATED = "bank_data_validated"
    BANK_DATA_RETURNED = "bank_data_returned"


class AuditEntityType(str, Enum):
    ENROLLMENT = "enrollment"
    PAYMENT = "payment"
    REPORT = "report"
    BANK_ACCOUNT = "bank_account"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Contract:
        Rows are append-only.  previous_value / new_value hold JSON
        snapshots of the entity (or entities) before and after the action.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    previous_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    @property
    def payload(self) -> dict:
        """The hashed portion of the row."""
        return {
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "details": self.details,
        }


@event.listens_for(AuditEvent, "before_update")
def _forbid_audit_update(mapper, connection, target: AuditEvent) -> None:
    raise ImmutabilityViolationError("audit_event", str(target.id), "audit rows are append-only")


@event.listens_for(AuditEvent, "before_delete")
def _forbid_audit_delete(mapper, connection, target: AuditEvent) -> None:
    raise ImmutabilityViolationError("audit_event", str(target.id), "audit rows are append-only")

"""
Module: grant_kernel.models.bank_account
Responsibility: ORM persistence for scholar bank data and its validation state.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - One bank account per scholar (unique user_id).
    - locked_for_edit agrees with validation_status (check constraint).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from grant_kernel.db.base import TrackedBase, UUIDString
from grant_kernel.domain.bank_account import (
    AccountType,
    BankAccountRecord,
    BankValidationStatus,
    PixKeyType,
    mask_pix_key,
)


class BankAccount(TrackedBase):
    """Bank data a scholar's payments are disbursed to."""

    __tablename__ = "bank_accounts"

    __table_args__ = (
        CheckConstraint(
            "validation_status IN ('pending', 'under_review', 'validated', 'returned')",
            name="ck_bank_accounts_valid_status",
        ),
        CheckConstraint(
            "(validation_status IN ('under_review', 'validated') AND locked_for_edit) "
            "OR (validation_status IN ('pending', 'returned') AND NOT locked_for_edit)",
            name="ck_bank_accounts_lock_matches_status",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    bank_code: Mapped[str] = mapped_column(String(10), nullable=False)
    agency: Mapped[str] = mapped_column(String(20), nullable=False)
    account_number: Mapped[str] = mapped_column(String(30), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False, default="checking")
    pix_key_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pix_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    validation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    locked_for_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    validated_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes_gestor: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<BankAccount {self.id} user={self.user_id} "
            f"status={self.validation_status} locked={self.locked_for_edit}>"
        )

    def to_dto(self) -> BankAccountRecord:
        pix_type = PixKeyType(self.pix_key_type) if self.pix_key_type else None
        return BankAccountRecord(
            id=self.id,
            user_id=self.user_id,
            bank_name=self.bank_name,
            bank_code=self.bank_code,
            agency=self.agency,
            account_number=self.account_number,
            account_type=AccountType(self.account_type),
            validation_status=BankValidationStatus(self.validation_status),
            locked_for_edit=self.locked_for_edit,
            pix_key_type=pix_type,
            pix_key_masked=mask_pix_key(self.pix_key, pix_type),
            validated_by=self.validated_by,
            validated_at=self.validated_at,
            notes_gestor=self.notes_gestor,
        )

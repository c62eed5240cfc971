"""
Bank account domain types (``grant_kernel.domain.bank_account``).

Responsibility
--------------
Pure value objects for the bank-data validation workflow: status table,
the edit-lock rule derived from status, submitted field sets and Pix key
masking.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``locked_for_edit`` is a function of status: locked while
  ``under_review`` or ``validated``, unlocked while ``pending`` or
  ``returned``.
* Only manager moves listed in ``BANK_TRANSITIONS`` are legal; a
  ``returned`` account reaches ``pending`` only by resubmission.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class BankValidationStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    VALIDATED = "validated"
    RETURNED = "returned"


BANK_TRANSITIONS: dict[BankValidationStatus, frozenset[BankValidationStatus]] = {
    BankValidationStatus.PENDING: frozenset({
        BankValidationStatus.UNDER_REVIEW,
    }),
    BankValidationStatus.UNDER_REVIEW: frozenset({
        BankValidationStatus.PENDING,
        BankValidationStatus.VALIDATED,
        BankValidationStatus.RETURNED,
    }),
    # returned -> pending only through the scholar resubmitting (submit).
    BankValidationStatus.RETURNED: frozenset({
        BankValidationStatus.UNDER_REVIEW,
    }),
    BankValidationStatus.VALIDATED: frozenset(),
}

LOCKED_BANK_STATUSES: frozenset[BankValidationStatus] = frozenset({
    BankValidationStatus.UNDER_REVIEW,
    BankValidationStatus.VALIDATED,
})

# Status shown to a scholar who has never submitted bank data.
NOT_FILLED = "not_filled"


def lock_for(status: BankValidationStatus) -> bool:
    return status in LOCKED_BANK_STATUSES


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"


class PixKeyType(str, Enum):
    CPF = "cpf"
    CNPJ = "cnpj"
    EMAIL = "email"
    PHONE = "phone"
    RANDOM = "random"


def mask_pix_key(pix_key: str | None, key_type: PixKeyType | None = None) -> str | None:
    """Hide a Pix key for display.

    E-mail keys keep their first character and domain; every other key
    keeps only its last four characters.
    """
    if not pix_key:
        return None
    if key_type == PixKeyType.EMAIL or (key_type is None and "@" in pix_key):
        local, _, domain = pix_key.partition("@")
        return f"{local[:1]}***@{domain}"
    if len(pix_key) <= 4:
        return "*" * len(pix_key)
    return "*" * (len(pix_key) - 4) + pix_key[-4:]


@dataclass(frozen=True)
class BankAccountFields:
    """Bank data a scholar submits for validation."""

    bank_name: str
    bank_code: str
    agency: str
    account_number: str
    account_type: AccountType = AccountType.CHECKING
    pix_key_type: PixKeyType | None = None
    pix_key: str | None = None


@dataclass(frozen=True)
class BankAccountRecord:
    """Immutable view of a persisted bank account (Pix key masked)."""

    id: UUID
    user_id: UUID
    bank_name: str
    bank_code: str
    agency: str
    account_number: str
    account_type: AccountType
    validation_status: BankValidationStatus
    locked_for_edit: bool
    pix_key_type: PixKeyType | None = None
    pix_key_masked: str | None = None
    validated_by: UUID | None = None
    validated_at: datetime | None = None
    notes_gestor: str | None = None

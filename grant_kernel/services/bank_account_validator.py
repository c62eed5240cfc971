"""
BankAccountValidator -- bank data submission, review and edit locking.

Responsibility:
    Owns the validation state machine of a scholar's bank account and the
    ``locked_for_edit`` flag derived from it.

Architecture position:
    Kernel > Services.  Writes ONLY ``bank_accounts`` rows.  Independent
    of reports and payments; payment settlement only consults it through
    the advisory check.

Invariants enforced:
    - Transitions follow BANK_TRANSITIONS; anything else raises
      InvalidTransitionError.
    - locked_for_edit is set from the target status on every move
      (locked in under_review / validated, unlocked otherwise).
    - A scholar cannot change bank fields while locked.
    - Status moves are compare-and-swap updates.

Failure modes:
    - BankAccountNotFoundError, BankAccountLockedError,
      InvalidTransitionError, NotesRequiredError.

Audit relevance:
    Every operation writes one audit entry with masked before/after
    snapshots (the raw Pix key never enters the audit log).
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select

from grant_kernel.domain.bank_account import (
    BANK_TRANSITIONS,
    NOT_FILLED,
    BankAccountFields,
    BankAccountRecord,
    BankValidationStatus,
    lock_for,
)
from grant_kernel.exceptions import (
    BankAccountLockedError,
    BankAccountNotFoundError,
    InvalidTransitionError,
    NotesRequiredError,
    ValidationError,
)
from grant_kernel.logging_config import get_logger
from grant_kernel.models.audit_event import AuditAction, AuditEntityType
from grant_kernel.models.bank_account import BankAccount
from grant_kernel.services.base import BaseService, snapshot

logger = get_logger("services.bank_account_validator")

ADVISORY_BANK_ACCOUNT_MISSING = "bank_account_missing"
ADVISORY_BANK_ACCOUNT_NOT_VALIDATED = "bank_account_not_validated"

_REQUIRED_FIELDS = ("bank_name", "bank_code", "agency", "account_number")


class BankAccountValidator(BaseService[BankAccount]):
    """
    Bank data validation workflow.

    Contract:
        Scholars call ``submit``; managers call ``begin_review``,
        ``release_review``, ``validate`` and ``return_for_correction``.
    """

    model = BankAccount
    not_found = BankAccountNotFoundError
    status_column = "validation_status"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _find_by_user(self, user_id: UUID, *, for_update: bool = False) -> BankAccount | None:
        stmt = select(BankAccount).where(BankAccount.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_for_user(self, user_id: UUID) -> BankAccountRecord | None:
        row = self._find_by_user(user_id)
        return row.to_dto() if row else None

    def status_for_user(self, user_id: UUID) -> str:
        """Validation status as shown to the scholar; ``not_filled`` if absent."""
        row = self._find_by_user(user_id)
        if row is None:
            return NOT_FILLED
        return BankValidationStatus(row.validation_status).value

    def disbursement_advisory(self, user_id: UUID) -> str | None:
        """
        Advisory code when a payment to ``user_id`` is not safe to disburse.

        Never blocks settlement; callers surface it to operators.
        """
        row = self._find_by_user(user_id)
        if row is None:
            return ADVISORY_BANK_ACCOUNT_MISSING
        if row.validation_status != BankValidationStatus.VALIDATED.value:
            return ADVISORY_BANK_ACCOUNT_NOT_VALIDATED
        return None

    # ------------------------------------------------------------------
    # Scholar side
    # ------------------------------------------------------------------

    def submit(self, user_id: UUID, fields: BankAccountFields) -> BankAccountRecord:
        """
        Create or update the scholar's bank data.

        A resubmission after ``returned`` moves the account back to
        ``pending``.

        Raises:
            BankAccountLockedError: account is under review or validated.
            ValidationError: a required bank field is blank.
        """
        for name in _REQUIRED_FIELDS:
            if not str(getattr(fields, name) or "").strip():
                raise ValidationError(f"{name} is required", field=name)

        values: dict[str, Any] = {
            "bank_name": fields.bank_name.strip(),
            "bank_code": fields.bank_code.strip(),
            "agency": fields.agency.strip(),
            "account_number": fields.account_number.strip(),
            "account_type": fields.account_type.value,
            "pix_key_type": fields.pix_key_type.value if fields.pix_key_type else None,
            "pix_key": fields.pix_key.strip() if fields.pix_key else None,
        }

        row = self._find_by_user(user_id, for_update=True)
        if row is None:
            row = BankAccount(
                user_id=user_id,
                validation_status=BankValidationStatus.PENDING.value,
                locked_for_edit=False,
                created_by_id=user_id,
                **values,
            )
            self._session.add(row)
            self._session.flush()
            before = None
        else:
            before = row.to_dto()
            if row.locked_for_edit:
                raise BankAccountLockedError(row.id, row.validation_status)

            status = BankValidationStatus(row.validation_status)
            if status == BankValidationStatus.RETURNED:
                values["validation_status"] = BankValidationStatus.PENDING.value
            values["locked_for_edit"] = False
            values["updated_by_id"] = user_id
            if not self._compare_and_set(row.id, status.value, values):
                current = self._load(row.id)
                raise BankAccountLockedError(current.id, current.validation_status)

        after = self._load(row.id).to_dto()
        self._auditor.record(
            actor_id=user_id,
            action=AuditAction.BANK_DATA_SUBMITTED,
            entity_type=AuditEntityType.BANK_ACCOUNT,
            entity_id=after.id,
            previous_value=snapshot(before),
            new_value=snapshot(after),
            details={"resubmission": before is not None},
        )
        logger.info(
            "bank_data_submitted",
            extra={
                "account_id": str(after.id),
                "user_id": str(user_id),
                "validation_status": after.validation_status.value,
            },
        )
        return after

    # ------------------------------------------------------------------
    # Manager side
    # ------------------------------------------------------------------

    def _move(
        self,
        account_id: UUID,
        actor_id: UUID,
        to_status: BankValidationStatus,
        action: AuditAction,
        extra_values: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> BankAccountRecord:
        before = self._load(account_id).to_dto()
        from_status = before.validation_status
        if to_status not in BANK_TRANSITIONS[from_status]:
            raise InvalidTransitionError("bank_account", account_id, from_status.value, to_status.value)

        values = {
            "validation_status": to_status.value,
            "locked_for_edit": lock_for(to_status),
            "updated_by_id": actor_id,
            **(extra_values or {}),
        }
        if not self._compare_and_set(account_id, from_status.value, values):
            current = self._load(account_id)
            raise InvalidTransitionError(
                "bank_account", account_id, current.validation_status, to_status.value,
            )

        after = self._load(account_id).to_dto()
        self._auditor.record(
            actor_id=actor_id,
            action=action,
            entity_type=AuditEntityType.BANK_ACCOUNT,
            entity_id=account_id,
            previous_value=snapshot(before),
            new_value=snapshot(after),
            details=details,
        )
        logger.info(
            "bank_validation_status_changed",
            extra={
                "account_id": str(account_id),
                "from_status": from_status.value,
                "to_status": to_status.value,
                "locked_for_edit": after.locked_for_edit,
            },
        )
        return after

    def begin_review(self, account_id: UUID, actor_id: UUID) -> BankAccountRecord:
        """``pending | returned -> under_review``; locks the account."""
        return self._move(
            account_id, actor_id,
            BankValidationStatus.UNDER_REVIEW,
            AuditAction.BANK_DATA_UNDER_REVIEW,
        )

    def release_review(self, account_id: UUID, actor_id: UUID) -> BankAccountRecord:
        """``under_review -> pending``; unlocks without a verdict."""
        return self._move(
            account_id, actor_id,
            BankValidationStatus.PENDING,
            AuditAction.BANK_DATA_REVIEW_RELEASED,
        )

    def validate(self, account_id: UUID, validator_id: UUID) -> BankAccountRecord:
        """``under_review -> validated``; stays locked."""
        now = self._clock.now_utc()
        return self._move(
            account_id, validator_id,
            BankValidationStatus.VALIDATED,
            AuditAction.BANK_DATA_VALIDATED,
            extra_values={"validated_by": validator_id, "validated_at": now},
            details={"validated_at": now},
        )

    def return_for_correction(
        self,
        account_id: UUID,
        actor_id: UUID,
        notes: str,
    ) -> BankAccountRecord:
        """``under_review -> returned`` with manager notes; unlocks.

        Raises:
            NotesRequiredError: notes blank.
        """
        notes = notes.strip() if notes else ""
        if not notes:
            raise NotesRequiredError(account_id)
        return self._move(
            account_id, actor_id,
            BankValidationStatus.RETURNED,
            AuditAction.BANK_DATA_RETURNED,
            extra_values={"notes_gestor": notes},
            details={"notes": notes},
        )

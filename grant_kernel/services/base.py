"""
BaseService -- abstract base for the grant kernel write services.

Responsibility:
    Common constructor (session, auditor, clock) and the two persistence
    moves every lifecycle service relies on: loading a row by id under a
    row lock, and the compare-and-swap status update.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back the outer transaction.
    - Status changes are conditional UPDATEs (``WHERE status = :expected``),
      never read-then-write, so two concurrent callers cannot both move a
      row out of the same status.

Failure modes:
    - ``_compare_and_set`` returns False when the row is no longer in the
      expected status; the subclass decides which typed error to raise.
"""

from abc import ABC
from dataclasses import asdict
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from grant_kernel.db.base import Base
from grant_kernel.domain.clock import Clock, SystemClock
from grant_kernel.exceptions import NotFoundError
from grant_kernel.services.auditor_service import AuditorService

ModelType = TypeVar("ModelType", bound=Base)


def snapshot(record: Any) -> dict[str, Any] | None:
    """Audit snapshot of a frozen record (``None`` passes through)."""
    if record is None:
        return None
    return asdict(record)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for lifecycle services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those belong in ``selectors/``.
    """

    model: type[ModelType]
    not_found: type[NotFoundError]
    status_column: str = "status"

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def _load(self, entity_id: UUID, *, for_update: bool = False) -> ModelType:
        stmt = select(self.model).where(self.model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise self.not_found(entity_id)
        return row

    def _compare_and_set(
        self,
        entity_id: UUID,
        expected_status: str,
        values: dict[str, Any],
    ) -> bool:
        """Apply ``values`` only if the row is still in ``expected_status``."""
        status_attr = getattr(self.model, self.status_column)
        result = self._session.execute(
            update(self.model)
            .where(self.model.id == entity_id, status_attr == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

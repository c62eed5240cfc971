"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Records one append-only, hash-chained audit row per state-changing
    operation, with JSON snapshots of the entity before and after.
    Provides chain validation for tamper detection and per-entity traces.

Architecture position:
    Kernel > Services -- the database-backed ``AuditSink``.  Called by
    every write service; never calls them back.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never MAX()+1).
    - Chain integrity: ``hash = H(entity_type, entity_id, action,
      payload_hash, prev_hash)``.
    - Audit failure isolation: each row is written inside its own
      SAVEPOINT.  A failed write rolls back only the savepoint, so the
      caller's primary mutation survives; the failure is logged and kept
      as an ``AuditWarning`` for the caller to surface.

Failure modes:
    - AuditChainBrokenError from ``validate_chain()``.
    - Write failures never raise from ``record()``; they become warnings.

Audit relevance:
    This IS the audit service.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from grant_kernel.domain.clock import Clock, SystemClock
from grant_kernel.domain.ports import AuditWarning
from grant_kernel.exceptions import AuditChainBrokenError, AuditWriteError
from grant_kernel.logging_config import get_logger
from grant_kernel.models.audit_event import AuditAction, AuditEntityType, AuditEvent
from grant_kernel.services.sequence_service import SequenceService
from grant_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    previous_value: dict[str, Any] | None
    new_value: dict[str, Any] | None
    details: dict[str, Any] | None
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """Complete audit trace for an entity, in chronological order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Database-backed audit sink with hash chain linkage.

    Contract:
        ``record()`` is called exactly once per state-changing operation.
        It returns the persisted ``AuditEvent``, or ``None`` when the write
        failed; failures are retrievable through ``drain_warnings()``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)
        self._warnings: list[AuditWarning] = []

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: AuditEntityType,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        previous_value: dict[str, Any] | None,
        new_value: dict[str, Any] | None,
        details: dict[str, Any] | None,
    ) -> AuditEvent:
        """
        Create and flush one audit row linked to its predecessor.

        Raises:
            SQLAlchemyError: if the row cannot be written.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload = {
            "previous_value": to_json_safe(previous_value),
            "new_value": to_json_safe(new_value),
            "details": to_json_safe(details),
        }
        payload_hash = hash_payload(payload)
        event_hash = hash_audit_event(
            entity_type=entity_type.value,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type.value,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now_utc(),
            previous_value=payload["previous_value"],
            new_value=payload["new_value"],
            details=payload["details"],
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    def record(
        self,
        actor_id: UUID,
        action: AuditAction | str,
        entity_type: AuditEntityType | str,
        entity_id: UUID,
        previous_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent | None:
        """
        Append one audit row inside its own savepoint.

        Postconditions:
            - On success the row is flushed and returned.
            - On failure the savepoint is rolled back, the error is logged
              at WARNING and an ``AuditWarning`` is queued; the caller's
              transaction is otherwise untouched.
        """
        action = AuditAction(action)
        entity_type = AuditEntityType(entity_type)
        try:
            with self._session.begin_nested():
                return self._create_audit_event(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    action=action,
                    actor_id=actor_id,
                    previous_value=previous_value,
                    new_value=new_value,
                    details=details,
                )
        except SQLAlchemyError as exc:
            error = AuditWriteError(action.value, entity_type.value, entity_id, str(exc))
            logger.warning(
                "audit_write_failed",
                exc_info=error,
                extra={
                    "action": action.value,
                    "entity_type": entity_type.value,
                    "entity_id": str(entity_id),
                },
            )
            self._warnings.append(
                AuditWarning(
                    action=action.value,
                    entity_type=entity_type.value,
                    entity_id=str(entity_id),
                    error_code=error.code,
                    message=error.message,
                )
            )
            return None

    @property
    def warnings(self) -> tuple[AuditWarning, ...]:
        return tuple(self._warnings)

    def drain_warnings(self) -> tuple[AuditWarning, ...]:
        """Return and clear the queued audit warnings."""
        drained = tuple(self._warnings)
        self._warnings.clear()
        return drained

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: at the first row whose stored hash or
                predecessor link does not match.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for event in events:
            if event.prev_hash != prev_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(event.seq, prev_hash or "GENESIS", event.prev_hash or "GENESIS")

            recomputed_payload_hash = hash_payload(event.payload)
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=recomputed_payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash or event.payload_hash != recomputed_payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(event.seq, expected_hash, event.hash)
            prev_hash = event.hash

        return True

    def get_trace(
        self,
        entity_type: AuditEntityType | str,
        entity_id: UUID,
    ) -> AuditTrace:
        entity_type = AuditEntityType(entity_type)
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type.value,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type.value,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=AuditAction(event.action),
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    previous_value=event.previous_value,
                    new_value=event.new_value,
                    details=event.details,
                    hash=event.hash,
                )
                for event in events
            ),
        )

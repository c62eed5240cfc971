"""
Collaborator protocols (``grant_kernel.domain.ports``).

Responsibility
--------------
Narrow interfaces for the systems the disbursement engine consumes but
does not implement: byte storage, the audit sink and user notification.
Structural typing (``typing.Protocol``) lets any adapter satisfy them
without inheriting from kernel classes.

Architecture position
---------------------
**Kernel domain layer** -- interface declarations only.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class BlobStore(Protocol):
    """Store bytes under a key, read them back, hand out temporary URLs.

    Contract:
        ``put`` overwrites an existing key and returns the key.  The engine
        never interprets stored bytes.
    """

    def put(self, key: str, data: bytes, content_type: str | None = None) -> str: ...

    def get(self, key: str) -> bytes: ...

    def signed_url(self, key: str, ttl_seconds: int) -> str: ...


@runtime_checkable
class AuditSink(Protocol):
    """Append-only record of state-changing actions."""

    def record(
        self,
        actor_id: UUID,
        action: str,
        entity_type: str,
        entity_id: UUID,
        previous_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget user notification.

    Delivery, retries and templates are owned by the implementation.
    """

    def notify(self, user_id: UUID, template_key: str, data: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class AuditWarning:
    """An audit record that could not be written.

    Reported next to a successful primary result; never a failure of it.
    """

    action: str
    entity_type: str
    entity_id: str
    error_code: str
    message: str

"""
In-process adapters for the BlobStore and Notifier ports.

Used by tests and local runs.  Both satisfy the runtime-checkable
protocols in ``grant_kernel.domain.ports``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from grant_kernel.logging_config import get_logger

logger = get_logger("adapters.in_memory")


@dataclass(frozen=True)
class StoredBlob:
    data: bytes
    content_type: str | None = None


class InMemoryBlobStore:
    """Dict-backed blob store; ``signed_url`` returns a ``memory://`` URL."""

    def __init__(self) -> None:
        self._blobs: dict[str, StoredBlob] = {}

    def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        self._blobs[key] = StoredBlob(data=bytes(data), content_type=content_type)
        logger.debug("blob_stored", extra={"key": key, "size": len(data)})
        return key

    def get(self, key: str) -> bytes:
        return self._blobs[key].data

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        if key not in self._blobs:
            raise KeyError(key)
        return f"memory://{key}?ttl={ttl_seconds}"

    def content_type(self, key: str) -> str | None:
        return self._blobs[key].content_type

    def __contains__(self, key: str) -> bool:
        return key in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


@dataclass(frozen=True)
class SentNotification:
    user_id: UUID
    template_key: str
    data: dict[str, Any] = field(default_factory=dict)


class RecordingNotifier:
    """Notifier that keeps every call for later inspection."""

    def __init__(self) -> None:
        self.sent: list[SentNotification] = []

    def notify(self, user_id: UUID, template_key: str, data: dict[str, Any]) -> None:
        self.sent.append(SentNotification(user_id, template_key, dict(data)))

    def templates_for(self, user_id: UUID) -> list[str]:
        return [n.template_key for n in self.sent if n.user_id == user_id]

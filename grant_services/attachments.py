"""
Uploaded file checks and storage keys.

Files are validated against the configured ``AttachmentPolicy`` before
any storage call, and stored under deterministic keys so a report
version or a payment receipt can always be located from its row.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from uuid import UUID

from grant_config.schema import AttachmentPolicy
from grant_kernel.exceptions import InvalidAttachmentError


@dataclass(frozen=True)
class Attachment:
    """An uploaded file as received from the presentation layer."""

    file_name: str
    data: bytes

    @property
    def extension(self) -> str:
        return PurePosixPath(self.file_name).suffix.lower().lstrip(".")

    @property
    def size(self) -> int:
        return len(self.data)


def validate_attachment(attachment: Attachment, policy: AttachmentPolicy) -> str:
    """
    Check type and size; returns the normalised extension.

    Raises:
        InvalidAttachmentError: empty file, disallowed type or too large.
    """
    if not attachment.data:
        raise InvalidAttachmentError(attachment.file_name, "file is empty")
    extension = attachment.extension
    if not policy.allows(extension):
        allowed = ", ".join(policy.allowed_extensions)
        raise InvalidAttachmentError(
            attachment.file_name, f"type {extension or '(none)'!r} not accepted; allowed: {allowed}",
        )
    if attachment.size > policy.max_bytes:
        raise InvalidAttachmentError(
            attachment.file_name,
            f"{attachment.size} bytes exceeds the {policy.max_bytes} byte limit",
        )
    return extension


def report_storage_key(
    policy: AttachmentPolicy,
    user_id: UUID,
    reference_month: str,
    version: int,
) -> str:
    return f"{policy.bucket}/{user_id}/{reference_month}/v{version}.pdf"


def receipt_storage_key(
    policy: AttachmentPolicy,
    user_id: UUID,
    reference_month: str,
    payment_id: UUID,
    extension: str,
) -> str:
    # One receipt per payment; re-uploads overwrite.
    return f"{policy.bucket}/{user_id}/{reference_month}_{payment_id}.{extension}"

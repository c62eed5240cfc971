"""
grant_services -- Package init and public API.

Responsibility:
    The facade over grant_kernel for the presentation layer, plus the
    attachment rules and in-memory collaborator adapters it relies on.

Architecture position:
    Services.  Dependency direction:
        grant_services/ -> grant_config/, grant_kernel/  (allowed)
        grant_kernel/   -> grant_services/               (FORBIDDEN)
"""

from grant_services.attachments import (
    Attachment,
    receipt_storage_key,
    report_storage_key,
    validate_attachment,
)
from grant_services.disbursement_engine import (
    DisbursementEngine,
    OperationResult,
    OperationStatus,
)
from grant_services.in_memory import InMemoryBlobStore, RecordingNotifier, SentNotification

__all__ = [
    "Attachment",
    "DisbursementEngine",
    "InMemoryBlobStore",
    "OperationResult",
    "OperationStatus",
    "RecordingNotifier",
    "SentNotification",
    "receipt_storage_key",
    "report_storage_key",
    "validate_attachment",
]

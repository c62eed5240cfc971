"""
GrantPolicy schema.

Frozen runtime policy for the disbursement engine.  YAML sets are parsed
into these types by the loader; ``get_active_config()`` returns the
assembled ``GrantPolicy``.  Nothing here has behaviour beyond simple
derived properties.
"""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from grant_kernel.domain.enrollment import GrantModality

# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalendarPolicy:
    """Timezone in which reference months are computed."""

    timezone: str = "America/Sao_Paulo"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttachmentPolicy:
    """Storage bucket and acceptance rules for one kind of uploaded file."""

    bucket: str
    allowed_extensions: tuple[str, ...]
    max_bytes: int
    content_types: tuple[tuple[str, str], ...] = ()  # (extension, mime type)

    def allows(self, extension: str) -> bool:
        return extension.lower() in self.allowed_extensions

    def content_type_for(self, extension: str) -> str | None:
        return dict(self.content_types).get(extension.lower())


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotificationTemplates:
    """Template keys handed to the Notifier after each transition."""

    report_submitted: str = "report_submitted"
    report_approved: str = "report_approved"
    report_rejected: str = "report_rejected"
    payment_paid: str = "payment_paid"
    bank_data_validated: str = "bank_data_validated"
    bank_data_returned: str = "bank_data_returned"
    monthly_report_reminder: str = "monthly_report_reminder"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GrantPolicy:
    """The complete runtime configuration."""

    config_id: str
    version: int
    calendar: CalendarPolicy
    signed_url_ttl_seconds: int
    report_attachments: AttachmentPolicy
    receipt_attachments: AttachmentPolicy
    default_modality: GrantModality = GrantModality.ICT
    notifications: NotificationTemplates = NotificationTemplates()
    checksum: str = ""

"""
Configuration Loader (``grant_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``grant_config.schema`` dataclasses.  Runtime callers go through
``grant_config.get_active_config()``; this module is its plumbing.

Invariants enforced
-------------------
* Required keys are never defaulted silently: a missing key raises
  ``KeyError``, a malformed value raises ``ValueError``.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown timezone  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from grant_config.schema import (
    AttachmentPolicy,
    CalendarPolicy,
    GrantPolicy,
    NotificationTemplates,
)
from grant_kernel.domain.enrollment import GrantModality


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_calendar(data: dict[str, Any]) -> CalendarPolicy:
    timezone = data.get("timezone", CalendarPolicy.timezone)
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone {timezone!r}") from exc
    return CalendarPolicy(timezone=timezone)


def parse_attachment_policy(data: dict[str, Any]) -> AttachmentPolicy:
    """Parse one attachment policy; extensions are normalised to lower case."""
    extensions = tuple(str(ext).lower().lstrip(".") for ext in data["allowed_extensions"])
    if not extensions:
        raise ValueError(f"Attachment policy {data['bucket']!r} allows no file types")
    max_bytes = int(data["max_bytes"])
    if max_bytes <= 0:
        raise ValueError(f"Attachment policy {data['bucket']!r} has non-positive max_bytes")
    content_types = tuple(
        (str(ext).lower().lstrip("."), str(mime))
        for ext, mime in sorted((data.get("content_types") or {}).items())
    )
    return AttachmentPolicy(
        bucket=data["bucket"],
        allowed_extensions=extensions,
        max_bytes=max_bytes,
        content_types=content_types,
    )


def parse_notifications(data: dict[str, Any]) -> NotificationTemplates:
    return NotificationTemplates(**data)


def parse_policy(data: dict[str, Any], checksum: str) -> GrantPolicy:
    """Parse the root document of a configuration set."""
    ttl = int(data["signed_url_ttl_seconds"])
    if ttl <= 0:
        raise ValueError("signed_url_ttl_seconds must be positive")
    attachments = data["attachments"]
    return GrantPolicy(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        calendar=parse_calendar(data.get("calendar") or {}),
        signed_url_ttl_seconds=ttl,
        report_attachments=parse_attachment_policy(attachments["reports"]),
        receipt_attachments=parse_attachment_policy(attachments["receipts"]),
        default_modality=GrantModality(data.get("default_modality", GrantModality.ICT.value)),
        notifications=parse_notifications(data.get("notifications") or {}),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

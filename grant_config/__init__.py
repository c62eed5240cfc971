"""
grant_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``, which returns a frozen ``GrantPolicy``.

Architecture position:
    Configuration.  Sits above ``grant_kernel`` and below
    ``grant_services``.  The kernel MUST NEVER import from
    ``grant_config``; the facade translates policy values into kernel
    inputs (timezone for the calendar, template keys for the notifier).

Invariants enforced:
    - Deterministic loading: the same YAML always yields the same
      ``GrantPolicy`` and checksum.
    - The resubmission window is not configuration; it is fixed in
      ``grant_kernel.domain.calendar``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``KeyError`` / ``ValueError`` -- missing or malformed values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``GRANT_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each operation back to the configuration in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from grant_config.loader import compute_checksum, load_yaml_file, parse_policy
from grant_config.schema import (
    AttachmentPolicy,
    CalendarPolicy,
    GrantPolicy,
    NotificationTemplates,
)

_logger = logging.getLogger("grant_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_dir: Path | None = None,
    set_name: str = "default",
) -> GrantPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Override path to the configuration sets directory.
            Defaults to grant_config/sets/.
        set_name: Name of the set subdirectory holding ``root.yaml``.

    Raises:
        FileNotFoundError: If the set does not exist.
        KeyError, ValueError: If the set is incomplete or malformed.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    root_file = sets_dir / set_name / "root.yaml"
    if not root_file.exists():
        raise FileNotFoundError(f"Configuration set not found: {root_file}")

    data = load_yaml_file(root_file)
    policy = parse_policy(data, checksum=compute_checksum(data))

    _logger.info(
        "GRANT_CONFIG_TRACE",
        extra={
            "trace_type": "GRANT_CONFIG_TRACE",
            "config_set_id": policy.config_id,
            "config_set_version": policy.version,
            "checksum": policy.checksum,
            "timezone": policy.calendar.timezone,
        },
    )
    return policy


__all__ = [
    "AttachmentPolicy",
    "CalendarPolicy",
    "GrantPolicy",
    "NotificationTemplates",
    "get_active_config",
]

"""
Tests for grant_config loading.
"""

from pathlib import Path

import pytest
import yaml

import grant_config
from grant_config import get_active_config
from grant_config.loader import compute_checksum, parse_attachment_policy
from grant_kernel.domain.enrollment import GrantModality

DEFAULT_SETS = Path(grant_config.__file__).parent / "sets"


def _write_set(tmp_path: Path, **overrides) -> Path:
    data = yaml.safe_load((DEFAULT_SETS / "default" / "root.yaml").read_text())
    data.update(overrides)
    set_dir = tmp_path / "custom"
    set_dir.mkdir()
    (set_dir / "root.yaml").write_text(yaml.safe_dump(data))
    return tmp_path


class TestDefaultSet:
    def test_loads(self):
        policy = get_active_config()

        assert policy.config_id == "GRANT-DEFAULT"
        assert policy.version == 1
        assert policy.calendar.timezone == "America/Sao_Paulo"
        assert str(policy.calendar.tz) == "America/Sao_Paulo"
        assert policy.signed_url_ttl_seconds == 900
        assert policy.default_modality == GrantModality.ICT

    def test_attachment_policies(self):
        policy = get_active_config()

        assert policy.report_attachments.bucket == "reports"
        assert policy.report_attachments.allowed_extensions == ("pdf",)
        assert policy.receipt_attachments.bucket == "payment-receipts"
        assert policy.receipt_attachments.allows("PNG")
        assert not policy.report_attachments.allows("docx")
        assert policy.receipt_attachments.content_type_for("jpg") == "image/jpeg"

    def test_notification_keys(self):
        templates = get_active_config().notifications
        assert templates.report_approved == "report_approved"
        assert templates.monthly_report_reminder == "monthly_report_reminder"

    def test_checksum_is_deterministic(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64

    def test_trace_logged(self, captured_logs):
        policy = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "GRANT_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["config_set_id"] == "GRANT-DEFAULT"
        assert traces[-1]["checksum"] == policy.checksum


class TestCustomSets:
    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(config_dir=tmp_path, set_name="nope")

    def test_override_timezone(self, tmp_path):
        config_dir = _write_set(tmp_path, calendar={"timezone": "UTC"})
        policy = get_active_config(config_dir=config_dir, set_name="custom")

        assert policy.calendar.timezone == "UTC"
        assert policy.checksum != get_active_config().checksum

    def test_unknown_timezone(self, tmp_path):
        config_dir = _write_set(tmp_path, calendar={"timezone": "Mars/Olympus_Mons"})
        with pytest.raises(ValueError, match="Unknown timezone"):
            get_active_config(config_dir=config_dir, set_name="custom")

    def test_non_positive_ttl(self, tmp_path):
        config_dir = _write_set(tmp_path, signed_url_ttl_seconds=0)
        with pytest.raises(ValueError):
            get_active_config(config_dir=config_dir, set_name="custom")

    def test_missing_required_key(self, tmp_path):
        set_dir = tmp_path / "broken"
        set_dir.mkdir()
        (set_dir / "root.yaml").write_text("config_id: BROKEN\n")
        with pytest.raises(KeyError):
            get_active_config(config_dir=tmp_path, set_name="broken")


class TestLoaderHelpers:
    def test_extensions_normalised(self):
        policy = parse_attachment_policy({
            "bucket": "reports",
            "allowed_extensions": [".PDF"],
            "max_bytes": 10,
        })
        assert policy.allowed_extensions == ("pdf",)
        assert policy.content_types == ()

    def test_empty_extensions_refused(self):
        with pytest.raises(ValueError):
            parse_attachment_policy({"bucket": "reports", "allowed_extensions": [], "max_bytes": 10})

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

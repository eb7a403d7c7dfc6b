"""
Tests for back-office settings loading.

Validates:
- The packaged default.yaml loads into the dataclass defaults
- Explicit path and BACKOFFICE_CONFIG resolution
- Every invalid value is reported in one ValueError
- Deterministic checksums and the config trace log
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import yaml

from backoffice_config import (
    BackofficeSettings,
    compute_checksum,
    get_active_config,
    parse_settings,
)
from backoffice_config.loader import CACHE_BACKENDS


def _write(tmp_path, data: dict):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultSettings:
    def test_packaged_defaults(self, monkeypatch):
        monkeypatch.delenv("BACKOFFICE_CONFIG", raising=False)
        settings = get_active_config()

        assert settings.config_id == "backoffice-default"
        assert settings.billing.default_free_hours == Decimal("2.0")
        assert settings.billing.hourly_rate == Decimal("30.00")
        assert settings.billing.timezone == "America/Chicago"
        assert settings.billing.due_soon_days == 2
        assert settings.billing.report_invoice_window_days == 7
        assert settings.cache.backend == "memory"
        assert settings.cache.key_prefix == "bbab_sc_"
        assert settings.store.statement_timeout_ms == 5000

    def test_dataclass_defaults_match_packaged_file(self, monkeypatch):
        monkeypatch.delenv("BACKOFFICE_CONFIG", raising=False)
        loaded = get_active_config()
        defaults = BackofficeSettings()
        assert loaded.billing == defaults.billing
        assert loaded.cache == defaults.cache

    def test_trace_logged(self, monkeypatch, captured_logs):
        monkeypatch.delenv("BACKOFFICE_CONFIG", raising=False)
        settings = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "BACKOFFICE_CONFIG_TRACE"]
        assert traces[0]["checksum"] == settings.checksum
        assert traces[0]["config_id"] == "backoffice-default"


class TestResolution:
    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path, {"config_id": "staging", "billing": {"hourly_rate": "45"}})
        settings = get_active_config(path)
        assert settings.config_id == "staging"
        assert settings.billing.hourly_rate == Decimal("45")
        # Unset keys keep their defaults.
        assert settings.billing.default_free_hours == Decimal("2.0")

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"config_id": "from-env"})
        monkeypatch.setenv("BACKOFFICE_CONFIG", str(path))
        assert get_active_config().config_id == "from-env"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestValidation:
    def test_all_problems_reported_together(self):
        with pytest.raises(ValueError) as exc_info:
            parse_settings(
                {
                    "billing": {
                        "hourly_rate": "abc",
                        "default_free_hours": "-1",
                        "timezone": "Mars/Olympus",
                    },
                    "cache": {"backend": "redis"},
                    "store": {"call_timeout_seconds": 0},
                }
            )
        message = str(exc_info.value)
        assert "billing.hourly_rate" in message
        assert "billing.default_free_hours" in message
        assert "billing.timezone" in message
        assert "cache.backend" in message
        assert "store.call_timeout_seconds" in message

    @pytest.mark.parametrize("backend", CACHE_BACKENDS)
    def test_known_cache_backends_accepted(self, backend):
        assert parse_settings({"cache": {"backend": backend}}).cache.backend == backend

    def test_money_parsed_as_decimal_from_text(self):
        settings = parse_settings({"billing": {"hourly_rate": 30.1}})
        assert settings.billing.hourly_rate == Decimal("30.1")


class TestChecksum:
    def test_deterministic_and_order_independent(self):
        a = {"billing": {"hourly_rate": "30", "due_soon_days": 2}, "version": 1}
        b = {"version": 1, "billing": {"due_soon_days": 2, "hourly_rate": "30"}}
        assert compute_checksum(a) == compute_checksum(b)

    def test_changes_with_content(self):
        assert compute_checksum({"version": 1}) != compute_checksum({"version": 2})

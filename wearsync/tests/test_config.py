"""Tests for vendors.yaml loading/validation and environment settings."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from wearsync import config_loader
from wearsync.config import Settings
from wearsync.config_loader import (
    ConfigValidationError,
    VendorConfig,
    _validate_and_build,
    load_vendor_config,
    reload_vendor_config,
)


class TestConfigLoading:
    """Tests for loading the bundled vendors.yaml."""

    def test_load_default_config(self, vendor_config: VendorConfig) -> None:
        assert vendor_config.version == "1.0"
        assert vendor_config.has_vendor("apple_health")
        assert vendor_config.has_vendor("fitbit")

    def test_fitbit_policy(self, vendor_config: VendorConfig) -> None:
        fitbit = vendor_config.vendor("fitbit")
        assert fitbit.base_url == "https://api.fitbit.com/1"
        assert fitbit.timeout_seconds == 5
        assert fitbit.circuit_breaker.failure_threshold == 3
        assert fitbit.circuit_breaker.recovery_timeout_seconds == 30

    def test_unknown_vendor_raises_key_error(self, vendor_config: VendorConfig) -> None:
        with pytest.raises(KeyError, match="garmin"):
            vendor_config.vendor("garmin")


class TestConfigValidation:
    def test_missing_vendors_section(self) -> None:
        with pytest.raises(ConfigValidationError, match="'vendors' section is missing or empty"):
            _validate_and_build({"version": "1.0"})

    def test_bad_base_url(self) -> None:
        with pytest.raises(ConfigValidationError, match="base_url must be an http"):
            _validate_and_build({"vendors": {"fitbit": {"base_url": "ftp://nope"}}})

    def test_errors_are_collected(self) -> None:
        raw = {
            "vendors": {
                "fitbit": {
                    "base_url": "https://api.fitbit.com/1",
                    "timeout_seconds": "fast",
                    "retry_attempts": -1,
                    "circuit_breaker": {"failure_threshold": 0},
                }
            }
        }
        with pytest.raises(ConfigValidationError, match="3 validation error"):
            _validate_and_build(raw)

    def test_defaults_apply(self) -> None:
        config = _validate_and_build({"vendors": {"x": {"base_url": "https://x.test/"}}})
        x = config.vendor("x")
        assert x.base_url == "https://x.test"
        assert x.retry_attempts == 3
        assert x.circuit_breaker.failure_threshold == 5


class TestReload:
    def test_reload_replaces_singleton(self, tmp_path: Path) -> None:
        path = tmp_path / "vendors.yaml"
        path.write_text(
            textwrap.dedent(
                """
                version: "2.0"
                vendors:
                  fitbit:
                    base_url: https://staging.fitbit.test
                """
            )
        )
        try:
            config = reload_vendor_config(path)
            assert config.version == "2.0"
            assert config_loader.get_vendor_config() is config
        finally:
            reload_vendor_config()

    def test_invalid_reload_keeps_old_config(self, tmp_path: Path) -> None:
        before = config_loader.get_vendor_config()
        path = tmp_path / "vendors.yaml"
        path.write_text("vendors: [unclosed")
        with pytest.raises(ConfigValidationError):
            reload_vendor_config(path)
        assert config_loader.get_vendor_config() is before

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_vendor_config(tmp_path / "absent.yaml")


class TestSettings:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WEARSYNC_SYNC_INTERVAL_MINUTES", "15")
        monkeypatch.setenv("WEARSYNC_FITBIT_CLIENT_ID", "abc")
        settings = Settings()
        assert settings.sync_interval_minutes == 15
        assert settings.fitbit_client_id == "abc"

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.token_refresh_buffer_seconds == 300
        assert settings.max_concurrent_syncs == 5

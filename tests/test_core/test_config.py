"""Tests for jobalert/core/config.py — YAML loading, defaults, validation, SecretStr."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from jobalert.core.config import (
    AlertsConfig,
    LoggingConfig,
    RetryConfig,
    Settings,
    SmtpConfig,
    ThresholdsConfig,
    get_settings,
    load_settings,
    reset_settings,
)


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_smtp_config(self) -> None:
        cfg = SmtpConfig()
        assert cfg.host == "localhost"
        assert cfg.port == 587
        assert cfg.secure is False
        assert cfg.starttls is True
        assert cfg.password.get_secret_value() == ""

    def test_default_alerts_config(self) -> None:
        cfg = AlertsConfig()
        assert cfg.enabled is True
        assert cfg.admin_email == ""
        assert cfg.from_email is None
        assert cfg.debounce_window_ms == 300_000

    def test_default_retry_config(self) -> None:
        cfg = RetryConfig()
        assert cfg.max_attempts == 3
        assert cfg.delays_ms == [1000, 2000, 4000]

    def test_default_thresholds_config(self) -> None:
        cfg = ThresholdsConfig()
        assert cfg.failures_in_window == 5
        assert cfg.time_window_minutes == 10

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_settings(self) -> None:
        s = Settings()
        assert s.smtp.port == 587
        assert s.alerts.debounce_window_ms == 300_000
        assert s.retry.max_attempts == 3
        assert s.thresholds.failures_in_window == 5
        assert s.logging.level == "INFO"


class TestValidation:
    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=0)

    def test_empty_delays_rejected_when_retrying(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=3, delays_ms=[])

    def test_empty_delays_allowed_for_single_attempt(self) -> None:
        cfg = RetryConfig(max_attempts=1, delays_ms=[])
        assert cfg.delays_ms == []

    def test_negative_delay_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(delays_ms=[1000, -1])

    def test_negative_debounce_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AlertsConfig(debounce_window_ms=-1)

    def test_zero_debounce_allowed(self) -> None:
        assert AlertsConfig(debounce_window_ms=0).debounce_window_ms == 0

    def test_threshold_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ThresholdsConfig(failures_in_window=0)
        with pytest.raises(ValidationError):
            ThresholdsConfig(time_window_minutes=0)


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "smtp": {
                "host": "smtp.example.com",
                "port": 465,
                "secure": True,
                "username": "alerts",
                "password": "hunter2",
            },
            "alerts": {
                "admin_email": "oncall@example.com",
                "from_email": "alerts@example.com",
                "debounce_window_ms": 60000,
            },
            "retry": {"max_attempts": 5, "delays_ms": [100, 200]},
            "thresholds": {"failures_in_window": 3, "time_window_minutes": 2.5},
            "logging": {"level": "DEBUG", "format": "console"},
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        settings = load_settings(config_file)

        assert settings.smtp.host == "smtp.example.com"
        assert settings.smtp.port == 465
        assert settings.smtp.secure is True
        assert settings.smtp.password.get_secret_value() == "hunter2"
        assert settings.alerts.admin_email == "oncall@example.com"
        assert settings.alerts.from_email == "alerts@example.com"
        assert settings.alerts.debounce_window_ms == 60000
        assert settings.retry.max_attempts == 5
        assert settings.retry.delays_ms == [100, 200]
        assert settings.thresholds.failures_in_window == 3
        assert settings.thresholds.time_window_minutes == 2.5
        assert settings.logging.level == "DEBUG"
        assert settings.logging.format == "console"

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.smtp.host == "localhost"
        assert settings.thresholds.failures_in_window == 5

    def test_load_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        settings = load_settings(config_file)
        assert settings.retry.max_attempts == 3

    def test_partial_yaml_merges_with_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"alerts": {"admin_email": "ops@example.com"}}))

        settings = load_settings(config_file)
        assert settings.alerts.admin_email == "ops@example.com"
        # Other defaults still intact
        assert settings.alerts.debounce_window_ms == 300_000
        assert settings.smtp.port == 587

    def test_invalid_yaml_values_raise(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"retry": {"max_attempts": 0}}))
        with pytest.raises(ValidationError):
            load_settings(config_file)

    def test_get_settings_caches(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"smtp": {"host": "mail.local"}}))
        loaded = load_settings(config_file)
        assert get_settings() is loaded
        reset_settings()
        assert get_settings() is not loaded


class TestSecretStr:
    """Sensitive fields should use SecretStr to prevent leaking."""

    def test_secret_str_repr_does_not_leak(self) -> None:
        cfg = SmtpConfig(password="super-secret")  # type: ignore[arg-type]
        repr_str = repr(cfg)
        assert "super-secret" not in repr_str
        assert "**********" in repr_str

    def test_secret_str_get_value(self) -> None:
        cfg = SmtpConfig(password="my-secret")  # type: ignore[arg-type]
        assert cfg.password.get_secret_value() == "my-secret"

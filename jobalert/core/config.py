"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, model_validator

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class SmtpConfig(BaseModel):
    """Outbound SMTP transport configuration."""

    host: str = "localhost"
    port: int = 587
    secure: bool = False  # implicit TLS (port 465)
    starttls: bool = True
    username: str = ""
    password: SecretStr = SecretStr("")
    timeout_secs: float = 10.0


class AlertsConfig(BaseModel):
    """Alert routing and debounce configuration."""

    enabled: bool = True
    admin_email: str = ""
    from_email: str | None = None
    debounce_window_ms: int = Field(default=5 * 60 * 1000, ge=0)
    dashboard_url: str | None = None


class RetryConfig(BaseModel):
    """Send retry policy — delays are applied in order, the last one reused."""

    max_attempts: int = Field(default=3, ge=1)
    delays_ms: list[int] = [1000, 2000, 4000]

    @model_validator(mode="after")
    def _check_delays(self) -> RetryConfig:
        if self.max_attempts > 1 and not self.delays_ms:
            raise ValueError("delays_ms must not be empty when max_attempts > 1")
        if any(d < 0 for d in self.delays_ms):
            raise ValueError("delays_ms must be non-negative")
        return self


class ThresholdsConfig(BaseModel):
    """Failure detector thresholds."""

    failures_in_window: int = Field(default=5, ge=1)
    time_window_minutes: float = Field(default=10.0, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    smtp: SmtpConfig = SmtpConfig()
    alerts: AlertsConfig = AlertsConfig()
    retry: RetryConfig = RetryConfig()
    thresholds: ThresholdsConfig = ThresholdsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None

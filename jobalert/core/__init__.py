"""Core infrastructure — configuration, logging, and time."""

from jobalert.core.clock import Clock, ManualClock, SystemClock, TimerHandle
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
from jobalert.core.logging import setup_logging

__all__ = [
    "AlertsConfig",
    "Clock",
    "LoggingConfig",
    "ManualClock",
    "RetryConfig",
    "Settings",
    "SmtpConfig",
    "SystemClock",
    "ThresholdsConfig",
    "TimerHandle",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]

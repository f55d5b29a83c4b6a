"""Exception hierarchy for alert delivery.

Expected failures are not raised to callers; they are returned inside a
DispatchResult so a failed send never takes down the detector or the
dispatcher.  ``DispatchResult.unwrap()`` raises them for callers that prefer
exceptions.
"""

from __future__ import annotations

from typing import Any


class AlertError(Exception):
    """Base exception for all alert delivery errors."""

    def __init__(
        self,
        message: str,
        *,
        alert_type: str | None = None,
        recipient: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.alert_type = alert_type
        self.recipient = recipient
        self.context: dict[str, Any] = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "alert_type": self.alert_type,
            "recipient": self.recipient,
            "context": self.context,
        }


class ConfigurationError(AlertError):
    """Sender or recipient address missing — never retried."""


class RenderError(AlertError):
    """The notification body could not be built — never retried."""


class AlertsDisabledError(AlertError):
    """Alerting is switched off in configuration."""


class DeliveryFailedError(AlertError):
    """The transport rejected the message, or every retry was exhausted."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: str,
        status_code: int | None = None,
        transient: bool = False,
        alert_type: str | None = None,
        recipient: str | None = None,
    ) -> None:
        super().__init__(
            message,
            alert_type=alert_type,
            recipient=recipient,
            context={
                "attempts": attempts,
                "error": last_error,
                "status_code": status_code,
            },
        )
        self.attempts = attempts
        self.last_error = last_error
        self.status_code = status_code
        self.transient = transient

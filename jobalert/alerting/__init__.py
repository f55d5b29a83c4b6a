"""Alerting — failure detection, debounced dispatch, and email delivery."""

from jobalert.alerting.detector import AlertSink, FailureDetector
from jobalert.alerting.dispatcher import AlertDispatcher
from jobalert.alerting.exceptions import (
    AlertError,
    AlertsDisabledError,
    ConfigurationError,
    DeliveryFailedError,
    RenderError,
)
from jobalert.alerting.factory import create_alerting_stack
from jobalert.alerting.renderer import (
    Renderer,
    alert_subject,
    render_alert_html,
    render_alert_text,
)
from jobalert.alerting.retry import RetryPolicy, is_transient_error, send_with_retry
from jobalert.alerting.transport import SmtpTransport, Transport
from jobalert.alerting.types import (
    Alert,
    AlertSeverity,
    AlertType,
    CustomEmail,
    DispatchResult,
    EmailMessage,
    EmailSent,
    TransportFailure,
    TransportResult,
)

__all__ = [
    "Alert",
    "AlertDispatcher",
    "AlertError",
    "AlertSeverity",
    "AlertSink",
    "AlertType",
    "AlertsDisabledError",
    "ConfigurationError",
    "CustomEmail",
    "DeliveryFailedError",
    "DispatchResult",
    "EmailMessage",
    "EmailSent",
    "FailureDetector",
    "RenderError",
    "Renderer",
    "RetryPolicy",
    "SmtpTransport",
    "Transport",
    "TransportFailure",
    "TransportResult",
    "alert_subject",
    "create_alerting_stack",
    "is_transient_error",
    "render_alert_html",
    "render_alert_text",
    "send_with_retry",
]

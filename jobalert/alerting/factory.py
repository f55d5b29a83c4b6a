"""Convenience factory for wiring the alerting stack."""

from __future__ import annotations

from jobalert.alerting.detector import FailureDetector
from jobalert.alerting.dispatcher import AlertDispatcher
from jobalert.alerting.renderer import Renderer
from jobalert.alerting.retry import RetryPolicy
from jobalert.alerting.transport import SmtpTransport, Transport
from jobalert.core.clock import Clock, SystemClock
from jobalert.core.config import Settings


def create_alerting_stack(
    settings: Settings,
    transport: Transport | None = None,
    renderer: Renderer | None = None,
    clock: Clock | None = None,
) -> tuple[AlertDispatcher, FailureDetector]:
    """Build the dispatcher and the detector that feeds it.

    The process owns exactly one of each; pass them by reference to the
    code that reports failures.

    Returns:
        (dispatcher, detector)
    """
    clock = clock or SystemClock()
    alerts = settings.alerts

    dispatcher = AlertDispatcher(
        transport=transport or SmtpTransport(settings.smtp),
        admin_email=alerts.admin_email,
        from_email=alerts.from_email,
        retry_policy=RetryPolicy.from_config(settings.retry),
        debounce_window_ms=alerts.debounce_window_ms,
        renderer=renderer,
        clock=clock,
        enabled=alerts.enabled,
        dashboard_url=alerts.dashboard_url,
    )
    detector = FailureDetector(
        sink=dispatcher,
        config=settings.thresholds,
        clock=clock,
    )
    return dispatcher, detector

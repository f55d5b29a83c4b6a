"""Central alert dispatcher — debounces alerts per type and emails them with retry."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from jobalert.alerting.exceptions import (
    AlertError,
    AlertsDisabledError,
    ConfigurationError,
    RenderError,
)
from jobalert.alerting.renderer import (
    Renderer,
    alert_subject,
    render_alert_html,
    render_alert_text,
)
from jobalert.alerting.retry import RetryPolicy, send_with_retry
from jobalert.alerting.transport import Transport
from jobalert.alerting.types import (
    Alert,
    AlertSeverity,
    AlertType,
    CustomEmail,
    DispatchResult,
    EmailMessage,
)
from jobalert.core.clock import Clock, SystemClock, TimerHandle

# Dedicated structured logger for every alert that enters the dispatcher.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)

DEFAULT_DEBOUNCE_WINDOW_MS = 5 * 60 * 1000


@dataclass
class _Bucket:
    """Alerts of one type waiting for their fixed fire time."""

    opened_at: float
    fire_at: float
    alerts: list[Alert] = field(default_factory=list)
    timer: TimerHandle | None = None


class AlertDispatcher:
    """Turns alerts into emails to the admin address.

    - ``submit()`` buffers alerts per AlertType.  The first alert of a type
      opens a bucket that fires ``debounce_window_ms`` later; alerts arriving
      before then join it without moving the fire time.  On fire, the whole
      bucket goes out as one email at the highest severity it holds.
    - ``send_alert()`` / ``send_alerts()`` / ``send_custom_email()`` send
      immediately with retry and return a DispatchResult.
    - Every submitted alert is logged via *decision_logger*.
    """

    def __init__(
        self,
        transport: Transport,
        admin_email: str,
        *,
        from_email: str | None = None,
        retry_policy: RetryPolicy | None = None,
        debounce_window_ms: int = DEFAULT_DEBOUNCE_WINDOW_MS,
        renderer: Renderer | None = None,
        clock: Clock | None = None,
        enabled: bool = True,
        dashboard_url: str | None = None,
    ) -> None:
        self._transport = transport
        self._admin_email = admin_email
        self._from_email = from_email
        self._retry_policy = retry_policy or RetryPolicy()
        self._debounce_window_ms = debounce_window_ms
        self._renderer = renderer
        self._clock: Clock = clock or SystemClock()
        self._enabled = enabled
        self._dashboard_url = dashboard_url
        self._buckets: dict[AlertType, _Bucket] = {}
        self._inflight: set[asyncio.Task[DispatchResult]] = set()
        self._closing = False

    # ── Properties ────────────────────────────────────────────────

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def debounce_window_ms(self) -> int:
        return self._debounce_window_ms

    @property
    def admin_email(self) -> str:
        return self._admin_email

    def pending_counts(self) -> dict[AlertType, int]:
        """Number of buffered alerts per open bucket."""
        return {t: len(b.alerts) for t, b in self._buckets.items()}

    async def verify_connection(self) -> bool:
        """Probe the transport."""
        return await self._transport.verify()

    # ── Immediate sends ───────────────────────────────────────────

    async def send_alert(
        self, alert: Alert, *, from_email: str | None = None
    ) -> DispatchResult:
        """Send a single alert now."""
        return await self.send_alerts(
            [alert], alert.type, alert.severity, from_email=from_email
        )

    async def send_alerts(
        self,
        alerts: Sequence[Alert],
        alert_type: AlertType,
        severity: AlertSeverity,
        *,
        from_email: str | None = None,
    ) -> DispatchResult:
        """Render *alerts* into one email and send it with retry."""
        if not self._enabled:
            return self._disabled(alert_type.value)

        try:
            sender = self._require_sender(
                from_email or self._from_email, self._admin_email, alert_type.value
            )
        except ConfigurationError as exc:
            return DispatchResult(error=exc)

        subject = alert_subject(severity, alert_type)
        log = logger.bind(recipient=self._admin_email, alert_type=alert_type.value)
        log.info(
            "alert_email_sending",
            subject=subject,
            severity=severity.name,
            alert_count=len(alerts),
        )
        started = self._clock.monotonic()

        try:
            html, text = await self._render(alerts, alert_type, severity)
        except Exception as exc:
            log.exception("alert_render_failed")
            return DispatchResult(
                error=RenderError(
                    "Failed to render alert email template",
                    alert_type=alert_type.value,
                    recipient=self._admin_email,
                    context={"error": str(exc)},
                )
            )

        message = EmailMessage(
            from_email=sender,
            to=[self._admin_email],
            subject=subject,
            html=html,
            text=text,
        )
        result = await send_with_retry(
            self._transport,
            message,
            self._retry_policy,
            self._clock,
            alert_type=alert_type.value,
        )

        duration_ms = round((self._clock.monotonic() - started) * 1000)
        if result.sent is not None:
            log.info(
                "alert_email_sent",
                email_id=result.sent.id,
                attempts=result.sent.attempts,
                duration_ms=duration_ms,
            )
        elif result.error is not None:
            log.error(
                "alert_email_failed",
                error=result.error.to_dict(),
                duration_ms=duration_ms,
            )
        return result

    async def send_custom_email(self, params: CustomEmail) -> DispatchResult:
        """Send an ad hoc email without the alert template."""
        if not self._enabled:
            return self._disabled(AlertType.CUSTOM.value)

        recipients = params.to or ([self._admin_email] if self._admin_email else [])
        try:
            sender = self._require_sender(
                params.from_email or self._from_email,
                ", ".join(recipients),
                AlertType.CUSTOM.value,
            )
        except ConfigurationError as exc:
            return DispatchResult(error=exc)

        message = EmailMessage(
            from_email=sender,
            to=recipients,
            subject=params.subject,
            html=params.html,
            text=params.text,
            cc=params.cc,
            bcc=params.bcc,
        )
        return await send_with_retry(
            self._transport,
            message,
            self._retry_policy,
            self._clock,
            alert_type=AlertType.CUSTOM.value,
        )

    # ── Debounced entry point ─────────────────────────────────────

    def submit(self, alert: Alert) -> None:
        """Buffer *alert* into its type's bucket."""
        self._log_decision(alert)

        if not self._enabled:
            logger.info("alert_dropped_disabled", alert_type=alert.type.value)
            return

        if self._closing:
            logger.warning(
                "alert_dropped_dispatcher_closed",
                alert_type=alert.type.value,
                source_name=alert.source_name,
                message=alert.message,
            )
            return

        bucket = self._buckets.get(alert.type)
        if bucket is not None:
            bucket.alerts.append(alert)
            logger.debug(
                "alert_buffered",
                alert_type=alert.type.value,
                pending=len(bucket.alerts),
            )
            return

        window_secs = self._debounce_window_ms / 1000.0
        now = self._clock.monotonic()
        bucket = _Bucket(opened_at=now, fire_at=now + window_secs, alerts=[alert])
        self._buckets[alert.type] = bucket

        if window_secs <= 0:
            self._flush(alert.type)
            return

        bucket.timer = self._clock.call_later(
            window_secs, lambda: self._on_timer(alert.type, bucket)
        )
        logger.debug(
            "debounce_bucket_opened",
            alert_type=alert.type.value,
            window_ms=self._debounce_window_ms,
        )

    async def flush_all(self) -> list[DispatchResult]:
        """Send every open bucket now and wait for the results."""
        tasks = [t for t in map(self._flush, list(self._buckets)) if t is not None]
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight bucket sends. Returns False on timeout."""
        if not self._inflight:
            return True
        _, pending = await asyncio.wait(set(self._inflight), timeout=timeout)
        return not pending

    # ── Internal ──────────────────────────────────────────────────

    def _on_timer(self, alert_type: AlertType, bucket: _Bucket) -> None:
        # A flush_all() may already have replaced this bucket.
        if self._buckets.get(alert_type) is bucket:
            self._flush(alert_type)

    def _flush(self, alert_type: AlertType) -> asyncio.Task[DispatchResult] | None:
        bucket = self._buckets.pop(alert_type, None)
        if bucket is None:
            return None
        if bucket.timer is not None:
            bucket.timer.cancel()
        if not bucket.alerts:
            return None

        alerts = list(bucket.alerts)
        severity = max(a.severity for a in alerts)
        logger.info(
            "debounce_bucket_flushed",
            alert_type=alert_type.value,
            alert_count=len(alerts),
            severity=severity.name,
        )
        task = asyncio.create_task(self._send_batch(alerts, alert_type, severity))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _send_batch(
        self,
        alerts: list[Alert],
        alert_type: AlertType,
        severity: AlertSeverity,
    ) -> DispatchResult:
        try:
            return await self.send_alerts(alerts, alert_type, severity)
        except Exception as exc:
            logger.exception(
                "alert_batch_send_error",
                alert_type=alert_type.value,
                alert_count=len(alerts),
            )
            return DispatchResult(
                error=AlertError(
                    "Unexpected error while sending alert batch",
                    alert_type=alert_type.value,
                    recipient=self._admin_email,
                    context={"error": str(exc)},
                )
            )

    async def _render(
        self,
        alerts: Sequence[Alert],
        alert_type: AlertType,
        severity: AlertSeverity,
    ) -> tuple[str, str | None]:
        if self._renderer is None:
            html = render_alert_html(alerts, alert_type, severity, self._dashboard_url)
            text = render_alert_text(alerts, alert_type, severity, self._dashboard_url)
            return html, text

        body = self._renderer(alerts, alert_type, severity)
        if inspect.isawaitable(body):
            body = await body
        if not isinstance(body, str):
            raise TypeError(f"renderer returned {type(body).__name__}, expected str")
        return body, None

    def _require_sender(
        self, sender: str | None, recipient: str, alert_type: str
    ) -> str:
        """Return *sender*, or raise ConfigurationError if an address is missing."""
        if not sender:
            logger.error("alert_no_sender", alert_type=alert_type, recipient=recipient)
            raise ConfigurationError(
                "No from email provided",
                alert_type=alert_type,
                recipient=recipient,
                context={"hint": "Set alerts.from_email or pass from_email"},
            )
        if not recipient:
            logger.error("alert_no_recipient", alert_type=alert_type)
            raise ConfigurationError(
                "No recipient email configured",
                alert_type=alert_type,
                context={"hint": "Set alerts.admin_email"},
            )
        return sender

    def _disabled(self, alert_type: str) -> DispatchResult:
        logger.info("alert_send_skipped_disabled", alert_type=alert_type)
        return DispatchResult(
            error=AlertsDisabledError(
                "Alerting is disabled", alert_type=alert_type, recipient=self._admin_email
            )
        )

    def _log_decision(self, alert: Alert) -> None:
        decision_logger.info(
            "alert",
            alert_type=alert.type.value,
            severity=alert.severity.name,
            source_name=alert.source_name,
            message=alert.message,
            timestamp=alert.timestamp.isoformat(),
            context=alert.context,
        )

    # ── Lifecycle ─────────────────────────────────────────────────

    async def close(self, timeout: float = 30.0) -> None:
        """Flush open buckets, wait for in-flight sends, close the transport.

        Sends still running after *timeout* seconds are cancelled and logged
        with the number of alerts they carried.
        """
        self._closing = True
        for alert_type in list(self._buckets):
            self._flush(alert_type)

        if not await self.drain(timeout):
            stuck = list(self._inflight)
            logger.error("alert_sends_abandoned_on_close", count=len(stuck), timeout=timeout)
            for task in stuck:
                task.cancel()
            await asyncio.gather(*stuck, return_exceptions=True)

        try:
            await self._transport.close()
        except Exception:
            logger.exception("transport_close_error", transport=type(self._transport).__name__)

"""Send-with-retry — bounded attempts, classified errors, configured backoff."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from jobalert.alerting.exceptions import DeliveryFailedError
from jobalert.alerting.transport import Transport
from jobalert.alerting.types import (
    DispatchResult,
    EmailMessage,
    EmailSent,
    TransportFailure,
)
from jobalert.core.clock import Clock
from jobalert.core.config import RetryConfig

logger = structlog.get_logger(__name__)

_TRANSIENT_STATUS_CODES = frozenset({429, 503})
_TRANSIENT_MESSAGE_MARKERS = ("timeout", "network", "econnrefused")

_FALLBACK_DELAY_MS = 1000


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a send and how long to wait in between."""

    max_attempts: int = 3
    delays_ms: tuple[int, ...] = field(default=(1000, 2000, 4000))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(max_attempts=config.max_attempts, delays_ms=tuple(config.delays_ms))

    def delay_for(self, attempt: int) -> float:
        """Backoff in seconds after the failed *attempt* (0-based)."""
        if not self.delays_ms:
            return _FALLBACK_DELAY_MS / 1000.0
        idx = min(attempt, len(self.delays_ms) - 1)
        return self.delays_ms[idx] / 1000.0


def is_transient_error(error: TransportFailure) -> bool:
    """Return True if retrying *error* may succeed.

    Rate limiting (429) and service-unavailable (503) are transient, as is any
    message mentioning a timeout, network failure or refused connection.
    Everything else (auth, bad recipient, unknown) is terminal.
    """
    if error.status_code in _TRANSIENT_STATUS_CODES:
        return True
    msg = (error.message or "").lower()
    return any(marker in msg for marker in _TRANSIENT_MESSAGE_MARKERS)


async def send_with_retry(
    transport: Transport,
    message: EmailMessage,
    policy: RetryPolicy,
    clock: Clock,
    *,
    alert_type: str,
) -> DispatchResult:
    """Send *message*, retrying transient failures per *policy*.

    Returns a DispatchResult carrying either the EmailSent or a
    DeliveryFailedError with the number of attempts made.
    """
    recipient = ", ".join(message.to)
    log = logger.bind(recipient=recipient, alert_type=alert_type)
    last = policy.max_attempts - 1

    for attempt in range(policy.max_attempts):
        log.info(
            "alert_send_attempt",
            attempt=attempt + 1,
            max_attempts=policy.max_attempts,
        )

        try:
            result = await transport.send(message)
        except Exception as exc:
            if attempt < last:
                delay = policy.delay_for(attempt)
                log.warning(
                    "alert_send_error_retrying",
                    error=str(exc),
                    attempt=attempt + 1,
                    next_delay_secs=delay,
                )
                await clock.sleep(delay)
                continue

            log.error(
                "alert_send_failed_after_retries",
                error=str(exc),
                attempt=attempt + 1,
            )
            return DispatchResult(
                error=DeliveryFailedError(
                    "Failed to send alert email after retries",
                    attempts=attempt + 1,
                    last_error=str(exc),
                    transient=True,
                    alert_type=alert_type,
                    recipient=recipient,
                )
            )

        if result.error is not None:
            transient = is_transient_error(result.error)
            if not transient or attempt == last:
                log.error(
                    "alert_send_failed",
                    error=result.error.message,
                    status_code=result.error.status_code,
                    attempt=attempt + 1,
                    transient=transient,
                )
                return DispatchResult(
                    error=DeliveryFailedError(
                        "Failed to send alert email",
                        attempts=attempt + 1,
                        last_error=result.error.message,
                        status_code=result.error.status_code,
                        transient=transient,
                        alert_type=alert_type,
                        recipient=recipient,
                    )
                )

            delay = policy.delay_for(attempt)
            log.warning(
                "alert_send_transient_error",
                error=result.error.message,
                status_code=result.error.status_code,
                attempt=attempt + 1,
                next_delay_secs=delay,
            )
            await clock.sleep(delay)
            continue

        if not result.message_id:
            log.error("alert_send_invalid_response", attempt=attempt + 1)
            return DispatchResult(
                error=DeliveryFailedError(
                    "Invalid response from transport",
                    attempts=attempt + 1,
                    last_error="missing message id",
                    alert_type=alert_type,
                    recipient=recipient,
                )
            )

        log.info(
            "alert_send_succeeded",
            message_id=result.message_id,
            attempt=attempt + 1,
        )
        return DispatchResult(
            sent=EmailSent(
                id=result.message_id,
                timestamp=clock.now(),
                attempts=attempt + 1,
            )
        )

    # Unreachable: the final attempt always returns above.
    raise AssertionError("retry loop exited without a result")

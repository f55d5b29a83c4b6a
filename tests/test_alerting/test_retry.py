"""Tests for send_with_retry and error classification."""

from __future__ import annotations

import pytest

from jobalert.alerting.exceptions import AlertError, DeliveryFailedError
from jobalert.alerting.retry import RetryPolicy, is_transient_error, send_with_retry
from jobalert.alerting.transport import Transport
from jobalert.alerting.types import (
    DispatchResult,
    EmailMessage,
    TransportFailure,
    TransportResult,
)
from jobalert.core.clock import ManualClock
from jobalert.core.config import RetryConfig


# ── Helpers ─────────────────────────────────────────────────────


class ScriptedTransport(Transport):
    """Returns (or raises) the scripted outcomes in order, then succeeds."""

    def __init__(self, outcomes: list[TransportResult | Exception] | None = None) -> None:
        self.sent: list[EmailMessage] = []
        self._outcomes = list(outcomes or [])

    async def send(self, message: EmailMessage) -> TransportResult:
        self.sent.append(message)
        if self._outcomes:
            outcome = self._outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return TransportResult.success(f"msg-{len(self.sent)}")

    async def verify(self) -> bool:
        return True

    async def close(self) -> None:
        pass


def _msg() -> EmailMessage:
    return EmailMessage(
        from_email="alerts@example.com",
        to=["oncall@example.com"],
        subject="test",
        html="<p>hi</p>",
    )


def _unavailable() -> TransportResult:
    return TransportResult.failure("Service unavailable", 503)


def _policy(**kw: object) -> RetryPolicy:
    defaults: dict[str, object] = {"max_attempts": 3, "delays_ms": (1000, 2000, 4000)}
    defaults.update(kw)
    return RetryPolicy(**defaults)  # type: ignore[arg-type]


async def _send(
    transport: Transport, policy: RetryPolicy, clock: ManualClock
):
    return await send_with_retry(transport, _msg(), policy, clock, alert_type="JOB_FAILURE")


# ── Classification ──────────────────────────────────────────────


class TestIsTransientError:
    @pytest.mark.parametrize(
        ("message", "status", "expected"),
        [
            ("Too many requests", 429, True),
            ("Service unavailable", 503, True),
            ("Invalid credentials", 401, False),
            ("Bad recipient", 400, False),
            ("Internal error", 500, False),
            ("Connection timeout", None, True),
            ("Network is unreachable", None, True),
            ("connect ECONNREFUSED 127.0.0.1:587", None, True),
            ("socket TIMEOUT after 30s", 500, True),
            ("", None, False),
            ("mailbox full", None, False),
        ],
    )
    def test_classification(self, message: str, status: int | None, expected: bool) -> None:
        assert is_transient_error(TransportFailure(message=message, status_code=status)) is expected


# ── RetryPolicy ─────────────────────────────────────────────────


class TestRetryPolicy:
    def test_delay_for_uses_configured_sequence(self) -> None:
        p = _policy()
        assert p.delay_for(0) == 1.0
        assert p.delay_for(1) == 2.0
        assert p.delay_for(2) == 4.0

    def test_delay_for_reuses_last_delay(self) -> None:
        p = _policy(delays_ms=(100, 200))
        assert p.delay_for(5) == 0.2

    def test_empty_delays_fall_back_to_one_second(self) -> None:
        p = _policy(delays_ms=())
        assert p.delay_for(0) == 1.0

    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_from_config(self) -> None:
        p = RetryPolicy.from_config(RetryConfig(max_attempts=4, delays_ms=[10, 20]))
        assert p.max_attempts == 4
        assert p.delays_ms == (10, 20)


# ── send_with_retry ─────────────────────────────────────────────


class TestSendWithRetry:
    async def test_first_attempt_success(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport()
        result = await _send(transport, _policy(), clock)
        assert result.ok
        assert result.sent is not None
        assert result.sent.id == "msg-1"
        assert result.sent.attempts == 1
        assert clock.sleeps == []

    async def test_transient_then_success_on_final_attempt(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([_unavailable(), _unavailable()])
        result = await _send(transport, _policy(), clock)
        assert result.ok
        assert result.error is None
        assert result.sent is not None
        assert result.sent.attempts == 3
        assert len(transport.sent) == 3
        assert clock.sleeps == [1.0, 2.0]
        assert sum(clock.sleeps) >= 3.0

    async def test_transient_exhausts_all_attempts(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([_unavailable()] * 3)
        result = await _send(transport, _policy(), clock)
        assert not result.ok
        assert isinstance(result.error, DeliveryFailedError)
        assert result.error.attempts == 3
        assert result.error.status_code == 503
        assert result.error.transient is True
        assert len(transport.sent) == 3
        # No sleep after the last attempt.
        assert clock.sleeps == [1.0, 2.0]

    async def test_terminal_error_not_retried(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([TransportResult.failure("Invalid login", 401)])
        result = await _send(transport, _policy(), clock)
        assert isinstance(result.error, DeliveryFailedError)
        assert result.error.attempts == 1
        assert result.error.transient is False
        assert result.error.last_error == "Invalid login"
        assert len(transport.sent) == 1
        assert clock.sleeps == []

    async def test_terminal_after_transient_stops_immediately(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport(
            [_unavailable(), TransportResult.failure("bad recipient", 400)]
        )
        result = await _send(transport, _policy(max_attempts=5), clock)
        assert isinstance(result.error, DeliveryFailedError)
        assert result.error.attempts == 2
        assert len(transport.sent) == 2
        assert clock.sleeps == [1.0]

    async def test_unexpected_exception_is_retried(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([RuntimeError("boom")])
        result = await _send(transport, _policy(), clock)
        assert result.ok
        assert len(transport.sent) == 2
        assert clock.sleeps == [1.0]

    async def test_exception_on_final_attempt_fails(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([RuntimeError("boom")] * 3)
        result = await _send(transport, _policy(), clock)
        assert isinstance(result.error, DeliveryFailedError)
        assert result.error.attempts == 3
        assert result.error.last_error == "boom"

    async def test_delays_clamped_to_last_configured(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([_unavailable()] * 5)
        result = await _send(transport, _policy(max_attempts=5, delays_ms=(100, 200)), clock)
        assert not result.ok
        assert clock.sleeps == [0.1, 0.2, 0.2, 0.2]

    async def test_single_attempt_policy_never_sleeps(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([_unavailable()])
        result = await _send(transport, _policy(max_attempts=1), clock)
        assert isinstance(result.error, DeliveryFailedError)
        assert result.error.attempts == 1
        assert clock.sleeps == []

    async def test_missing_message_id_is_terminal(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([TransportResult()])
        result = await _send(transport, _policy(), clock)
        assert isinstance(result.error, DeliveryFailedError)
        assert result.error.attempts == 1
        assert len(transport.sent) == 1

    async def test_success_timestamp_from_clock(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([_unavailable()])
        result = await _send(transport, _policy(), clock)
        assert result.sent is not None
        assert result.sent.timestamp == clock.now()

    async def test_unwrap_raises_carried_error(self) -> None:
        clock = ManualClock()
        transport = ScriptedTransport([TransportResult.failure("denied", 401)])
        result = await _send(transport, _policy(), clock)
        with pytest.raises(DeliveryFailedError):
            result.unwrap()

    async def test_unwrap_returns_sent(self) -> None:
        clock = ManualClock()
        result = await _send(ScriptedTransport(), _policy(), clock)
        assert result.unwrap().id == "msg-1"

    def test_unwrap_empty_result_raises(self) -> None:
        with pytest.raises(AlertError):
            DispatchResult().unwrap()

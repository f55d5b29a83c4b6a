"""FailureDetector — per-source sliding window that escalates repeated failures."""

from __future__ import annotations

import asyncio
import bisect
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog

from jobalert.alerting.types import Alert, AlertSeverity, AlertType
from jobalert.core.clock import Clock, SystemClock
from jobalert.core.config import ThresholdsConfig

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class AlertSink(Protocol):
    """Anything that accepts escalation alerts (the AlertDispatcher)."""

    def submit(self, alert: Alert) -> None: ...


class FailureDetector:
    """Tracks failure timestamps per source and escalates on a rate threshold.

    Each source keeps a sorted list of failure times trimmed to the trailing
    ``time_window_minutes``.  When a report brings the count to
    ``failures_in_window``, one REPEATED_FAILURES/HIGH alert is submitted to
    the sink and the source's window is cleared so the next report starts
    from zero.  Sources with empty windows are forgotten.
    """

    def __init__(
        self,
        sink: AlertSink,
        config: ThresholdsConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._sink = sink
        self._config = config or ThresholdsConfig()
        self._clock: Clock = clock or SystemClock()
        self._window = timedelta(minutes=self._config.time_window_minutes)
        self._history: dict[str, list[datetime]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ── Properties ────────────────────────────────────────────────

    @property
    def failures_in_window(self) -> int:
        return self._config.failures_in_window

    @property
    def time_window_minutes(self) -> float:
        return self._config.time_window_minutes

    @property
    def tracked_sources(self) -> list[str]:
        return list(self._history)

    # ── Reporting ─────────────────────────────────────────────────

    async def track_failure(
        self,
        source_name: str,
        error: str,
        *,
        occurred_at: datetime | None = None,
        job_id: str | None = None,
    ) -> Alert | None:
        """Record a failure for *source_name*.

        A naive *occurred_at* is interpreted as UTC.

        Returns the escalation alert if this report crossed the threshold,
        else None.
        """
        at = _as_utc(occurred_at or self._clock.now())
        lock = self._locks.setdefault(source_name, asyncio.Lock())

        async with lock:
            failures = self._history.setdefault(source_name, [])
            bisect.insort(failures, at)
            del failures[: bisect.bisect_left(failures, at - self._window)]
            count = len(failures)

            logger.info(
                "job_failure_tracked",
                source_name=source_name,
                job_id=job_id,
                recent_failure_count=count,
                threshold=self._config.failures_in_window,
                time_window_minutes=self._config.time_window_minutes,
            )

            if count < self._config.failures_in_window:
                return None

            alert = self._build_alert(source_name, count, at, error, job_id)
            self._history.pop(source_name, None)

        self._forget(source_name)
        logger.warning(
            "failure_threshold_exceeded",
            source_name=source_name,
            failure_count=count,
            threshold=self._config.failures_in_window,
        )
        try:
            self._sink.submit(alert)
        except Exception:
            logger.exception("escalation_submit_error", source_name=source_name)
        return alert

    def _build_alert(
        self,
        source_name: str,
        count: int,
        at: datetime,
        error: str,
        job_id: str | None,
    ) -> Alert:
        minutes = self._config.time_window_minutes
        threshold = self._config.failures_in_window
        return Alert(
            type=AlertType.REPEATED_FAILURES,
            severity=AlertSeverity.HIGH,
            source_name=source_name,
            timestamp=at,
            message=(
                f"{source_name} has {count} failures in {minutes:g} minutes"
                f" (threshold: {threshold})"
            ),
            context={
                "failure_count": count,
                "time_window_minutes": minutes,
                "threshold": threshold,
                "job_id": job_id,
                "error": error,
            },
        )

    # ── Reads (pure) ──────────────────────────────────────────────

    def current_count(self, source_name: str, now: datetime | None = None) -> int:
        """Failures for *source_name* within ``[now - window, now]``."""
        failures = self._history.get(source_name)
        if not failures:
            return 0
        at = _as_utc(now or self._clock.now())
        lo = bisect.bisect_left(failures, at - self._window)
        hi = bisect.bisect_right(failures, at)
        return max(hi - lo, 0)

    # ── Maintenance ───────────────────────────────────────────────

    def reset(self, source_name: str) -> None:
        """Clear failure history for one source."""
        self._forget(source_name)
        logger.info("failure_history_reset", source_name=source_name)

    def reset_all(self) -> None:
        """Clear all failure history (useful for testing)."""
        self._history.clear()
        self._locks = {k: v for k, v in self._locks.items() if v.locked()}
        logger.info("failure_history_cleared")

    def prune(self, now: datetime | None = None) -> int:
        """Forget sources whose failures have all aged out. Returns how many."""
        at = _as_utc(now or self._clock.now())
        cutoff = at - self._window
        stale = [s for s, ts in self._history.items() if not ts or ts[-1] < cutoff]
        for source_name in stale:
            self._forget(source_name)
        if stale:
            logger.debug("failure_history_pruned", removed=len(stale))
        return len(stale)

    def _forget(self, source_name: str) -> None:
        self._history.pop(source_name, None)
        lock = self._locks.get(source_name)
        if lock is not None and not lock.locked():
            del self._locks[source_name]

"""Domain types for the alerting subsystem."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from jobalert.alerting.exceptions import AlertError


class AlertType(StrEnum):
    """Alert category — debounce buckets are keyed by this."""

    JOB_FAILURE = "JOB_FAILURE"
    REPEATED_FAILURES = "REPEATED_FAILURES"
    RATE_LIMIT = "RATE_LIMIT"
    WORKER_DOWN = "WORKER_DOWN"
    QUEUE_BACKLOG = "QUEUE_BACKLOG"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    CUSTOM = "CUSTOM"


class AlertSeverity(IntEnum):
    """Alert severity — ordered so comparisons work naturally."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3


class Alert(BaseModel):
    """A single alert raised by a worker or synthesized by the detector."""

    model_config = ConfigDict(frozen=True)

    type: AlertType
    severity: AlertSeverity
    source_name: str
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    context: dict[str, Any] = Field(default_factory=dict)


# ── Transport payloads ──────────────────────────────────────────


class EmailMessage(BaseModel):
    """Outbound message handed to a Transport."""

    from_email: str
    to: list[str]
    subject: str
    html: str | None = None
    text: str | None = None
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    reply_to: str | None = None


class CustomEmail(BaseModel):
    """Ad hoc administrative email — bypasses alert templating."""

    subject: str
    html: str | None = None
    text: str | None = None
    to: list[str] | None = None
    from_email: str | None = None
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)


class TransportFailure(BaseModel):
    """Structured send failure reported by a Transport."""

    message: str
    status_code: int | None = None


class TransportResult(BaseModel):
    """Outcome of one Transport.send call — exactly one side is set."""

    message_id: str | None = None
    error: TransportFailure | None = None

    @classmethod
    def success(cls, message_id: str) -> TransportResult:
        return cls(message_id=message_id)

    @classmethod
    def failure(cls, message: str, status_code: int | None = None) -> TransportResult:
        return cls(error=TransportFailure(message=message, status_code=status_code))


# ── Dispatch outcomes ───────────────────────────────────────────


class EmailSent(BaseModel):
    """A delivered notification."""

    id: str
    timestamp: datetime
    attempts: int = 1


class DispatchResult(BaseModel):
    """Either a delivered email or the typed error that prevented it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    sent: EmailSent | None = None
    error: AlertError | None = None

    @property
    def ok(self) -> bool:
        return self.sent is not None and self.error is None

    def unwrap(self) -> EmailSent:
        """Return the EmailSent or raise the carried error."""
        if self.error is not None:
            raise self.error
        if self.sent is None:
            raise AlertError("Dispatch produced no result")
        return self.sent

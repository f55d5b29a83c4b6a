"""Pure functions that turn a batch of alerts into an email subject and body."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Sequence
from html import escape as html_escape
from typing import Protocol

from jobalert.alerting.types import Alert, AlertSeverity, AlertType


class Renderer(Protocol):
    """Builds a notification body for a batch of alerts (sync or async)."""

    def __call__(
        self,
        alerts: Sequence[Alert],
        alert_type: AlertType,
        severity: AlertSeverity,
    ) -> str | Awaitable[str]: ...


# ── Severity styling ────────────────────────────────────────────

_SEVERITY_ICONS: dict[AlertSeverity, str] = {
    AlertSeverity.CRITICAL: "🚨",
    AlertSeverity.HIGH: "⚠️",
    AlertSeverity.MEDIUM: "ℹ️",
    AlertSeverity.LOW: "📝",
}

_SEVERITY_COLORS: dict[AlertSeverity, str] = {
    AlertSeverity.CRITICAL: "#dc2626",  # red
    AlertSeverity.HIGH: "#f59e0b",      # amber
    AlertSeverity.MEDIUM: "#3b82f6",    # blue
    AlertSeverity.LOW: "#6b7280",       # grey
}

_DEFAULT_ICON = _SEVERITY_ICONS[AlertSeverity.MEDIUM]
_DEFAULT_COLOR = _SEVERITY_COLORS[AlertSeverity.LOW]


def severity_icon(severity: AlertSeverity) -> str:
    return _SEVERITY_ICONS.get(severity, _DEFAULT_ICON)


def alert_subject(severity: AlertSeverity, alert_type: AlertType | str) -> str:
    """Subject line, e.g. ``"🚨 CRITICAL: WORKER_DOWN"``."""
    type_label = alert_type.value if isinstance(alert_type, AlertType) else alert_type
    return f"{severity_icon(severity)} {severity.name}: {type_label}"


def _context_json(alert: Alert) -> str:
    return json.dumps(alert.context, indent=2, sort_keys=True, default=str)


# ── Renderers ───────────────────────────────────────────────────


def render_alert_text(
    alerts: Sequence[Alert],
    alert_type: AlertType,
    severity: AlertSeverity,
    dashboard_url: str | None = None,
) -> str:
    """Plain-text body used as the text/plain alternative."""
    total = len(alerts)
    lines = [
        f"{severity.name} Alert: {alert_type.value}",
        f"Total Alerts: {total}",
        "",
    ]
    for i, alert in enumerate(alerts, start=1):
        lines.append(f"Alert {i} of {total}")
        lines.append(f"  Source: {alert.source_name}")
        lines.append(f"  Time: {alert.timestamp.isoformat()}")
        lines.append(f"  Message: {alert.message}")
        if alert.context:
            lines.append("  Context:")
            lines.extend(f"    {ln}" for ln in _context_json(alert).splitlines())
        lines.append("")
    if dashboard_url:
        lines.append(f"Dashboard: {dashboard_url}")
    return "\n".join(lines).rstrip() + "\n"


def render_alert_html(
    alerts: Sequence[Alert],
    alert_type: AlertType,
    severity: AlertSeverity,
    dashboard_url: str | None = None,
) -> str:
    """HTML body — one card per alert, header coloured by severity."""
    color = _SEVERITY_COLORS.get(severity, _DEFAULT_COLOR)
    heading = html_escape(f"{severity_icon(severity)} {severity.name} Alert: {alert_type.value}")
    total = len(alerts)

    cards: list[str] = []
    for i, alert in enumerate(alerts, start=1):
        parts = [
            '<div class="alert-card">',
            f"<p><b>Alert {i} of {total}</b></p>",
            f"<p><b>Source:</b> {html_escape(alert.source_name)}</p>",
            f"<p><b>Time:</b> {html_escape(alert.timestamp.isoformat())}</p>",
            f"<p><b>Message:</b> {html_escape(alert.message)}</p>",
        ]
        if alert.context:
            parts.append("<p><b>Context:</b></p>")
            parts.append(f"<pre>{html_escape(_context_json(alert))}</pre>")
        parts.append("</div>")
        cards.append("\n".join(parts))

    cta = ""
    if dashboard_url:
        url = html_escape(dashboard_url, quote=True)
        cta = (
            "<hr>\n"
            "<p>View failed jobs and retry them in the dashboard:</p>\n"
            f'<p><a href="{url}">{url}</a></p>\n'
        )

    return (
        "<!DOCTYPE html>\n"
        '<html><head><meta charset="utf-8"></head>\n'
        '<body style="font-family: sans-serif;">\n'
        f'<div style="background-color: {color}; color: #ffffff; padding: 16px;">'
        f"<h2>{heading}</h2></div>\n"
        f"<p><b>Total Alerts:</b> {total}</p>\n"
        f"<p><b>Alert Type:</b> {html_escape(alert_type.value)}</p>\n"
        f"<p><b>Severity:</b> {severity.name}</p>\n"
        "<hr>\n"
        + "\n<hr>\n".join(cards)
        + "\n"
        + cta
        + "<hr>\n"
        '<p style="font-size: 12px; color: #666666;">'
        "This is an automated alert from the job monitoring system.</p>\n"
        "</body></html>\n"
    )

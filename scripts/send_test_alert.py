#!/usr/bin/env python3
"""Smoke-test the alerting pipeline against the configured SMTP server.

Usage::

    # Verify the SMTP connection and send one test alert immediately
    python scripts/send_test_alert.py

    # Custom config file
    python scripts/send_test_alert.py --config config/settings.yaml

    # Only check connectivity
    python scripts/send_test_alert.py --verify-only

    # Report failures through the detector; the escalation is flushed on exit
    python scripts/send_test_alert.py --simulate-failures 5 --source worker-A
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from jobalert.alerting.factory import create_alerting_stack
from jobalert.alerting.types import Alert, AlertSeverity, AlertType
from jobalert.core.config import load_settings
from jobalert.core.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Wire the stack, probe the transport, and send or simulate alerts."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    dispatcher, detector = create_alerting_stack(settings)

    logger.info(
        "alerting_starting",
        enabled=settings.alerts.enabled,
        smtp_host=settings.smtp.host,
        admin_email=settings.alerts.admin_email,
        debounce_window_ms=settings.alerts.debounce_window_ms,
    )

    if not await dispatcher.verify_connection():
        logger.error("smtp_unreachable", host=settings.smtp.host, port=settings.smtp.port)
        print(
            f"Could not connect to SMTP server {settings.smtp.host}:{settings.smtp.port}.",
            file=sys.stderr,
        )
        await dispatcher.close()
        return 1

    if args.verify_only:
        logger.info("smtp_verified", host=settings.smtp.host)
        await dispatcher.close()
        return 0

    code = 0
    if args.simulate_failures:
        for i in range(args.simulate_failures):
            await detector.track_failure(
                args.source,
                f"simulated failure {i + 1}",
                job_id=f"test-job-{i + 1}",
            )
        logger.info(
            "failures_simulated",
            source_name=args.source,
            count=args.simulate_failures,
            pending=dispatcher.pending_counts(),
        )
    else:
        result = await dispatcher.send_alert(
            Alert(
                type=AlertType.SYSTEM_ERROR,
                severity=AlertSeverity.LOW,
                source_name=args.source,
                message="Test alert from send_test_alert.py",
            )
        )
        if result.error is not None:
            print(f"Send failed: {result.error.message}", file=sys.stderr)
            code = 1

    # Flushes any debounced escalation before exiting.
    await dispatcher.close()
    return code


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Send a test alert through the configured alerting stack.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Only check SMTP connectivity",
    )
    parser.add_argument(
        "--simulate-failures",
        type=int,
        default=0,
        help="Report N failures through the detector instead of a direct send",
    )
    parser.add_argument(
        "--source",
        default="test-worker",
        help="Source (worker) name used for the test alert",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()

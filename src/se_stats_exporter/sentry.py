"""Sentry SDK integration for se-stats-exporter.

This module provides:
- Sentry initialization with asyncio and logging support
- System and exporter context for error tracking
- Breadcrumbs for each collection cycle
- A scheduler callback reporting sustained upstream failures

Sentry stays disabled unless a DSN is configured.

Usage:
    from se_stats_exporter.sentry import init_sentry, FailureReporter

    if init_sentry(config.sentry):
        scheduler.add_callback(FailureReporter(config.sentry.failure_threshold))
"""

from __future__ import annotations

import logging
import os
import platform
import sys
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from se_stats_exporter import __version__
from se_stats_exporter.collectors.base import CollectionResult
from se_stats_exporter.config import Config, SentryConfig


def init_sentry(config: SentryConfig, *, debug: bool = False) -> bool:
    """Initialize Sentry SDK with exporter-specific configuration.

    Configures Sentry with:
    - AsyncioIntegration for async task error capture
    - LoggingIntegration (INFO+ as breadcrumbs, ERROR+ as events)
    - System context (OS, Python version, architecture)
    - Default tags for filtering

    Args:
        config: Sentry configuration section
        debug: Enable Sentry debug mode for troubleshooting

    Returns:
        True if Sentry was initialized, False if no DSN is configured
    """
    if not config.enabled:
        return False

    sentry_sdk.init(
        dsn=config.dsn,
        environment=config.environment,
        release=f"se-stats-exporter@{__version__}",
        traces_sample_rate=config.traces_sample_rate,
        debug=debug,
        send_default_pii=False,
        integrations=[
            AsyncioIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        before_send=_before_send,
    )

    sentry_sdk.set_tag("app.version", __version__)
    sentry_sdk.set_tag("python.version", platform.python_version())
    sentry_sdk.set_tag("os.name", platform.system())
    set_system_context()
    return True


def _before_send(
    event: dict[str, Any],
    hint: dict[str, Any],
) -> dict[str, Any] | None:
    """Process events before sending to Sentry.

    Args:
        event: The event dictionary
        hint: Additional context about the event

    Returns:
        The event to send, or None to drop it
    """
    if "exc_info" in hint:
        exc_type, _, _ = hint["exc_info"]
        if exc_type is KeyboardInterrupt:
            return None

    return event


def set_system_context() -> None:
    """Set system-level context for all events."""
    sentry_sdk.set_context("system", {
        "os": platform.system(),
        "os_version": platform.release(),
        "python_version": platform.python_version(),
        "python_implementation": platform.python_implementation(),
        "architecture": platform.machine(),
        "is_tty": sys.stdout.isatty(),
        "in_container": os.path.exists("/.dockerenv"),
    })


def set_exporter_context(config: Config, *, config_path: str | None = None) -> None:
    """Set exporter-specific context for error tracking.

    Args:
        config: The loaded configuration
        config_path: Path to config file if custom
    """
    context: dict[str, Any] = {
        "schema": config.upstream.schema_.value,
        "channel": config.upstream.channel,
        "interval": config.collector.interval,
        "timeout": config.upstream.timeout,
        "exports": [export.value for export in config.collector.exports],
    }
    if config_path is not None:
        context["config_path"] = config_path
        sentry_sdk.set_tag("exporter.custom_config", "true")

    sentry_sdk.set_tag("exporter.schema", config.upstream.schema_.value)
    sentry_sdk.set_context("exporter", context)


def add_breadcrumb(
    message: str,
    category: str = "exporter",
    level: str = "info",
    data: dict[str, Any] | None = None,
) -> None:
    """Add a breadcrumb for debugging.

    Args:
        message: Description of the event
        category: Category for grouping (e.g., "collector", "server")
        level: Severity level (debug, info, warning, error)
        data: Additional data to attach
    """
    sentry_sdk.add_breadcrumb(
        message=message,
        category=category,
        level=level,
        data=data,
    )


def capture_collection_failure(result: CollectionResult, consecutive: int) -> None:
    """Report a sustained collection failure with context.

    Args:
        result: The failed collection result
        consecutive: Number of consecutive failures so far
    """
    failure = result.failure
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("collector", result.collector_name)
        if failure is not None:
            scope.set_tag("failure.kind", failure.kind)
        scope.set_context("collection_failure", {
            "collector": result.collector_name,
            "consecutive_failures": consecutive,
            "collection_time_ms": result.collection_time_ms,
            "message": failure.message if failure is not None else None,
        })
        sentry_sdk.capture_message(
            f"Collection failing for {consecutive} consecutive cycles: {result.error}",
            level="error",
        )


class FailureReporter:
    """Scheduler callback that reports to Sentry once failures persist.

    Every cycle leaves a breadcrumb. A single event is captured when the
    consecutive failure count reaches the threshold; the count resets on
    the next success.
    """

    def __init__(self, threshold: int = 5) -> None:
        if threshold < 1:
            raise ValueError("Threshold must be at least 1")
        self.threshold = threshold
        self.consecutive = 0

    async def __call__(self, result: CollectionResult) -> None:
        if result.success:
            if self.consecutive:
                add_breadcrumb(
                    f"Collection recovered after {self.consecutive} failures",
                    category="collector",
                )
            self.consecutive = 0
            return

        self.consecutive += 1
        add_breadcrumb(
            f"Collection failed: {result.error}",
            category="collector",
            level="warning",
            data={"consecutive": self.consecutive},
        )
        if self.consecutive == self.threshold:
            capture_collection_failure(result, self.consecutive)

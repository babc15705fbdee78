"""Prometheus text exposition of a Snapshot.

This module renders the current Snapshot into the Prometheus text format,
followed by the exporter's own health metrics. Rendering depends only on the
Snapshot, so rendering the same Snapshot twice yields identical bytes.

Format specification: https://prometheus.io/docs/instrumenting/exposition_formats/
"""

from __future__ import annotations

from datetime import datetime
import math

from se_stats_exporter import __version__
from se_stats_exporter.models.base import Metric, MetricKind, Snapshot

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _escape_label_value(value: str) -> str:
    """Escape backslash, newline, and double quotes in a label value."""
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    """Escape backslash and newline in HELP text."""
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_labels(labels: tuple[tuple[str, str], ...] | dict[str, str]) -> str:
    """Format labels as Prometheus label string, sorted by label name.

    Args:
        labels: Label pairs or mapping of label name -> value

    Returns:
        Formatted label string like {bar="qux",foo="baz"}
    """
    items = sorted(labels.items() if isinstance(labels, dict) else labels)
    if not items:
        return ""
    pairs = [f'{k}="{_escape_label_value(str(v))}"' for k, v in items]
    return "{" + ",".join(pairs) + "}"


def _format_value(value: int | float) -> str:
    """Format a sample value."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(float(value))


def _unix_seconds(when: datetime | None) -> float:
    return when.timestamp() if when is not None else 0.0


class PrometheusFormatter:
    """Prometheus text format formatter.

    Attributes:
        prefix: Prefix of the self-observability metric names
        include_help: Emit ``# HELP`` lines
        include_type: Emit ``# TYPE`` lines
    """

    def __init__(
        self,
        prefix: str = "se",
        include_help: bool = True,
        include_type: bool = True,
    ) -> None:
        self.prefix = prefix
        self.include_help = include_help
        self.include_type = include_type

    def format(self, snapshot: Snapshot) -> str:
        """Render a snapshot and the exporter health metrics.

        Args:
            snapshot: The snapshot to render

        Returns:
            Prometheus exposition format string

        Example output:
            # HELP se_emote top emotes
            # TYPE se_emote gauge
            se_emote{emote="KEKW",provider="bttv"} 1234
            # HELP se_exporter_consecutive_failures Failed collections since the last success
            # TYPE se_exporter_consecutive_failures gauge
            se_exporter_consecutive_failures 0
        """
        lines: list[str] = []

        families: dict[str, list[Metric]] = {}
        for metric in snapshot.metrics:
            families.setdefault(metric.name, []).append(metric)

        for name, metrics in families.items():
            lines.extend(self._format_family(name, metrics))

        lines.extend(self._format_health(snapshot))

        return "\n".join(lines) + "\n"

    def _header(self, name: str, kind: MetricKind, help_text: str) -> list[str]:
        lines: list[str] = []
        if self.include_help:
            lines.append(f"# HELP {name} {_escape_help(help_text or name)}")
        if self.include_type:
            lines.append(f"# TYPE {name} {kind.value}")
        return lines

    def _format_family(self, name: str, metrics: list[Metric]) -> list[str]:
        first = metrics[0]
        lines = self._header(name, first.kind, first.help)
        for metric in metrics:
            lines.append(f"{name}{_format_labels(metric.labels)} {_format_value(metric.value)}")
        return lines

    def _format_health(self, snapshot: Snapshot) -> list[str]:
        """Format the exporter's self-observability metrics."""
        base = f"{self.prefix}_exporter"
        health: list[tuple[str, MetricKind, str, dict[str, str], int | float]] = [
            (
                f"{base}_last_success_time",
                MetricKind.GAUGE,
                "Unix time of the last successful collection (0 if none)",
                {},
                _unix_seconds(snapshot.last_success_time),
            ),
            (
                f"{base}_last_attempt_time",
                MetricKind.GAUGE,
                "Unix time of the last collection attempt (0 if none)",
                {},
                _unix_seconds(snapshot.last_attempt_time),
            ),
            (
                f"{base}_consecutive_failures",
                MetricKind.GAUGE,
                "Failed collections since the last success",
                {},
                snapshot.consecutive_failures,
            ),
            (
                f"{base}_last_collection_failed",
                MetricKind.GAUGE,
                "Whether the most recent collection attempt failed",
                {},
                1 if snapshot.last_attempt_failed else 0,
            ),
            (
                f"{base}_collections_total",
                MetricKind.COUNTER,
                "Collection attempts since start",
                {},
                snapshot.total_collections,
            ),
            (
                f"{base}_collection_failures_total",
                MetricKind.COUNTER,
                "Failed collection attempts since start",
                {},
                snapshot.total_failures,
            ),
            (
                f"{base}_build_info",
                MetricKind.GAUGE,
                "Exporter build information",
                {"version": __version__},
                1,
            ),
        ]

        lines: list[str] = []
        for name, kind, help_text, labels, value in health:
            lines.extend(self._header(name, kind, help_text))
            lines.append(f"{name}{_format_labels(labels)} {_format_value(value)}")
        return lines

"""Tests for the Prometheus metrics formatter.

Test categories:
- Label formatting and escaping
- Value formatting
- Metric families (HELP/TYPE headers, ordering)
- Exporter health metrics
- Determinism of repeated renders
"""

from __future__ import annotations

from datetime import UTC, datetime
import re

from se_stats_exporter import __version__
from se_stats_exporter.formatters.prometheus import (
    CONTENT_TYPE,
    PrometheusFormatter,
    _escape_help,
    _escape_label_value,
    _format_labels,
    _format_value,
)
from se_stats_exporter.models import CollectionFailure, Metric, MetricKind, MetricSet, Snapshot

SAMPLE_LINE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*(\{([a-zA-Z_][a-zA-Z0-9_]*="([^"\\]|\\.)*",?)*\})? \S+$')


def _snapshot(**kwargs: object) -> Snapshot:
    metrics = MetricSet(
        (
            Metric(name="se_total_messages", kind=MetricKind.COUNTER, value=123456, help="total messages on twitch"),
            Metric(
                name="se_emote",
                kind=MetricKind.GAUGE,
                value=1234,
                labels={"provider": "bttv", "emote": "KEKW"},
                help="top emotes",
            ),
            Metric(
                name="se_emote",
                kind=MetricKind.GAUGE,
                value=4321,
                labels={"provider": "twitch", "emote": "Kappa"},
                help="top emotes",
            ),
        )
    )
    return Snapshot(metrics=metrics, **kwargs)  # type: ignore[arg-type]


class TestLabelFormatting:
    """Test label formatting and escaping."""

    def test_empty_labels(self) -> None:
        """No labels render as nothing."""
        assert _format_labels(()) == ""
        assert _format_labels({}) == ""

    def test_labels_sorted(self) -> None:
        """Labels are sorted by name."""
        assert _format_labels({"provider": "bttv", "emote": "KEKW"}) == '{emote="KEKW",provider="bttv"}'

    def test_escape_label_value(self) -> None:
        """Backslash, quote and newline are escaped."""
        assert _escape_label_value('say "hi"') == 'say \\"hi\\"'
        assert _escape_label_value("a\\b") == "a\\\\b"
        assert _escape_label_value("line1\nline2") == "line1\\nline2"

    def test_escaped_labels_in_output(self) -> None:
        """Escaping is applied when rendering a sample."""
        metrics = MetricSet(
            (Metric(name="se_chatter", kind=MetricKind.GAUGE, value=1, labels={"name": 'x"y\\z'}),)
        )
        output = PrometheusFormatter().format(Snapshot(metrics=metrics))
        assert 'se_chatter{name="x\\"y\\\\z"} 1' in output.splitlines()

    def test_escape_help(self) -> None:
        """HELP text escapes backslash and newline only."""
        assert _escape_help('a\\b\n"c"') == 'a\\\\b\\n"c"'


class TestValueFormatting:
    """Test sample value rendering."""

    def test_integers(self) -> None:
        assert _format_value(1024) == "1024"
        assert _format_value(0) == "0"

    def test_floats(self) -> None:
        assert _format_value(42.0) == "42.0"
        assert _format_value(0.25) == "0.25"

    def test_special_floats(self) -> None:
        assert _format_value(float("nan")) == "NaN"
        assert _format_value(float("inf")) == "+Inf"
        assert _format_value(float("-inf")) == "-Inf"


class TestMetricFamilies:
    """Test rendering of collected metrics."""

    def test_headers_once_per_name(self) -> None:
        """HELP and TYPE appear once per metric name, before its samples."""
        lines = PrometheusFormatter().format(_snapshot()).splitlines()

        assert lines[:7] == [
            "# HELP se_total_messages total messages on twitch",
            "# TYPE se_total_messages counter",
            "se_total_messages 123456",
            "# HELP se_emote top emotes",
            "# TYPE se_emote gauge",
            'se_emote{emote="KEKW",provider="bttv"} 1234',
            'se_emote{emote="Kappa",provider="twitch"} 4321',
        ]
        assert sum(1 for line in lines if line == "# TYPE se_emote gauge") == 1

    def test_sample_lines_are_valid(self) -> None:
        """Every non-comment line is a well-formed sample."""
        output = PrometheusFormatter().format(_snapshot())
        for line in output.splitlines():
            if not line.startswith("#"):
                assert SAMPLE_LINE.match(line), line

    def test_trailing_newline(self) -> None:
        """Output ends with a newline."""
        assert PrometheusFormatter().format(_snapshot()).endswith("\n")

    def test_without_help_and_type(self) -> None:
        """HELP and TYPE lines can be disabled."""
        output = PrometheusFormatter(include_help=False, include_type=False).format(_snapshot())
        assert not any(line.startswith("#") for line in output.splitlines())

    def test_flat_scenario(self) -> None:
        """Named facts render with their original value types."""
        metrics = MetricSet(
            (
                Metric(name="se_cpu", kind=MetricKind.GAUGE, value=42.0),
                Metric(name="se_mem", kind=MetricKind.GAUGE, value=1024),
            )
        )
        lines = PrometheusFormatter().format(Snapshot(metrics=metrics)).splitlines()
        assert "se_cpu 42.0" in lines
        assert "se_mem 1024" in lines

    def test_content_type(self) -> None:
        assert CONTENT_TYPE == "text/plain; version=0.0.4; charset=utf-8"


class TestHealthMetrics:
    """Test the exporter's self-observability metrics."""

    def test_never_succeeded(self) -> None:
        """Before any success only health metrics are rendered."""
        snapshot = Snapshot(
            last_attempt_time=datetime(2024, 1, 1, tzinfo=UTC),
            last_error=CollectionFailure(kind="connection_refused", message="down"),
            consecutive_failures=3,
            total_collections=3,
            total_failures=3,
        )
        lines = PrometheusFormatter().format(snapshot).splitlines()
        samples = [line for line in lines if not line.startswith("#")]

        assert all(line.startswith("se_exporter_") for line in samples)
        assert "se_exporter_last_success_time 0.0" in samples
        assert "se_exporter_last_attempt_time 1704067200.0" in samples
        assert "se_exporter_consecutive_failures 3" in samples
        assert "se_exporter_last_collection_failed 1" in samples
        assert "se_exporter_collections_total 3" in samples
        assert "se_exporter_collection_failures_total 3" in samples

    def test_after_success(self) -> None:
        """A healthy snapshot reports zero failures."""
        when = datetime(2024, 1, 1, tzinfo=UTC)
        lines = PrometheusFormatter().format(
            _snapshot(last_success_time=when, last_attempt_time=when, total_collections=1)
        ).splitlines()

        assert "se_exporter_last_success_time 1704067200.0" in lines
        assert "se_exporter_consecutive_failures 0" in lines
        assert "se_exporter_last_collection_failed 0" in lines
        assert "# TYPE se_exporter_collections_total counter" in lines

    def test_build_info(self) -> None:
        """Build info carries the package version."""
        lines = PrometheusFormatter().format(Snapshot()).splitlines()
        assert f'se_exporter_build_info{{version="{__version__}"}} 1' in lines

    def test_health_after_collected_metrics(self) -> None:
        """Health metrics follow the collected metrics."""
        lines = PrometheusFormatter().format(_snapshot()).splitlines()
        first_health = next(i for i, line in enumerate(lines) if "se_exporter_" in line)
        last_collected = max(i for i, line in enumerate(lines) if line.startswith("se_emote"))
        assert last_collected < first_health

    def test_prefix(self) -> None:
        """Health metric names follow the configured prefix."""
        output = PrometheusFormatter(prefix="custom").format(Snapshot())
        assert "custom_exporter_consecutive_failures 0" in output.splitlines()


class TestDeterminism:
    """Rendering depends only on the snapshot."""

    def test_repeated_renders_identical(self) -> None:
        """The same snapshot renders to identical bytes."""
        formatter = PrometheusFormatter()
        snapshot = _snapshot(last_success_time=datetime(2024, 1, 1, tzinfo=UTC))

        first = formatter.format(snapshot).encode()
        second = formatter.format(snapshot).encode()

        assert first == second

"""Mapping of upstream state into the normalized metrics model.

``transform()`` is a pure function: the same RawState and export selection
always produce an equal MetricSet with the same ordering. A series listed
twice upstream takes the value of its last entry.
"""

from collections.abc import Iterable, Iterator
import math

from se_stats_exporter.errors import TransformError, TransformErrorKind
from se_stats_exporter.models.base import (
    DEFAULT_EXPORTS,
    ExportName,
    Metric,
    MetricKind,
    MetricSet,
    sanitize_metric_name,
)
from se_stats_exporter.upstream.models import ChatStatsState, EmoteStats, FlatState, RawState

DEFAULT_PREFIX = "se"

# Emote providers in export order
EMOTE_PROVIDERS: tuple[tuple[ExportName, str, str], ...] = (
    (ExportName.BTTV, "bttv", "bttv_emotes"),
    (ExportName.FFZ, "ffz", "ffz_emotes"),
    (ExportName.TWITCH, "twitch", "twitch_emotes"),
)


def _check_value(name: str, value: int | float, kind: MetricKind) -> int | float:
    if isinstance(value, float) and not math.isfinite(value):
        raise TransformError(TransformErrorKind.OUT_OF_RANGE, f"{name} is not finite: {value}")
    if kind is MetricKind.COUNTER and value < 0:
        raise TransformError(TransformErrorKind.OUT_OF_RANGE, f"Counter {name} is negative: {value}")
    return value


def _metric(
    name: str,
    kind: MetricKind,
    value: int | float,
    help_text: str,
    labels: dict[str, str] | None = None,
) -> Metric:
    return Metric(
        name=name,
        kind=kind,
        value=_check_value(name, value, kind),
        labels=labels or {},
        help=help_text,
    )


def _emote_metrics(prefix: str, provider: str, emotes: list[EmoteStats]) -> Iterator[Metric]:
    for emote in emotes:
        yield _metric(
            f"{prefix}_emote",
            MetricKind.GAUGE,
            emote.amount,
            "top emotes",
            {"provider": provider, "emote": emote.emote},
        )


def _last_wins(metrics: Iterable[Metric]) -> tuple[Metric, ...]:
    """Collapse repeated series into one, keeping the value of the last entry.

    Upstream ranking lists can name the same label value twice (BTTV shared
    emotes with different ids but one code). Each series keeps the position
    of its first appearance.
    """
    series: dict[tuple[str, tuple[tuple[str, str], ...]], Metric] = {}
    for metric in metrics:
        series[metric.key] = metric
    return tuple(series.values())


def _chatstats_metrics(
    state: ChatStatsState,
    exports: frozenset[ExportName],
    prefix: str,
) -> Iterator[Metric]:
    stats = state.stats

    if ExportName.TOTAL_MESSAGES in exports:
        yield _metric(
            f"{prefix}_total_messages",
            MetricKind.COUNTER,
            stats.total_messages,
            "total messages on twitch",
        )

    if ExportName.CHATTER in exports:
        for chatter in stats.chatters:
            yield _metric(
                f"{prefix}_chatter",
                MetricKind.GAUGE,
                chatter.amount,
                "top chatters",
                {"name": chatter.name},
            )

    if ExportName.HASHTAG in exports:
        for hashtag in stats.hashtags:
            yield _metric(
                f"{prefix}_hashtag",
                MetricKind.GAUGE,
                hashtag.amount,
                "top hashtags",
                {"hashtag": hashtag.hashtag},
            )

    if ExportName.COMMAND in exports:
        for command in stats.commands:
            yield _metric(
                f"{prefix}_command",
                MetricKind.GAUGE,
                command.amount,
                "top commands",
                {"command": command.command},
            )

    for export_name, provider, attr in EMOTE_PROVIDERS:
        if export_name in exports:
            yield from _emote_metrics(prefix, provider, getattr(stats, attr))

    if ExportName.CHANNEL in exports:
        for channel in state.top_channels:
            yield _metric(
                f"{prefix}_channel",
                MetricKind.GAUGE,
                channel.messages,
                "top channels",
                {"channel": channel.channel},
            )


def _flat_metrics(state: FlatState, prefix: str) -> Iterator[Metric]:
    for key in sorted(state.facts):
        name = sanitize_metric_name(f"{prefix}_{key}")
        yield _metric(name, MetricKind.GAUGE, state.facts[key], f"upstream fact {key}")


def transform(
    state: RawState,
    exports: Iterable[ExportName] = DEFAULT_EXPORTS,
    prefix: str = DEFAULT_PREFIX,
) -> MetricSet:
    """Convert one RawState into a MetricSet.

    Args:
        state: Typed upstream payload
        exports: Statistic groups to include (chatstats schema only)
        prefix: Metric name prefix

    Returns:
        The MetricSet for this state

    Raises:
        TransformError: UNEXPECTED_SHAPE for unsupported state or inconsistent
            metric shapes, OUT_OF_RANGE for non-finite values or negative counters
    """
    if isinstance(state, ChatStatsState):
        metrics = _chatstats_metrics(state, frozenset(ExportName(e) for e in exports), prefix)
    elif isinstance(state, FlatState):
        metrics = _flat_metrics(state, prefix)
    else:
        raise TransformError(
            TransformErrorKind.UNEXPECTED_SHAPE,
            f"Unsupported upstream state: {type(state).__name__}",
        )

    try:
        return MetricSet(_last_wins(metrics))
    except TransformError:
        raise
    except ValueError as e:
        # Inconsistent kinds or label names, invalid metric or label names
        raise TransformError(TransformErrorKind.UNEXPECTED_SHAPE, str(e)) from e

"""Core data models for se-stats-exporter.

This module defines the normalized metrics model shared by the collector,
the snapshot store and the exposition formatter:
- MetricKind: Enum for semantic metric types (counter, gauge)
- Metric: A single named, labeled measurement
- MetricSet: Immutable, ordered collection of metrics from one collection
- CollectionFailure: Details of the most recent failed collection
- Snapshot: The unit stored and served (metrics plus collection metadata)
- ExportName: Selectable groups of upstream statistics
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

LABEL_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
METRIC_NAME_PATTERN = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def sanitize_metric_name(name: str) -> str:
    """Sanitize a metric name to comply with Prometheus naming conventions.

    Prometheus metric names must match [a-zA-Z_:][a-zA-Z0-9_:]*

    Args:
        name: The raw metric name

    Returns:
        Sanitized metric name
    """
    sanitized = re.sub(r"[^a-zA-Z0-9_:]", "_", name)
    if sanitized and sanitized[0].isdigit():
        sanitized = "_" + sanitized
    return sanitized


class MetricKind(str, Enum):
    """Semantic types for metrics following Prometheus conventions.

    Attributes:
        COUNTER: Monotonically increasing value (may reset to zero on restart).
        GAUGE: Point-in-time value that can go up and down.
    """

    COUNTER = "counter"
    GAUGE = "gauge"


class ExportName(str, Enum):
    """Groups of StreamElements statistics that can be exported."""

    BTTV = "bttv"
    FFZ = "ffz"
    TWITCH = "twitch"
    HASHTAG = "hashtag"
    COMMAND = "command"
    CHATTER = "chatter"
    CHANNEL = "channel"
    TOTAL_MESSAGES = "total_messages"


DEFAULT_EXPORTS: tuple[ExportName, ...] = (
    ExportName.BTTV,
    ExportName.FFZ,
    ExportName.TWITCH,
    ExportName.CHANNEL,
    ExportName.CHATTER,
)


class Metric(BaseModel):
    """A single measurement.

    Labels are accepted as a mapping and stored as a tuple of
    ``(label_name, label_value)`` pairs sorted by label name, so two metrics
    with the same labels always compare (and render) identically.

    Attributes:
        name: Stable metric identifier (Prometheus naming rules)
        kind: Counter or gauge
        labels: Sorted label pairs
        value: Numeric value
        help: Optional description used for the HELP line
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=METRIC_NAME_PATTERN.pattern)
    kind: MetricKind
    labels: tuple[tuple[str, str], ...] = ()
    value: int | float
    help: str = Field(default="", description="HELP text for this metric name")

    @field_validator("labels", mode="before")
    @classmethod
    def normalize_labels(cls, v: Any) -> tuple[tuple[str, str], ...]:
        """Convert a label mapping (or pair iterable) into sorted pairs."""
        if v is None:
            return ()
        items = v.items() if isinstance(v, Mapping) else v
        pairs = tuple(sorted((str(k), str(val)) for k, val in items))
        names = [name for name, _ in pairs]
        if len(set(names)) != len(names):
            raise ValueError("Duplicate label name")
        for name in names:
            if not LABEL_NAME_PATTERN.match(name) or name.startswith("__"):
                raise ValueError(f"Invalid label name: {name!r}")
        return pairs

    @property
    def label_names(self) -> tuple[str, ...]:
        """Return the label names in sorted order."""
        return tuple(name for name, _ in self.labels)

    @property
    def label_dict(self) -> dict[str, str]:
        """Return the labels as a plain dictionary."""
        return dict(self.labels)

    @property
    def key(self) -> tuple[str, tuple[tuple[str, str], ...]]:
        """Identity of this metric within a MetricSet."""
        return (self.name, self.labels)


@dataclass(frozen=True)
class MetricSet:
    """Ordered, immutable sequence of metrics from one successful collection.

    Construction enforces that every ``(name, labels)`` pair is unique and
    that each metric name is used with a single kind and a single set of
    label names.
    """

    metrics: tuple[Metric, ...] = ()

    def __post_init__(self) -> None:
        """Validate uniqueness and per-name consistency."""
        if not isinstance(self.metrics, tuple):
            object.__setattr__(self, "metrics", tuple(self.metrics))

        seen: set[tuple[str, tuple[tuple[str, str], ...]]] = set()
        shapes: dict[str, tuple[MetricKind, tuple[str, ...]]] = {}
        for metric in self.metrics:
            if metric.key in seen:
                raise ValueError(
                    f"Duplicate metric {metric.name} with labels {metric.label_dict}"
                )
            seen.add(metric.key)

            shape = (metric.kind, metric.label_names)
            known = shapes.setdefault(metric.name, shape)
            if known != shape:
                raise ValueError(
                    f"Metric {metric.name} used with inconsistent kind or label names"
                )

    def __len__(self) -> int:
        return len(self.metrics)

    def __iter__(self) -> Iterator[Metric]:
        return iter(self.metrics)

    def names(self) -> list[str]:
        """Return metric names in order of first appearance."""
        return list(dict.fromkeys(metric.name for metric in self.metrics))

    def shapes(self) -> dict[str, tuple[MetricKind, tuple[str, ...]]]:
        """Return the kind and label names used by each metric name."""
        return {metric.name: (metric.kind, metric.label_names) for metric in self.metrics}


@dataclass(frozen=True)
class CollectionFailure:
    """Details of a failed collection attempt.

    Attributes:
        kind: Failure kind (e.g. "timeout", "unexpected_shape")
        message: Human-readable error description
        timestamp: When the failed attempt happened
    """

    kind: str
    message: str
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_error(cls, error: BaseException) -> "CollectionFailure":
        """Build a failure record from an exception.

        Exporter errors keep their kind; anything else is recorded as
        ``internal`` with the exception type in the message.
        """
        kind = getattr(error, "kind", None)
        if isinstance(kind, Enum):
            return cls(kind=str(kind.value), message=str(getattr(error, "message", error)))
        return cls(kind="internal", message=f"{type(error).__name__}: {error!s}")


@dataclass(frozen=True)
class Snapshot:
    """The unit stored by the SnapshotStore and served to scrapers.

    ``metrics`` always holds the MetricSet of the most recent successful
    collection; failed attempts only change the metadata fields.

    Attributes:
        metrics: Last successfully collected MetricSet (empty until then)
        last_success_time: When the last successful collection finished
        last_attempt_time: When the last attempt (successful or not) finished
        last_error: Failure details, present only if the last attempt failed
        consecutive_failures: Failed attempts since the last success
        total_collections: Attempts since process start
        total_failures: Failed attempts since process start
    """

    metrics: MetricSet = field(default_factory=MetricSet)
    last_success_time: datetime | None = None
    last_attempt_time: datetime | None = None
    last_error: CollectionFailure | None = None
    consecutive_failures: int = 0
    total_collections: int = 0
    total_failures: int = 0

    @property
    def has_succeeded(self) -> bool:
        """Whether any collection has succeeded since start."""
        return self.last_success_time is not None

    @property
    def last_attempt_failed(self) -> bool:
        """Whether the most recent attempt failed."""
        return self.last_error is not None

    def age_seconds(self) -> float | None:
        """Return seconds since the last success, or None if never."""
        if self.last_success_time is None:
            return None
        return (_utcnow() - self.last_success_time).total_seconds()

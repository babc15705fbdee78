"""Data models for se-stats-exporter.

This module provides the normalized metrics model used throughout the exporter:
- Metric: A named, typed, labeled measurement
- MetricSet: Immutable collection produced by one successful collection
- Snapshot: Metrics plus collection metadata, as served to scrapers
- MetricKind: Counter or gauge
- ExportName: Selectable groups of upstream statistics
"""

from se_stats_exporter.models.base import (
    DEFAULT_EXPORTS,
    CollectionFailure,
    ExportName,
    Metric,
    MetricKind,
    MetricSet,
    Snapshot,
    sanitize_metric_name,
)

__all__ = [
    "Metric",
    "MetricSet",
    "MetricKind",
    "Snapshot",
    "CollectionFailure",
    "ExportName",
    "DEFAULT_EXPORTS",
    "sanitize_metric_name",
]

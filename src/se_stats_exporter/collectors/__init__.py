"""Data collection framework for se-stats-exporter.

This module provides the collection pipeline:

- DataCollector: Abstract base class for collectors
- StatsCollector: Fetches StreamElements statistics and transforms them
- transform: Pure mapping from upstream state to a MetricSet
- CollectionScheduler: Async polling loop publishing into the SnapshotStore

All operations are asyncio-based.
"""

from se_stats_exporter.collectors.base import CollectionResult, CollectorState, DataCollector
from se_stats_exporter.collectors.scheduler import CollectionScheduler, SchedulerStats
from se_stats_exporter.collectors.stats import StatsCollector
from se_stats_exporter.collectors.transform import transform

__all__ = [
    "CollectionResult",
    "CollectorState",
    "DataCollector",
    "StatsCollector",
    "CollectionScheduler",
    "SchedulerStats",
    "transform",
]

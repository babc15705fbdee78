"""Upstream access for se-stats-exporter.

- UpstreamClient: Bounded-timeout HTTP fetch of the upstream state
- RawState: Typed payload variants (ChatStatsState, FlatState)
"""

from se_stats_exporter.upstream.client import DEFAULT_BASE_URL, UpstreamClient
from se_stats_exporter.upstream.models import (
    ChatStats,
    ChatStatsState,
    ChatterStats,
    CommandStats,
    EmoteStats,
    FlatState,
    HashtagStats,
    RawState,
    TopChannel,
    UpstreamSchema,
)

__all__ = [
    "DEFAULT_BASE_URL",
    "UpstreamClient",
    "UpstreamSchema",
    "RawState",
    "ChatStatsState",
    "FlatState",
    "ChatStats",
    "ChatterStats",
    "CommandStats",
    "EmoteStats",
    "HashtagStats",
    "TopChannel",
]

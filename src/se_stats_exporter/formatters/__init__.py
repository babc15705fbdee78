"""Formatters package for se-stats-exporter.

- PrometheusFormatter: Prometheus text exposition of a Snapshot
"""

from se_stats_exporter.formatters.prometheus import CONTENT_TYPE, PrometheusFormatter

__all__ = [
    "CONTENT_TYPE",
    "PrometheusFormatter",
]

"""Collector for StreamElements chat statistics."""

from collections.abc import Iterable
import logging

from se_stats_exporter.collectors.base import CollectorState, DataCollector
from se_stats_exporter.collectors.transform import DEFAULT_PREFIX, transform
from se_stats_exporter.errors import TransformError, TransformErrorKind
from se_stats_exporter.models.base import DEFAULT_EXPORTS, ExportName, MetricKind, MetricSet
from se_stats_exporter.upstream.client import UpstreamClient

logger = logging.getLogger(__name__)


class StatsCollector(DataCollector):
    """Fetches upstream state and converts it into a MetricSet.

    The kind and label names of every metric name are fixed the first time
    the name is seen; a later MetricSet that changes them is rejected with
    TransformError(UNEXPECTED_SHAPE) and never published.
    """

    name = "se_stats"

    def __init__(
        self,
        client: UpstreamClient,
        exports: Iterable[ExportName] = DEFAULT_EXPORTS,
        prefix: str = DEFAULT_PREFIX,
    ) -> None:
        super().__init__()
        self.client = client
        self.exports = tuple(ExportName(e) for e in exports)
        self.prefix = prefix
        self.timeout = client.timeout
        self._shapes: dict[str, tuple[MetricKind, tuple[str, ...]]] = {}

    async def collect(self) -> MetricSet:
        self.state = CollectorState.FETCHING
        state = await self.client.fetch()

        self.state = CollectorState.TRANSFORMING
        metrics = transform(state, self.exports, self.prefix)
        self._check_shapes(metrics)
        logger.debug("Transformed upstream state into %d metrics", len(metrics))
        return metrics

    def _check_shapes(self, metrics: MetricSet) -> None:
        shapes = metrics.shapes()
        for name, shape in shapes.items():
            known = self._shapes.get(name)
            if known is not None and known != shape:
                raise TransformError(
                    TransformErrorKind.UNEXPECTED_SHAPE,
                    f"Metric {name} changed from {known[0].value}{list(known[1])} "
                    f"to {shape[0].value}{list(shape[1])}",
                )
        self._shapes.update(shapes)

    async def aclose(self) -> None:
        await self.client.aclose()

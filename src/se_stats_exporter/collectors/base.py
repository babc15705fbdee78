"""Abstract base class for data collectors.

This module defines the DataCollector interface. A collector turns one
upstream fetch into a MetricSet; scheduling, timeouts and publication are
handled by the CollectionScheduler.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
import logging

from se_stats_exporter.errors import ExporterError
from se_stats_exporter.models.base import CollectionFailure, MetricSet

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class CollectorState(str, Enum):
    """Phases of one collection cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    PUBLISHING = "publishing"


@dataclass
class CollectionResult:
    """Result of a data collection attempt.

    Attributes:
        success: Whether the collection succeeded
        metrics: The collected MetricSet (None if failed)
        failure: Failure details (None if succeeded)
        collection_time_ms: How long the collection took in milliseconds
        timestamp: When the collection was attempted
        collector_name: Name of the collector that produced this result
    """

    success: bool
    metrics: MetricSet | None = None
    failure: CollectionFailure | None = None
    collection_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=_utcnow)
    collector_name: str = ""

    def __post_init__(self) -> None:
        """Validate result consistency."""
        if self.success and self.metrics is None:
            raise ValueError("Successful collection must include metrics")
        if not self.success and self.failure is None:
            raise ValueError("Failed collection must include failure details")

    @property
    def error(self) -> str | None:
        """Formatted failure message, if any."""
        if self.failure is None:
            return None
        return f"{self.failure.kind}: {self.failure.message}"


class DataCollector(ABC):
    """Abstract base class for data collectors.

    Class Attributes:
        name: Unique identifier for this collector
        timeout: Maximum time allowed for a single collection in seconds
    """

    name: str = "unnamed_collector"
    timeout: float = 5.0

    def __init__(self) -> None:
        """Initialize the collector with default state."""
        self.state: CollectorState = CollectorState.IDLE

    @abstractmethod
    async def collect(self) -> MetricSet:
        """Fetch and transform the current upstream state.

        Returns:
            The MetricSet for this collection

        Raises:
            FetchError: If the upstream fetch fails
            TransformError: If the fetched state cannot be converted
        """
        ...

    async def aclose(self) -> None:
        """Release collector resources (connections, clients)."""

    async def safe_collect(self) -> CollectionResult:
        """Collect data with error handling and timing.

        Wraps collect() and converts every failure into a CollectionResult.
        Cancellation is not caught.

        Returns:
            CollectionResult with metrics or failure information
        """
        start_time = _utcnow()

        try:
            metrics = await self.collect()
            elapsed_ms = (_utcnow() - start_time).total_seconds() * 1000

            return CollectionResult(
                success=True,
                metrics=metrics,
                collection_time_ms=elapsed_ms,
                timestamp=start_time,
                collector_name=self.name,
            )

        except ExporterError as e:
            elapsed_ms = (_utcnow() - start_time).total_seconds() * 1000
            return CollectionResult(
                success=False,
                failure=CollectionFailure.from_error(e),
                collection_time_ms=elapsed_ms,
                timestamp=start_time,
                collector_name=self.name,
            )

        except Exception as e:
            logger.exception("Unexpected error in collector '%s'", self.name)
            elapsed_ms = (_utcnow() - start_time).total_seconds() * 1000
            return CollectionResult(
                success=False,
                failure=CollectionFailure.from_error(e),
                collection_time_ms=elapsed_ms,
                timestamp=start_time,
                collector_name=self.name,
            )

        finally:
            self.state = CollectorState.IDLE

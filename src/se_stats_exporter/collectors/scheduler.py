"""Collection scheduler driving the polling loop.

This module provides a scheduler that runs one collector on a fixed interval
and publishes results into the SnapshotStore.

Key features:
- Per-attempt timeout strictly shorter than the polling interval
- Cycles never overlap: at most one fetch is in flight at any time
- Failed cycles only update store metadata; metrics stay untouched
- Capped exponential backoff while upstream keeps failing
- Graceful stop that cancels an in-flight fetch
"""

import asyncio
from collections.abc import Callable, Coroutine
import contextlib
from dataclasses import dataclass
import logging
from typing import Any

from se_stats_exporter.collectors.base import CollectionResult, CollectorState, DataCollector
from se_stats_exporter.errors import FetchErrorKind
from se_stats_exporter.models.base import CollectionFailure
from se_stats_exporter.store import SnapshotStore

logger = logging.getLogger(__name__)

# Type alias for collection callbacks
CollectionCallback = Callable[[CollectionResult], Coroutine[Any, Any, None]]


@dataclass
class SchedulerStats:
    """Statistics about the scheduler's state and performance.

    Attributes:
        running: Whether the scheduler loop is active
        state: Current phase of the collection cycle
        total_timeouts: Cycles abandoned because they exceeded the timeout
        average_latency_ms: Average collection time in milliseconds
        next_delay: Seconds the loop waits between the last and next cycle
    """

    running: bool = False
    state: CollectorState = CollectorState.IDLE
    total_timeouts: int = 0
    average_latency_ms: float = 0.0
    next_delay: float = 0.0


class CollectionScheduler:
    """Runs a collector periodically and publishes into a SnapshotStore.

    Example:
        scheduler = CollectionScheduler(collector, store, interval=10.0)
        await scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        collector: DataCollector,
        store: SnapshotStore,
        interval: float = 10.0,
        *,
        backoff: bool = True,
        backoff_factor: float = 2.0,
        max_backoff_multiplier: float = 4.0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            collector: The collector to run
            store: Store receiving results
            interval: Seconds between the starts of consecutive cycles
            backoff: Whether to slow down while collections keep failing
            backoff_factor: Growth of the delay per additional failure
            max_backoff_multiplier: Cap on the delay as a multiple of interval

        Raises:
            ValueError: If interval is not positive, the collector timeout is
                not strictly shorter than interval, or backoff settings are
                invalid
        """
        if interval <= 0:
            raise ValueError("Interval must be positive")
        if collector.timeout >= interval:
            raise ValueError(
                f"Collector timeout ({collector.timeout}s) must be shorter "
                f"than the polling interval ({interval}s)"
            )
        if backoff_factor < 1.0 or max_backoff_multiplier < 1.0:
            raise ValueError("Backoff factor and multiplier must be at least 1.0")

        self._collector = collector
        self._store = store
        self._interval = interval
        self._backoff = backoff
        self._backoff_factor = backoff_factor
        self._max_backoff_multiplier = max_backoff_multiplier

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._cycle_lock = asyncio.Lock()
        self._callbacks: list[CollectionCallback] = []
        self._total_timeouts = 0

        # Latency tracking
        self._latencies: list[float] = []
        self._max_latency_samples = 1000

    @property
    def running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running

    @property
    def interval(self) -> float:
        """Polling interval in seconds."""
        return self._interval

    @property
    def state(self) -> CollectorState:
        """Current phase of the collection cycle."""
        return self._collector.state

    @property
    def collector(self) -> DataCollector:
        """The collector run by this scheduler."""
        return self._collector

    @property
    def store(self) -> SnapshotStore:
        """The store receiving collection results."""
        return self._store

    def add_callback(self, callback: CollectionCallback) -> None:
        """Add a callback to be invoked after each collection.

        Args:
            callback: Async function(result) to call
        """
        self._callbacks.append(callback)

    def remove_callback(self, callback: CollectionCallback) -> None:
        """Remove a previously added callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def start(self) -> None:
        """Start the collection loop.

        Does nothing if already running.
        """
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(
            self._collection_loop(),
            name=f"collector-{self._collector.name}",
        )
        logger.info(
            "Started collector '%s' (interval %.1fs, timeout %.1fs)",
            self._collector.name,
            self._interval,
            self._collector.timeout,
        )

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the collection loop and release collector resources.

        Cancels the loop task (interrupting any in-flight fetch) and waits
        for it to finish.

        Args:
            timeout: Maximum seconds to wait for the task to finish
        """
        if not self._running:
            return

        self._running = False

        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.wait([self._task], timeout=timeout)
        self._task = None

        await self._collector.aclose()
        logger.info("Stopped collector '%s'", self._collector.name)

    async def collect_once(self) -> CollectionResult:
        """Run a single collection cycle outside the normal schedule.

        Waits for any running cycle to finish first, so two fetches are
        never in flight at once.

        Returns:
            The CollectionResult from this cycle
        """
        return await self._do_collection()

    def next_delay(self) -> float:
        """Seconds between the start of the last cycle and the next one.

        The base interval while healthy; after ``n`` consecutive failures,
        ``interval * backoff_factor ** (n - 1)`` capped at
        ``interval * max_backoff_multiplier``.
        """
        failures = self._store.read().consecutive_failures
        if not self._backoff or failures <= 1:
            return self._interval
        multiplier = min(
            self._backoff_factor ** (failures - 1),
            self._max_backoff_multiplier,
        )
        return self._interval * multiplier

    async def get_stats(self) -> SchedulerStats:
        """Get scheduler statistics."""
        avg_latency = sum(self._latencies) / len(self._latencies) if self._latencies else 0.0

        return SchedulerStats(
            running=self._running,
            state=self.state,
            total_timeouts=self._total_timeouts,
            average_latency_ms=avg_latency,
            next_delay=self.next_delay(),
        )

    async def _collection_loop(self) -> None:
        """Collect at the configured interval until stopped."""
        loop = asyncio.get_running_loop()

        while self._running:
            started = loop.time()
            try:
                await self._do_collection()
            except Exception:
                logger.exception("Collection cycle crashed; continuing")

            delay = max(0.0, self.next_delay() - (loop.time() - started))
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

    async def _do_collection(self) -> CollectionResult:
        """Perform a single collection with timeout handling and publish it.

        Returns:
            CollectionResult from this collection
        """
        async with self._cycle_lock:
            timeout = self._collector.timeout
            try:
                result = await asyncio.wait_for(self._collector.safe_collect(), timeout=timeout)
            except TimeoutError:
                self._total_timeouts += 1
                result = CollectionResult(
                    success=False,
                    failure=CollectionFailure(
                        kind=FetchErrorKind.TIMEOUT.value,
                        message=f"Collection timed out after {timeout}s",
                    ),
                    collection_time_ms=timeout * 1000,
                    collector_name=self._collector.name,
                )

            self._latencies.append(result.collection_time_ms)
            if len(self._latencies) > self._max_latency_samples:
                self._latencies = self._latencies[-self._max_latency_samples :]

            if result.success and result.metrics is not None:
                self._collector.state = CollectorState.PUBLISHING
                try:
                    self._store.publish(result.metrics)
                finally:
                    self._collector.state = CollectorState.IDLE
                logger.debug(
                    "Published %d metrics in %.1fms",
                    len(result.metrics),
                    result.collection_time_ms,
                )
            elif result.failure is not None:
                snapshot = self._store.record_failure(result.failure)
                logger.warning(
                    "Collection failed (%d consecutive): %s",
                    snapshot.consecutive_failures,
                    result.error,
                )

            for callback in self._callbacks:
                with contextlib.suppress(Exception):
                    await callback(result)

            return result

"""Snapshot store shared by the collector and the exposition server.

The store holds a single immutable Snapshot reference. Writers build a new
Snapshot and swap the reference under a lock; readers load the reference
without locking, so a read never waits for a writer and always sees either
the previous or the new Snapshot in full.
"""

from dataclasses import replace
from datetime import UTC, datetime
import threading

from se_stats_exporter.errors import ExporterError
from se_stats_exporter.models.base import CollectionFailure, MetricSet, Snapshot


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class SnapshotStore:
    """Copy-on-write holder of the current Snapshot.

    One collector publishes; any number of request handlers read. All methods
    are safe to call concurrently from tasks or threads.

    Example:
        store = SnapshotStore()
        store.publish(metric_set)
        snapshot = store.read()
    """

    def __init__(self, initial: Snapshot | None = None) -> None:
        """Initialize the store.

        Args:
            initial: Starting snapshot (an empty one if not given)
        """
        self._snapshot = initial if initial is not None else Snapshot()
        self._write_lock = threading.Lock()

    def read(self) -> Snapshot:
        """Return the current snapshot.

        The returned object is immutable; later publishes do not affect it.
        """
        return self._snapshot

    def publish(self, metrics: MetricSet, when: datetime | None = None) -> Snapshot:
        """Atomically replace the metrics after a successful collection.

        Resets the failure metadata and records the success time.

        Args:
            metrics: The newly collected MetricSet
            when: Completion time (defaults to now)

        Returns:
            The newly stored snapshot
        """
        if not isinstance(metrics, MetricSet):
            raise TypeError(f"Expected MetricSet, got {type(metrics).__name__}")

        now = when or _utcnow()
        with self._write_lock:
            current = self._snapshot
            snapshot = Snapshot(
                metrics=metrics,
                last_success_time=now,
                last_attempt_time=now,
                last_error=None,
                consecutive_failures=0,
                total_collections=current.total_collections + 1,
                total_failures=current.total_failures,
            )
            self._snapshot = snapshot
        return snapshot

    def record_failure(
        self,
        error: CollectionFailure | ExporterError | BaseException,
        when: datetime | None = None,
    ) -> Snapshot:
        """Record a failed collection without touching the metrics.

        Args:
            error: Failure details or the exception that caused the failure
            when: Attempt time (defaults to now)

        Returns:
            The newly stored snapshot
        """
        failure = error if isinstance(error, CollectionFailure) else CollectionFailure.from_error(error)
        now = when or _utcnow()
        with self._write_lock:
            current = self._snapshot
            snapshot = replace(
                current,
                last_attempt_time=now,
                last_error=failure,
                consecutive_failures=current.consecutive_failures + 1,
                total_collections=current.total_collections + 1,
                total_failures=current.total_failures + 1,
            )
            self._snapshot = snapshot
        return snapshot

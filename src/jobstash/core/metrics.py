"""Process-wide delivery counters.

Every worker increments the same MetricsRegistry; status reporting reads
consistent snapshots of it. Counters only go up between resets.

Thread Safety:
    All mutation and snapshot reads hold a single lock. Counters are small
    and increments are cheap, so contention is not a concern at worker-pool
    scale.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of all counters."""

    rows_read: int
    records_delivered: int
    events: Mapping[str, int] = field(default_factory=dict)
    servers: Mapping[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def records_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return round(self.records_delivered / self.elapsed_seconds, 2)

    def to_dict(self) -> dict[str, object]:
        return {
            "rows_read": self.rows_read,
            "records_delivered": self.records_delivered,
            "events": dict(self.events),
            "servers": dict(self.servers),
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "records_per_second": self.records_per_second,
        }


class MetricsRegistry:
    """Concurrency-safe counting registry.

    Example:
        >>> registry = MetricsRegistry()
        >>> registry.record_read()
        >>> registry.record_delivery("agent_job", "CORP-SQL01-agent_jobs")
        >>> registry.snapshot().records_delivered
        1
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows_read = 0
        self._records_delivered = 0
        self._events: Counter[str] = Counter()
        self._servers: Counter[str] = Counter()
        self._started = time.monotonic()

    def record_read(self, count: int = 1) -> None:
        """Count rows pulled from a source, delivered or not."""
        with self._lock:
            self._rows_read += count

    def record_delivery(self, event_kind: str, server_key: str) -> None:
        """Count one record written to every sink."""
        with self._lock:
            self._records_delivered += 1
            self._events[event_kind] += 1
            self._servers[server_key] += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                rows_read=self._rows_read,
                records_delivered=self._records_delivered,
                events=MappingProxyType(dict(self._events)),
                servers=MappingProxyType(dict(self._servers)),
                elapsed_seconds=time.monotonic() - self._started,
            )

    def reset(self) -> None:
        """Return every counter to zero. Called at process start and by tests."""
        with self._lock:
            self._rows_read = 0
            self._records_delivered = 0
            self._events.clear()
            self._servers.clear()
            self._started = time.monotonic()


# Module-level registry shared by all workers in the process
METRICS = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    return METRICS

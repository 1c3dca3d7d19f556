"""Slow query tracking fed by the instrumented connectors."""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timezone

from .models import PerformanceSample

DEFAULT_THRESHOLD_MS = 1000.0
DEFAULT_CAPACITY = 100


class PerformanceTracker:
    """Bounded FIFO buffer of queries that reached the slow-query threshold."""

    def __init__(self, threshold_ms: float = DEFAULT_THRESHOLD_MS, *, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._threshold_ms = _check_threshold(threshold_ms)
        self._samples: deque[PerformanceSample] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def record_query(self, sql: str, duration_ms: float, database_id: str) -> None:
        """Keep the sample if it is slow; the oldest sample is evicted when full."""

        with self._lock:
            if duration_ms < self._threshold_ms:
                return
            self._samples.append(
                PerformanceSample(
                    sql=sql,
                    duration_ms=duration_ms,
                    timestamp=datetime.now(tz=timezone.utc),
                    database_id=database_id,
                )
            )

    def get_slow_queries(self, database_id: str | None = None, limit: int = 20) -> list[PerformanceSample]:
        """Return the most recent matching samples, oldest first."""

        if limit <= 0:
            return []
        with self._lock:
            samples = [
                sample
                for sample in self._samples
                if database_id is None or sample.database_id == database_id
            ]
        return samples[-limit:]

    def set_threshold(self, threshold_ms: float) -> None:
        with self._lock:
            self._threshold_ms = _check_threshold(threshold_ms)

    def get_threshold(self) -> float:
        return self._threshold_ms

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)


def _check_threshold(threshold_ms: float) -> float:
    if threshold_ms < 0:
        raise ValueError("threshold must not be negative")
    return float(threshold_ms)


__all__ = ["DEFAULT_CAPACITY", "DEFAULT_THRESHOLD_MS", "PerformanceTracker"]

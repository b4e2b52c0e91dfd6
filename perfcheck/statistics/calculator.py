"""
StatisticsCalculator: thread-safe recorder of per-invocation outcomes.

Workers call record() concurrently; the scheduler calls snapshot() once the
measured window closes. Callers never lock the calculator themselves.
"""

from __future__ import annotations

import math
import threading
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from perfcheck.models import DEFAULT_PERCENTILES
from perfcheck.statistics.snapshot import Statistics

NANOS_PER_MILLI = 1_000_000


@runtime_checkable
class StatisticsCalculator(Protocol):
    """Protocol for pluggable statistics aggregation."""

    def record(self, latency_ns: int, is_error: bool) -> None:
        """Record one invocation outcome."""
        ...

    def snapshot(
        self,
        elapsed_seconds: float,
        percentiles: Sequence[float] = DEFAULT_PERCENTILES,
    ) -> Statistics:
        """
        Compute derived metrics for the measured window.

        Args:
            elapsed_seconds: Length of the measured window, for throughput.
            percentiles: Latency percentiles to compute.
        """
        ...

    def reset(self) -> None:
        """Discard every recorded sample."""
        ...


def nearest_rank(sorted_values: Sequence[int], percentile: float) -> Optional[int]:
    """
    Nearest-rank percentile over ascending values.

    Returns the smallest value such that at least percentile% of the values
    are less than or equal to it. p0 is the minimum.
    """
    if not sorted_values:
        return None
    if percentile <= 0:
        return sorted_values[0]
    rank = math.ceil(percentile * len(sorted_values) / 100.0)
    rank = min(max(rank, 1), len(sorted_values))
    return sorted_values[rank - 1]


class DescriptiveStatisticsCalculator:
    """
    Default calculator: keeps every successful latency for exact percentiles.

    Counters and the latency list are guarded by a single lock, so a sample
    is attributed atomically and total_count always equals
    success_count + error_count.

    Example:
        calc = DescriptiveStatisticsCalculator()
        calc.record(1_500_000, is_error=False)
        stats = calc.snapshot(elapsed_seconds=1.0)
        print(stats.latency_percentile(95))
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latencies_ns: List[int] = []
        self._successes = 0
        self._errors = 0

    def record(self, latency_ns: int, is_error: bool) -> None:
        latency_ns = max(0, int(latency_ns))
        with self._lock:
            if is_error:
                self._errors += 1
            else:
                self._successes += 1
                self._latencies_ns.append(latency_ns)

    @property
    def total_count(self) -> int:
        with self._lock:
            return self._successes + self._errors

    @property
    def error_count(self) -> int:
        with self._lock:
            return self._errors

    def snapshot(
        self,
        elapsed_seconds: float,
        percentiles: Sequence[float] = DEFAULT_PERCENTILES,
    ) -> Statistics:
        with self._lock:
            successes = self._successes
            errors = self._errors
            latencies = sorted(self._latencies_ns)

        total = successes + errors
        elapsed_seconds = max(0.0, float(elapsed_seconds))

        error_pct = (errors / total * 100.0) if total > 0 else 0.0
        throughput = successes / elapsed_seconds if elapsed_seconds > 0 else 0.0

        def to_ms(value: Optional[int]) -> Optional[float]:
            return value / NANOS_PER_MILLI if value is not None else None

        return Statistics(
            total_count=total,
            success_count=successes,
            error_count=errors,
            error_percentage=error_pct,
            throughput_per_second=throughput,
            elapsed_seconds=elapsed_seconds,
            min_latency_ms=to_ms(latencies[0]) if latencies else None,
            max_latency_ms=to_ms(latencies[-1]) if latencies else None,
            mean_latency_ms=(
                sum(latencies) / len(latencies) / NANOS_PER_MILLI
                if latencies
                else None
            ),
            latency_percentiles_ms={
                float(p): to_ms(nearest_rank(latencies, p)) for p in percentiles
            },
        )

    def reset(self) -> None:
        with self._lock:
            self._latencies_ns = []
            self._successes = 0
            self._errors = 0

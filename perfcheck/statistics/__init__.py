"""
Statistics aggregation for performance evaluations.

Provides:
- StatisticsCalculator: Protocol for pluggable aggregators
- DescriptiveStatisticsCalculator: Default thread-safe aggregator
- Statistics: Immutable snapshot of a measured window

Usage:
    from perfcheck.statistics import DescriptiveStatisticsCalculator

    calc = DescriptiveStatisticsCalculator()
    calc.record(latency_ns=2_000_000, is_error=False)
    stats = calc.snapshot(elapsed_seconds=1.0)
    print(stats.error_percentage, stats.latency_percentile(95))
"""

from perfcheck.statistics.snapshot import Statistics
from perfcheck.statistics.calculator import (
    DescriptiveStatisticsCalculator,
    StatisticsCalculator,
    nearest_rank,
)

__all__ = [
    "Statistics",
    "StatisticsCalculator",
    "DescriptiveStatisticsCalculator",
    "nearest_rank",
]

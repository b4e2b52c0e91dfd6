"""
Threshold evaluation: turn a statistics snapshot into a verdict.

Every violated bound is reported; evaluation never stops at the first one.
"""

from __future__ import annotations

from typing import List, Optional

from perfcheck.models import Thresholds, ThresholdViolation
from perfcheck.statistics.snapshot import Statistics


def _fmt(val: Optional[float], decimals: int = 2) -> str:
    if val is None:
        return "N/A"
    return f"{val:.{decimals}f}"


def evaluate_thresholds(
    statistics: Statistics,
    thresholds: Thresholds,
) -> List[ThresholdViolation]:
    """
    Compare a snapshot against configured bounds.

    Latency bounds with no successful sample to measure count as violated,
    with observed=None.

    Args:
        statistics: Snapshot of the measured window.
        thresholds: Configured bounds. Unset bounds are skipped.

    Returns:
        Violations in a stable order; empty means the evaluation passed.
    """
    violations: List[ThresholdViolation] = []

    if thresholds.max_error_percentage is not None:
        observed = statistics.error_percentage
        if observed > thresholds.max_error_percentage:
            violations.append(
                ThresholdViolation(
                    metric="error_percentage",
                    threshold=thresholds.max_error_percentage,
                    observed=observed,
                    message=(
                        f"Error percentage {_fmt(observed)}% exceeds allowed "
                        f"{_fmt(thresholds.max_error_percentage)}%"
                    ),
                )
            )

    if thresholds.min_throughput is not None:
        observed = statistics.throughput_per_second
        if observed < thresholds.min_throughput:
            violations.append(
                ThresholdViolation(
                    metric="throughput",
                    threshold=thresholds.min_throughput,
                    observed=observed,
                    message=(
                        f"Throughput {_fmt(observed)}/s is below required "
                        f"{_fmt(thresholds.min_throughput)}/s"
                    ),
                )
            )

    for percentile in sorted(thresholds.max_latency_percentiles):
        limit = thresholds.max_latency_percentiles[percentile]
        observed = statistics.latency_percentile(percentile)
        if observed is None or observed > limit:
            violations.append(
                ThresholdViolation(
                    metric=f"latency_p{percentile:g}",
                    threshold=limit,
                    observed=observed,
                    message=(
                        f"p{percentile:g} latency {_fmt(observed)}ms exceeds "
                        f"allowed {_fmt(limit)}ms"
                    ),
                )
            )

    if thresholds.min_latency_ms is not None:
        observed = statistics.min_latency_ms
        if observed is None or observed < thresholds.min_latency_ms:
            violations.append(
                ThresholdViolation(
                    metric="min_latency",
                    threshold=thresholds.min_latency_ms,
                    observed=observed,
                    message=(
                        f"Minimum latency {_fmt(observed)}ms is below required "
                        f"{_fmt(thresholds.min_latency_ms)}ms"
                    ),
                )
            )

    if thresholds.max_latency_ms is not None:
        observed = statistics.max_latency_ms
        if observed is None or observed > thresholds.max_latency_ms:
            violations.append(
                ThresholdViolation(
                    metric="max_latency",
                    threshold=thresholds.max_latency_ms,
                    observed=observed,
                    message=(
                        f"Maximum latency {_fmt(observed)}ms exceeds allowed "
                        f"{_fmt(thresholds.max_latency_ms)}ms"
                    ),
                )
            )

    if thresholds.mean_latency_ms is not None:
        observed = statistics.mean_latency_ms
        if observed is None or observed > thresholds.mean_latency_ms:
            violations.append(
                ThresholdViolation(
                    metric="mean_latency",
                    threshold=thresholds.mean_latency_ms,
                    observed=observed,
                    message=(
                        f"Mean latency {_fmt(observed)}ms exceeds allowed "
                        f"{_fmt(thresholds.mean_latency_ms)}ms"
                    ),
                )
            )

    return violations

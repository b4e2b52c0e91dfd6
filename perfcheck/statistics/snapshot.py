"""
Statistics: immutable snapshot of one evaluation's measured window.

Produced once by a StatisticsCalculator when the scheduler finalizes an
evaluation. Designed for:
- Threshold evaluation (error rate, throughput, latency bounds)
- Report rendering
- JSON logs
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Statistics(BaseModel):
    """
    Derived metrics for the measured window of a run.

    Latency figures describe successful invocations only and are None when
    no invocation succeeded.

    Attributes:
        total_count: Invocations recorded (success + error).
        success_count: Invocations that completed without error.
        error_count: Invocations that raised, failed or timed out.
        error_percentage: error_count / total_count * 100, 0.0 for an empty run.
        throughput_per_second: success_count / elapsed_seconds.
        elapsed_seconds: Length of the measured window.
        min_latency_ms: Fastest successful invocation.
        max_latency_ms: Slowest successful invocation.
        mean_latency_ms: Arithmetic mean of successful latencies.
        latency_percentiles_ms: Percentile (0-100] -> latency in ms (nearest rank).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    total_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    error_percentage: float = Field(default=0.0, ge=0, le=100)
    throughput_per_second: float = Field(default=0.0, ge=0)
    elapsed_seconds: float = Field(default=0.0, ge=0)

    min_latency_ms: Optional[float] = None
    max_latency_ms: Optional[float] = None
    mean_latency_ms: Optional[float] = None
    latency_percentiles_ms: Dict[float, Optional[float]] = Field(default_factory=dict)

    def latency_percentile(self, percentile: float) -> Optional[float]:
        """Latency at a requested percentile, or None if not computed."""
        return self.latency_percentiles_ms.get(float(percentile))

    def to_log_dict(self) -> Dict[str, Any]:
        """
        Serialize to a dict suitable for JSON logging.

        Returns a stable schema for log parsing:
        {"type": "perfcheck.statistics.v1", ...fields...}
        """
        data = self.model_dump(mode="json")
        data["latency_percentiles_ms"] = {
            f"p{p:g}": v for p, v in self.latency_percentiles_ms.items()
        }
        data["type"] = "perfcheck.statistics.v1"
        return data

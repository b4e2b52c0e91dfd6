from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_PERCENTILES = (50.0, 90.0, 95.0, 99.0)


def parse_percentiles(text: Optional[str]) -> Dict[float, float]:
    """
    Parse the compact "percentile:max_ms" form used by requirement markers.

    Example:
        parse_percentiles("90:7,95:7.5")  # {90.0: 7.0, 95.0: 7.5}
    """
    result: Dict[float, float] = {}
    if not text:
        return result
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        percentile, sep, limit = chunk.partition(":")
        if not sep:
            raise ValueError(f"Invalid percentile entry {chunk!r}; expected 'p:ms'")
        try:
            result[float(percentile)] = float(limit)
        except ValueError as exc:
            raise ValueError(f"Invalid percentile entry {chunk!r}: {exc}") from exc
    return result


class Thresholds(BaseModel):
    """
    Pass/fail bounds applied to the statistics of a finished evaluation.

    Every bound is optional; an unset bound is never checked.

    Attributes:
        max_error_percentage: Highest tolerated error rate (0-100).
        min_throughput: Lowest tolerated successful invocations per second.
        max_latency_percentiles: Percentile (0-100] -> highest tolerated latency in ms.
        min_latency_ms: Fastest successful invocation must take at least this long.
        max_latency_ms: Slowest successful invocation must not exceed this.
        mean_latency_ms: Mean successful latency must not exceed this.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_error_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    min_throughput: Optional[float] = Field(default=None, ge=0)
    max_latency_percentiles: Dict[float, float] = Field(default_factory=dict)
    min_latency_ms: Optional[float] = Field(default=None, ge=0)
    max_latency_ms: Optional[float] = Field(default=None, ge=0)
    mean_latency_ms: Optional[float] = Field(default=None, ge=0)

    @field_validator("max_latency_percentiles")
    @classmethod
    def check_percentiles(cls, value: Dict[float, float]) -> Dict[float, float]:
        for percentile, limit in value.items():
            if not 0 < percentile <= 100:
                raise ValueError(f"Percentile must be in (0, 100], got {percentile}")
            if limit < 0:
                raise ValueError(f"Latency limit for p{percentile:g} must be >= 0")
        return value

    @classmethod
    def from_requirements(
        cls,
        *,
        percentiles: Optional[str] = None,
        **kwargs: Any,
    ) -> "Thresholds":
        """Build thresholds from requirement marker keywords."""
        if percentiles:
            merged = parse_percentiles(percentiles)
            merged.update(kwargs.pop("max_latency_percentiles", None) or {})
            kwargs["max_latency_percentiles"] = merged
        return cls.model_validate(kwargs)

    @property
    def is_empty(self) -> bool:
        return (
            self.max_error_percentage is None
            and self.min_throughput is None
            and not self.max_latency_percentiles
            and self.min_latency_ms is None
            and self.max_latency_ms is None
            and self.mean_latency_ms is None
        )


class EvaluationConfig(BaseModel):
    """
    Fully-resolved configuration for one performance evaluation.

    The measured window lasts duration_ms and starts once warm_up_ms has
    elapsed, so a run occupies warm_up_ms + duration_ms of wall-clock time.

    Attributes:
        threads: Number of concurrent workers.
        duration_ms: Length of the measured window.
        warm_up_ms: Initial period whose samples are discarded.
        max_executions_per_second: Aggregate rate cap across all workers (0 = unbounded).
        total_executions: Stop once this many invocations started (None = unbounded).
        thresholds: Pass/fail bounds evaluated after the run.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    threads: int = Field(default=1, gt=0)
    duration_ms: int = Field(default=60_000, ge=0)
    warm_up_ms: int = Field(default=0, ge=0)
    max_executions_per_second: int = Field(default=0, ge=0)
    total_executions: Optional[int] = Field(default=None, ge=1)
    thresholds: Thresholds = Field(default_factory=Thresholds)

    @model_validator(mode="after")
    def check_warm_up(self) -> "EvaluationConfig":
        if self.warm_up_ms > 0 and self.warm_up_ms >= self.duration_ms:
            raise ValueError(
                f"warm_up_ms ({self.warm_up_ms}) must be less than "
                f"duration_ms ({self.duration_ms})"
            )
        return self

    @property
    def rate_limited(self) -> bool:
        return self.max_executions_per_second > 0

    def requested_percentiles(self) -> tuple:
        """Default report percentiles plus every percentile named by a threshold."""
        wanted = set(DEFAULT_PERCENTILES) | set(self.thresholds.max_latency_percentiles)
        return tuple(sorted(wanted))


class ThresholdViolation(BaseModel):
    """
    One violated threshold, with expected and observed values.

    observed is None when the metric could not be computed (no successful
    samples for a latency bound).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    metric: str
    threshold: float
    observed: Optional[float] = None
    message: str

    def __str__(self) -> str:
        return self.message

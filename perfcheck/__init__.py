"""
perfcheck - Run a test method as a bounded, rate-capped load test.

Engine API:
    from perfcheck import EvaluationConfig, EvaluationContext, EvaluationScheduler, Thresholds

    config = EvaluationConfig(
        threads=4,
        duration_ms=2_000,
        warm_up_ms=200,
        max_executions_per_second=500,
        thresholds=Thresholds(max_error_percentage=1.0, max_latency_percentiles={95: 20}),
    )
    context = EvaluationContext("lookup", config)
    EvaluationScheduler(context, lambda: cache.get("key")).run()
    context.raise_for_violations()

pytest integration (enabled automatically once installed):
    @pytest.mark.perf(threads=4, duration_ms=2_000)
    @pytest.mark.perf_requirements(percentiles="95:20")
    def test_lookup():
        ...

Advanced usage via submodules:
    from perfcheck.statistics import StatisticsCalculator
    from perfcheck.reporting import ReportingConfig, active_config, ConsoleReportGenerator
"""

__version__ = "0.1.0"

from perfcheck.models import (  # noqa: F401
    EvaluationConfig,
    Thresholds,
    ThresholdViolation,
    parse_percentiles,
)
from perfcheck.context import EvaluationContext  # noqa: F401
from perfcheck.invocation import (  # noqa: F401
    AsyncInvocation,
    Completion,
    CompletionHandle,
    CoroutineInvocation,
)
from perfcheck.ratelimit import RateController  # noqa: F401
from perfcheck.registry import ActiveContextRegistry  # noqa: F401
from perfcheck.scheduler import EvaluationScheduler, evaluate  # noqa: F401
from perfcheck.statistics import (  # noqa: F401
    DescriptiveStatisticsCalculator,
    Statistics,
    StatisticsCalculator,
)
from perfcheck.thresholds import evaluate_thresholds  # noqa: F401
from perfcheck.exceptions import (
    PerfCheckError,
    PerfCheckConfigError,
    PerfCheckStateError,
    PerfCheckReportError,
    PerfThresholdError,
)

__all__ = [
    "__version__",
    "EvaluationConfig",
    "Thresholds",
    "ThresholdViolation",
    "parse_percentiles",
    "EvaluationContext",
    "AsyncInvocation",
    "Completion",
    "CompletionHandle",
    "CoroutineInvocation",
    "RateController",
    "ActiveContextRegistry",
    "EvaluationScheduler",
    "evaluate",
    "DescriptiveStatisticsCalculator",
    "Statistics",
    "StatisticsCalculator",
    "evaluate_thresholds",
    "PerfCheckError",
    "PerfCheckConfigError",
    "PerfCheckStateError",
    "PerfCheckReportError",
    "PerfThresholdError",
]

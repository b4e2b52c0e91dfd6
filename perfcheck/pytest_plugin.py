"""
pytest integration: turn marked test functions into performance evaluations.

Registered through the ``pytest11`` entry point, so installing perfcheck is
enough to enable it.

Usage:
    import pytest

    @pytest.mark.perf(threads=4, duration_ms=2_000, warm_up_ms=200, max_executions_per_second=500)
    @pytest.mark.perf_requirements(percentiles="95:20", max_error_percentage=1.0)
    def test_lookup():
        assert cache.get("key") is not None

    # Async completion: request the perf_context fixture and signal it.
    @pytest.mark.perf(threads=2, duration_ms=1_000)
    def test_callback(perf_context):
        client.send(payload, on_done=lambda ok: perf_context.success() if ok else perf_context.fail())

Unmarked tests run exactly once, as usual.
"""
from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

import pytest

from perfcheck.config import get_settings
from perfcheck.context import EvaluationContext
from perfcheck.exceptions import PerfCheckConfigError
from perfcheck.invocation import AsyncInvocation, CompletionHandle, CoroutineInvocation
from perfcheck.models import EvaluationConfig, Thresholds
from perfcheck.registry import ActiveContextRegistry
from perfcheck.reporting.base import ReportGenerator, publish_reports
from perfcheck.reporting.config import DEFAULT_REPORTER, resolve_reporting_config
from perfcheck.scheduler import EvaluationScheduler
from perfcheck.statistics.calculator import (
    DescriptiveStatisticsCalculator,
    StatisticsCalculator,
)

logger = logging.getLogger(__name__)

PERF_MARKER = "perf"
REQUIREMENTS_MARKER = "perf_requirements"
PERF_CONTEXT_FIXTURE = "perf_context"
PLUGIN_NAME = "perfcheck-plugin"

# pytest.fail()/pytest.skip() raise BaseException subclasses; inside a worker
# they must count as ordinary invocation failures.
_HOST_OUTCOMES = (pytest.fail.Exception, pytest.skip.Exception)


def class_key_for(item: Any) -> str:
    """Registry key for the class (or module) owning a test item."""
    cls = getattr(item, "cls", None)
    if cls is not None:
        return f"{cls.__module__}.{cls.__qualname__}"
    module = getattr(item, "module", None)
    if module is not None:
        return module.__name__
    return item.nodeid


def _guard(fn: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except _HOST_OUTCOMES as exc:
            raise AssertionError(str(exc)) from None

    return wrapper


class PerfPlugin:
    """
    Host collaborator between pytest and the evaluation engine.

    Provides the three calls the engine depends on:
    - post_process_test_instance(): resolve reporting configuration
    - intercept_test_method(): obtain an invocation and run the evaluation
    - publish(): hand finalized contexts of a class to its report generators
    """

    def __init__(self, registry: Optional[ActiveContextRegistry] = None) -> None:
        self.registry = registry if registry is not None else ActiveContextRegistry()
        self.active_statistics_calculator: Optional[StatisticsCalculator] = None
        self.active_reporters: Optional[List[ReportGenerator]] = None
        self.scheduler_factory: Callable[..., Any] = EvaluationScheduler
        self._current_class_key: Optional[str] = None
        self._class_reporters: Dict[str, List[ReportGenerator]] = {}

    # -- collaborator calls -------------------------------------------------

    def post_process_test_instance(self, owner: Any) -> None:
        """
        Resolve reporting overrides declared on a test class, instance or module.

        Raises:
            PerfCheckConfigError: If more than one active config is declared.
        """
        resolved = resolve_reporting_config(owner)
        self.active_statistics_calculator = resolved.statistics_calculator_supplier()
        self.active_reporters = list(resolved.report_generators)

    def supports_parameter(self, name: str) -> bool:
        return name == PERF_CONTEXT_FIXTURE

    def resolve_parameter(self) -> CompletionHandle:
        return CompletionHandle()

    def build_config(
        self,
        perf_kwargs: Dict[str, Any],
        requirement_kwargs: Optional[Dict[str, Any]] = None,
    ) -> EvaluationConfig:
        """Validate marker keywords into an EvaluationConfig."""
        try:
            thresholds = Thresholds.from_requirements(**(requirement_kwargs or {}))
            return EvaluationConfig(**perf_kwargs, thresholds=thresholds)
        except (ValueError, TypeError) as exc:
            raise PerfCheckConfigError(
                f"Invalid performance test configuration: {exc}",
                code="invalid_perf_config",
                details={
                    "perf": dict(perf_kwargs),
                    "requirements": dict(requirement_kwargs or {}),
                },
            ) from exc

    def intercept_test_method(
        self,
        test_function: Callable[..., Any],
        test_args: Dict[str, Any],
        *,
        test_id: str,
        class_key: str,
        perf_kwargs: Optional[Dict[str, Any]] = None,
        requirement_kwargs: Optional[Dict[str, Any]] = None,
    ) -> Optional[EvaluationContext]:
        """
        Run a test method, as a performance evaluation when configured.

        Without perf_kwargs the method is invoked exactly once and None is
        returned. Otherwise the finalized context is returned; the caller
        decides how to report its violations.
        """
        if perf_kwargs is None:
            test_function(**test_args)
            return None

        config = self.build_config(perf_kwargs, requirement_kwargs)
        is_async = PERF_CONTEXT_FIXTURE in test_args
        invocation = self._build_invocation(test_function, test_args, is_async)

        context = EvaluationContext(
            test_id,
            config,
            class_key=class_key,
            is_async_evaluation=is_async,
        )
        calculator = self.active_statistics_calculator
        if calculator is None:
            calculator = DescriptiveStatisticsCalculator()
        scheduler = self.scheduler_factory(context, invocation, calculator=calculator)

        self.registry.register(class_key, context)
        self._class_reporters[class_key] = list(self.active_reporters or [DEFAULT_REPORTER])
        scheduler.run()
        return context

    def publish(self, class_key: str) -> Dict[str, EvaluationContext]:
        """Publish and forget every context collected for class_key."""
        generators = self._class_reporters.pop(class_key, None)
        if generators is None or get_settings().reports_disabled:
            return self.registry.pop(class_key)
        return publish_reports(self.registry, class_key, generators)

    def _build_invocation(
        self,
        test_function: Callable[..., Any],
        test_args: Dict[str, Any],
        is_async: bool,
    ) -> Any:
        if is_async:
            guarded = _guard(test_function)

            def start(handle: CompletionHandle) -> Any:
                return guarded(**{**test_args, PERF_CONTEXT_FIXTURE: handle})

            return AsyncInvocation(start)

        if inspect.iscoroutinefunction(test_function):

            async def run_coroutine() -> Any:
                try:
                    return await test_function(**test_args)
                except _HOST_OUTCOMES as exc:
                    raise AssertionError(str(exc)) from None

            return CoroutineInvocation(run_coroutine)

        return functools.partial(_guard(test_function), **test_args)

    # -- pytest hooks -------------------------------------------------------

    def pytest_runtest_setup(self, item: pytest.Item) -> None:
        key = class_key_for(item)
        if key != self._current_class_key:
            self._current_class_key = key
            self.registry.start_run(key)

    @pytest.hookimpl(tryfirst=True)
    def pytest_pyfunc_call(self, pyfuncitem: pytest.Function) -> Optional[bool]:
        marker = pyfuncitem.get_closest_marker(PERF_MARKER)
        if marker is None:
            return None
        if marker.args:
            raise PerfCheckConfigError(
                "The perf marker accepts keyword arguments only",
                code="invalid_perf_marker",
                details={"args": list(marker.args)},
            )

        requirements = pyfuncitem.get_closest_marker(REQUIREMENTS_MARKER)
        funcargs = pyfuncitem.funcargs
        test_args = {name: funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}

        owner = getattr(pyfuncitem, "cls", None) or pyfuncitem.module
        self.post_process_test_instance(owner)

        context = self.intercept_test_method(
            pyfuncitem.obj,
            test_args,
            test_id=pyfuncitem.nodeid,
            class_key=class_key_for(pyfuncitem),
            perf_kwargs=dict(marker.kwargs),
            requirement_kwargs=dict(requirements.kwargs) if requirements else None,
        )
        if context is not None and context.violations:
            pytest.fail(context.failure_message(), pytrace=False)
        return True

    def pytest_runtest_teardown(
        self, item: pytest.Item, nextitem: Optional[pytest.Item]
    ) -> None:
        key = class_key_for(item)
        if nextitem is not None and class_key_for(nextitem) == key:
            return
        self.publish(key)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{PERF_MARKER}(threads=1, duration_ms=60000, warm_up_ms=0, "
        "max_executions_per_second=0, total_executions=None): "
        "invoke the test repeatedly and concurrently as a performance evaluation",
    )
    config.addinivalue_line(
        "markers",
        f"{REQUIREMENTS_MARKER}(percentiles='95:10', min_throughput=None, "
        "max_error_percentage=None, min_latency_ms=None, max_latency_ms=None, "
        "mean_latency_ms=None): thresholds for a perf-marked test",
    )
    if not config.pluginmanager.has_plugin(PLUGIN_NAME):
        config.pluginmanager.register(PerfPlugin(), PLUGIN_NAME)


@pytest.fixture
def perf_context(request: pytest.FixtureRequest) -> CompletionHandle:
    """Completion handle for async perf tests; replaced per invocation."""
    plugin = request.config.pluginmanager.get_plugin(PLUGIN_NAME)
    if plugin is None:
        return CompletionHandle()
    return plugin.resolve_parameter()

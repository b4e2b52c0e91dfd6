"""
Tests for the pytest integration.

These tests verify:
1. PerfPlugin resolves reporting defaults and overrides per test class
2. Unmarked tests run exactly once; marked tests run through a scheduler
3. Async tests are detected from the perf_context parameter
4. Marked tests fail with every violated threshold listed
5. Reports are published once per class, after its last test
"""
from __future__ import annotations

import io

import pytest

from perfcheck.config import reset_settings
from perfcheck.context import EvaluationContext
from perfcheck.exceptions import PerfCheckConfigError
from perfcheck.invocation import AsyncInvocation, CompletionHandle
from perfcheck.pytest_plugin import (
    PERF_CONTEXT_FIXTURE,
    PLUGIN_NAME,
    PerfPlugin,
    class_key_for,
)
from perfcheck.reporting import (
    DEFAULT_REPORTER,
    ConsoleReportGenerator,
    ReportingConfig,
    active_config,
)
from perfcheck.statistics import DescriptiveStatisticsCalculator, Statistics


class CountingCalculator(DescriptiveStatisticsCalculator):
    pass


class FakeScheduler:
    """Stands in for EvaluationScheduler; finalizes without invoking."""

    instances = []

    def __init__(self, context, invocation, *, calculator=None):
        self.context = context
        self.invocation = invocation
        self.calculator = calculator
        self.runs = 0
        FakeScheduler.instances.append(self)

    def run(self):
        self.runs += 1
        self.context.mark_started()
        self.context.mark_measurements_started()
        self.context.finalize(Statistics(), [])
        return self.context


@pytest.fixture
def plugin():
    FakeScheduler.instances = []
    return PerfPlugin()


class TestPostProcess:
    def test_defaults(self, plugin):
        class TestPlain:
            pass

        plugin.post_process_test_instance(TestPlain)

        assert isinstance(plugin.active_statistics_calculator, DescriptiveStatisticsCalculator)
        assert plugin.active_reporters == [DEFAULT_REPORTER]

    def test_overrides(self, plugin):
        stream = io.StringIO()

        class TestCustom:
            REPORTING = active_config(
                ReportingConfig(
                    report_generators=[ConsoleReportGenerator(stream)],
                    statistics_calculator_supplier=CountingCalculator,
                )
            )

        plugin.post_process_test_instance(TestCustom)

        assert isinstance(plugin.active_statistics_calculator, CountingCalculator)
        assert len(plugin.active_reporters) == 1
        assert isinstance(plugin.active_reporters[0], ConsoleReportGenerator)

    def test_inactive_config_keeps_defaults(self, plugin):
        class TestInactive:
            REPORTING = ReportingConfig(statistics_calculator_supplier=CountingCalculator)

        plugin.post_process_test_instance(TestInactive)

        assert type(plugin.active_statistics_calculator) is DescriptiveStatisticsCalculator

    def test_conflicting_configs(self, plugin):
        class TestConflict:
            A = active_config(ReportingConfig())
            B = active_config(ReportingConfig())

        with pytest.raises(PerfCheckConfigError):
            plugin.post_process_test_instance(TestConflict)

    def test_fresh_calculator_per_call(self, plugin):
        class TestPlain:
            pass

        plugin.post_process_test_instance(TestPlain)
        first = plugin.active_statistics_calculator
        plugin.post_process_test_instance(TestPlain)

        assert plugin.active_statistics_calculator is not first


class TestParameters:
    def test_supports_perf_context_only(self, plugin):
        assert plugin.supports_parameter(PERF_CONTEXT_FIXTURE)
        assert not plugin.supports_parameter("tmp_path")

    def test_resolve_parameter(self, plugin):
        assert isinstance(plugin.resolve_parameter(), CompletionHandle)


class TestInterceptTestMethod:
    def test_unmarked_runs_once(self, plugin):
        plugin.scheduler_factory = FakeScheduler
        calls = []

        result = plugin.intercept_test_method(
            lambda value: calls.append(value),
            {"value": 7},
            test_id="t::plain",
            class_key="t",
        )

        assert result is None
        assert calls == [7]
        assert FakeScheduler.instances == []
        assert len(plugin.registry) == 0

    def test_marked_uses_scheduler_and_registers_once(self, plugin):
        plugin.scheduler_factory = FakeScheduler
        plugin.active_statistics_calculator = CountingCalculator()

        context = plugin.intercept_test_method(
            lambda: None,
            {},
            test_id="t::marked",
            class_key="t",
            perf_kwargs={"threads": 3, "duration_ms": 500},
            requirement_kwargs={"percentiles": "95:10"},
        )

        assert isinstance(context, EvaluationContext)
        assert len(FakeScheduler.instances) == 1
        scheduler = FakeScheduler.instances[0]
        assert scheduler.runs == 1
        assert scheduler.context is context
        assert scheduler.calculator is plugin.active_statistics_calculator
        assert context.config.threads == 3
        assert context.config.thresholds.max_latency_percentiles == {95.0: 10.0}
        assert context.is_async_evaluation is False
        assert plugin.registry.contexts("t") == {"t::marked": context}

    def test_async_detected_from_parameter(self, plugin):
        plugin.scheduler_factory = FakeScheduler

        context = plugin.intercept_test_method(
            lambda perf_context: perf_context.success(),
            {PERF_CONTEXT_FIXTURE: CompletionHandle()},
            test_id="t::async",
            class_key="t",
            perf_kwargs={"duration_ms": 100},
        )

        assert context.is_async_evaluation is True
        assert isinstance(FakeScheduler.instances[0].invocation, AsyncInvocation)

    def test_async_invocation_gets_fresh_handle(self, plugin):
        plugin.scheduler_factory = FakeScheduler
        seen = []

        def test_fn(perf_context):
            seen.append(perf_context)
            perf_context.success()

        plugin.intercept_test_method(
            test_fn,
            {PERF_CONTEXT_FIXTURE: CompletionHandle()},
            test_id="t::async",
            class_key="t",
            perf_kwargs={"duration_ms": 100},
        )
        invocation = FakeScheduler.instances[0].invocation
        first = invocation.start()
        second = invocation.start()

        assert seen == [first, second]
        assert first is not second

    def test_invalid_config_fails_before_scheduler(self, plugin):
        plugin.scheduler_factory = FakeScheduler

        with pytest.raises(PerfCheckConfigError) as exc_info:
            plugin.intercept_test_method(
                lambda: None,
                {},
                test_id="t::bad",
                class_key="t",
                perf_kwargs={"threads": 0},
            )

        assert exc_info.value.code == "invalid_perf_config"
        assert FakeScheduler.instances == []
        assert len(plugin.registry) == 0

    def test_warm_up_not_shorter_than_duration(self, plugin):
        with pytest.raises(PerfCheckConfigError):
            plugin.build_config({"duration_ms": 100, "warm_up_ms": 200})

    def test_real_scheduler_publishes_measurement_start(self, plugin):
        context = plugin.intercept_test_method(
            lambda: None,
            {},
            test_id="t::real",
            class_key="t",
            perf_kwargs={"duration_ms": 100, "warm_up_ms": 20},
        )

        assert context.finished
        assert context.measurements_start_time_ms >= context.created_at_ms + 20

    def test_pytest_fail_counts_as_error_sample(self, plugin):
        def test_fn():
            pytest.fail("bad response")

        context = plugin.intercept_test_method(
            test_fn,
            {},
            test_id="t::fails",
            class_key="t",
            perf_kwargs={"duration_ms": 100, "max_executions_per_second": 100},
            requirement_kwargs={"max_error_percentage": 0.0},
        )

        assert context.statistics.error_percentage == 100.0
        assert [v.metric for v in context.violations] == ["error_percentage"]


class TestPublish:
    def test_publish_to_active_reporters(self, plugin):
        stream = io.StringIO()
        plugin.scheduler_factory = FakeScheduler
        plugin.active_reporters = [ConsoleReportGenerator(stream)]

        plugin.intercept_test_method(
            lambda: None, {}, test_id="t::a", class_key="t", perf_kwargs={"duration_ms": 10}
        )
        plugin.intercept_test_method(
            lambda: None, {}, test_id="t::b", class_key="t", perf_kwargs={"duration_ms": 10}
        )
        published = plugin.publish("t")

        assert sorted(published) == ["t::a", "t::b"]
        assert stream.getvalue().count("TEST: ") == 2
        assert len(plugin.registry) == 0

    def test_publish_unknown_class(self, plugin):
        assert plugin.publish("nothing") == {}

    def test_reports_disabled(self, plugin, monkeypatch):
        monkeypatch.setenv("PERFCHECK_DISABLE_REPORTS", "1")
        reset_settings()
        stream = io.StringIO()
        plugin.scheduler_factory = FakeScheduler
        plugin.active_reporters = [ConsoleReportGenerator(stream)]

        plugin.intercept_test_method(
            lambda: None, {}, test_id="t::a", class_key="t", perf_kwargs={"duration_ms": 10}
        )
        plugin.publish("t")

        assert stream.getvalue() == ""
        assert len(plugin.registry) == 0


class TestRegistration:
    def test_plugin_registered_for_session(self, pytestconfig):
        assert isinstance(pytestconfig.pluginmanager.get_plugin(PLUGIN_NAME), PerfPlugin)

    def test_every_hook_is_a_pytest_hook(self, pytestconfig):
        hooks = [name for name in dir(PerfPlugin) if name.startswith("pytest_")]

        assert "pytest_pyfunc_call" in hooks
        for name in hooks:
            assert hasattr(pytestconfig.hook, name), name


class TestClassKey:
    def test_class_key_for_method(self, request):
        assert class_key_for(request.node) == f"{__name__}.TestClassKey"


def test_class_key_for_module_function(request):
    assert class_key_for(request.node) == __name__


# =============================================================================
# End-to-end through pytest
# =============================================================================

REPORT_COLLECTOR = """
import json
from pathlib import Path

from perfcheck.reporting import ReportingConfig, active_config


class FileGenerator:
    def generate_report(self, contexts):
        with Path("report.log").open("a") as fh:
            fh.write(json.dumps(sorted(contexts)) + "\\n")


REPORTING = active_config(ReportingConfig(report_generators=[FileGenerator()]))
"""


class TestPytestEndToEnd:
    def test_marked_test_passes(self, pytester):
        pytester.makepyfile(
            REPORT_COLLECTOR
            + """
import pytest

@pytest.mark.perf(threads=2, duration_ms=200, max_executions_per_second=100)
@pytest.mark.perf_requirements(max_error_percentage=0.0)
def test_fast():
    assert 1 + 1 == 2
"""
        )
        result = pytester.runpytest()
        result.assert_outcomes(passed=1)

    def test_violations_fail_test(self, pytester):
        pytester.makepyfile(
            """
import pytest

@pytest.mark.perf(duration_ms=200, max_executions_per_second=100)
@pytest.mark.perf_requirements(max_error_percentage=50.0, min_throughput=1000000)
def test_broken():
    raise RuntimeError("backend down")
"""
        )
        result = pytester.runpytest()
        result.assert_outcomes(failed=1)
        result.stdout.fnmatch_lines(
            [
                "*2 performance threshold(s) violated*",
                "*Error percentage 100.00% exceeds allowed 50.00%*",
                "*Throughput*below required*",
            ]
        )

    def test_unmarked_runs_once(self, pytester):
        pytester.makepyfile(
            """
CALLS = []

def test_plain():
    CALLS.append(1)

def test_ran_once():
    assert CALLS == [1]
"""
        )
        result = pytester.runpytest()
        result.assert_outcomes(passed=2)

    def test_async_perf_context(self, pytester):
        pytester.makepyfile(
            """
import threading
import pytest

@pytest.mark.perf(threads=2, duration_ms=200, max_executions_per_second=200)
@pytest.mark.perf_requirements(max_error_percentage=0.0)
def test_callback(perf_context):
    threading.Timer(0.001, perf_context.success).start()
"""
        )
        result = pytester.runpytest()
        result.assert_outcomes(passed=1)

    def test_coroutine_test(self, pytester):
        pytester.makepyfile(
            """
import asyncio
import pytest

@pytest.mark.perf(duration_ms=200)
@pytest.mark.perf_requirements(max_error_percentage=0.0)
async def test_async_lookup():
    await asyncio.sleep(0.001)
"""
        )
        result = pytester.runpytest()
        result.assert_outcomes(passed=1)

    def test_reports_once_per_class(self, pytester):
        pytester.makepyfile(
            REPORT_COLLECTOR
            + """
import pytest

@pytest.mark.perf(duration_ms=50)
def test_one():
    pass

@pytest.mark.perf(duration_ms=50)
def test_two():
    pass

def test_not_perf():
    pass
"""
        )
        result = pytester.runpytest()
        result.assert_outcomes(passed=3)

        lines = (pytester.path / "report.log").read_text().splitlines()
        assert len(lines) == 1
        assert "test_reports_once_per_class.py::test_one" in lines[0]
        assert "test_reports_once_per_class.py::test_two" in lines[0]

    def test_conflicting_reporting_configs_error(self, pytester):
        pytester.makepyfile(
            """
import pytest
from perfcheck.reporting import ReportingConfig, active_config

class TestConflict:
    FIRST = active_config(ReportingConfig())
    SECOND = active_config(ReportingConfig())

    @pytest.mark.perf(duration_ms=50)
    def test_x(self):
        pass
"""
        )
        result = pytester.runpytest()
        result.assert_outcomes(failed=1)
        result.stdout.fnmatch_lines(["*Only one active reporting config*"])

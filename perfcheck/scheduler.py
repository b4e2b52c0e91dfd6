"""
EvaluationScheduler: drive repeated concurrent invocations of one target.

Timeline of a run:
    start ──warm_up_ms──> measurement start ──duration_ms──> deadline ──drain──> finalize

- Workers invoke the target in a loop, gated by the shared RateController.
- Only invocations that start after the measurement boundary and finish
  before the stop signal are recorded.
- Invocation failures become error samples and never leave the worker.
- At the deadline workers are stopped cooperatively, joined for at most the
  drain grace period, and the statistics are snapshotted and evaluated.

Usage:
    context = EvaluationContext("test_checkout", EvaluationConfig(threads=4, duration_ms=5_000))
    EvaluationScheduler(context, lambda: client.get("/checkout")).run()
    context.raise_for_violations()
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, List, Optional, Tuple

from perfcheck import telemetry
from perfcheck.config import get_settings
from perfcheck.context import EvaluationContext
from perfcheck.exceptions import PerfCheckStateError
from perfcheck.invocation import (
    PROPAGATED_EXCEPTIONS,
    AsyncInvocation,
    CoroutineInvocation,
    as_invocation,
)
from perfcheck.ratelimit import RateController
from perfcheck.statistics.calculator import (
    DescriptiveStatisticsCalculator,
    StatisticsCalculator,
)
from perfcheck.thresholds import evaluate_thresholds

logger = logging.getLogger(__name__)

# (is_error, latency_ns), or None when the invocation was cut off by the stop.
_Sample = Optional[Tuple[bool, int]]


class EvaluationScheduler:
    """
    Owns the worker pool for exactly one evaluation.

    Thread-safe: workers only touch the calculator (through the recording
    gate) and the execution counter; every context write happens on the
    thread that called run().
    """

    def __init__(
        self,
        context: EvaluationContext,
        invocation: Any,
        *,
        calculator: Optional[StatisticsCalculator] = None,
        rate_controller: Optional[RateController] = None,
        drain_grace_seconds: Optional[float] = None,
        async_timeout_seconds: Optional[float] = None,
    ) -> None:
        """
        Args:
            context: Fresh context describing the run.
            invocation: Zero-argument callable, AsyncInvocation, CoroutineInvocation
                        or ``async def`` function.
            calculator: Statistics aggregator. Defaults to DescriptiveStatisticsCalculator.
            rate_controller: Shared limiter. Defaults to one built from the config.
            drain_grace_seconds: Max time to wait for in-flight invocations after stop.
            async_timeout_seconds: Per-invocation timeout for async targets. Defaults
                        to PERFCHECK_ASYNC_TIMEOUT_MS capped at half the measured window.
        """
        settings = get_settings()
        self._context = context
        self._invocation = as_invocation(invocation)
        self._calculator: StatisticsCalculator = (
            calculator if calculator is not None else DescriptiveStatisticsCalculator()
        )
        self._rate = rate_controller or RateController(
            context.config.max_executions_per_second
        )
        self._drain_grace = (
            drain_grace_seconds
            if drain_grace_seconds is not None
            else settings.drain_grace_seconds
        )
        if async_timeout_seconds is not None:
            self._async_timeout = async_timeout_seconds
        else:
            # A never-signalled handle must time out inside the measured window.
            self._async_timeout = settings.async_timeout_seconds
            window = context.config.duration_ms / 1000.0
            if window > 0:
                self._async_timeout = min(self._async_timeout, window / 2)

        self._stop = threading.Event()
        self._measuring = threading.Event()
        self._workers_done = threading.Event()

        # Recording gate: open between measurement start and stop.
        self._gate = threading.Lock()
        self._recording_open = False

        self._state_lock = threading.Lock()
        self._has_run = False
        self._live_workers = 0
        self._executions_started = 0
        self._exhausted = False

        self._deadline = 0.0
        self._workers: List[threading.Thread] = []

    @property
    def context(self) -> EvaluationContext:
        return self._context

    @property
    def calculator(self) -> StatisticsCalculator:
        return self._calculator

    @property
    def rate_controller(self) -> RateController:
        return self._rate

    @property
    def executions_started(self) -> int:
        with self._state_lock:
            return self._executions_started

    def run(self) -> EvaluationContext:
        """
        Execute the evaluation and finalize the context.

        Returns:
            The finalized context holding statistics and violations.

        Raises:
            PerfCheckStateError: If this scheduler or its context already ran.
        """
        with self._state_lock:
            if self._has_run:
                raise PerfCheckStateError(
                    "EvaluationScheduler instances evaluate exactly once",
                    code="scheduler_reused",
                    details={"test_id": self._context.test_id},
                )
            self._has_run = True

        context = self._context
        context.mark_started()
        config = context.config

        with telemetry.evaluation_span(context):
            warm_up = config.warm_up_ms / 1000.0
            duration = config.duration_ms / 1000.0

            start = time.monotonic()
            self._deadline = start + warm_up + duration
            measure_start: Optional[float] = None

            if warm_up <= 0:
                measure_start = self._begin_measurement()

            self._start_workers(config.threads)
            logger.debug(
                "Started %d worker(s) for %s (warm_up=%.3fs, duration=%.3fs, rate=%s/s)",
                config.threads,
                context.test_id,
                warm_up,
                duration,
                config.max_executions_per_second or "unbounded",
            )

            if measure_start is None:
                self._workers_done.wait(warm_up)
                if not self._workers_done.is_set():
                    measure_start = self._begin_measurement()

            remaining = self._deadline - time.monotonic()
            if remaining > 0:
                self._workers_done.wait(remaining)

            stop_time = self._halt()
            self._drain()

            elapsed = 0.0
            if measure_start is not None:
                elapsed = max(0.0, stop_time - measure_start)

            statistics = self._calculator.snapshot(
                elapsed, config.requested_percentiles()
            )
            violations = evaluate_thresholds(statistics, config.thresholds)
            context.finalize(statistics, violations)

        logger.info(
            "Evaluated %s: %d invocations, %.2f%% errors, %.2f/s, %d violation(s)",
            context.test_id,
            statistics.total_count,
            statistics.error_percentage,
            statistics.throughput_per_second,
            len(violations),
        )
        telemetry.record_result(context)
        return context

    def _begin_measurement(self) -> float:
        """Publish the warm-up/measurement boundary to every worker."""
        self._context.mark_measurements_started()
        with self._gate:
            self._recording_open = True
        self._measuring.set()
        return time.monotonic()

    def _halt(self) -> float:
        """Close the recording gate and signal stop. Returns the window end."""
        now = time.monotonic()
        with self._gate:
            self._recording_open = False
        self._stop.set()
        with self._state_lock:
            exhausted = self._exhausted
        if exhausted:
            return min(now, self._deadline)
        return self._deadline

    def _start_workers(self, count: int) -> None:
        with self._state_lock:
            self._live_workers = count
        for index in range(count):
            worker = threading.Thread(
                target=self._worker_loop,
                name=f"perfcheck-worker-{index}",
                daemon=True,
            )
            self._workers.append(worker)
            worker.start()

    def _drain(self) -> None:
        """Join workers for at most the grace period; abandon the rest."""
        end = time.monotonic() + max(0.0, self._drain_grace)
        for worker in self._workers:
            worker.join(max(0.0, end - time.monotonic()))
        stuck = [w.name for w in self._workers if w.is_alive()]
        if stuck:
            logger.warning(
                "Abandoning %d worker(s) still in-flight after %.2fs drain for %s: %s",
                len(stuck),
                self._drain_grace,
                self._context.test_id,
                ", ".join(stuck),
            )

    def _worker_loop(self) -> None:
        try:
            while not self._stop.is_set():
                if not self._rate.acquire(deadline=self._deadline, stop_event=self._stop):
                    break
                if self._stop.is_set() or time.monotonic() >= self._deadline:
                    break
                if not self._claim_execution():
                    break

                measured = self._measuring.is_set()
                sample = self._invoke_once()
                if measured and sample is not None:
                    self._record(*sample)
        finally:
            if isinstance(self._invocation, CoroutineInvocation):
                self._invocation.close_worker()
            self._worker_exited()

    def _claim_execution(self) -> bool:
        limit = self._context.config.total_executions
        with self._state_lock:
            if limit is not None and self._executions_started >= limit:
                self._exhausted = True
                return False
            self._executions_started += 1
            return True

    def _worker_exited(self) -> None:
        with self._state_lock:
            self._live_workers -= 1
            if self._live_workers <= 0:
                self._workers_done.set()

    def _record(self, is_error: bool, latency_ns: int) -> None:
        with self._gate:
            if self._recording_open:
                self._calculator.record(latency_ns, is_error)

    def _stopped(self) -> bool:
        return self._stop.is_set() or time.monotonic() >= self._deadline

    def _call_timeout(self) -> float:
        return max(0.0, min(self._async_timeout, self._deadline - time.monotonic()))

    def _invoke_once(self) -> _Sample:
        invocation = self._invocation

        if isinstance(invocation, AsyncInvocation):
            handle = invocation.start()
            completion = handle.wait(self._call_timeout())
            if completion is None:
                if self._stopped():
                    return None
                logger.debug(
                    "Async invocation for %s timed out after %.3fs",
                    self._context.test_id,
                    self._async_timeout,
                )
                return True, time.perf_counter_ns() - handle.started_ns
            latency = completion.latency_ns
            if latency is None:
                latency = time.perf_counter_ns() - handle.started_ns
            return (not completion.success), latency

        started = time.perf_counter_ns()
        if isinstance(invocation, CoroutineInvocation):
            try:
                invocation.run(timeout=self._call_timeout())
            except asyncio.TimeoutError:
                if self._stopped():
                    return None
                return True, time.perf_counter_ns() - started
            except PROPAGATED_EXCEPTIONS:
                raise
            except BaseException as exc:
                logger.debug("Invocation of %s failed: %r", self._context.test_id, exc)
                return True, time.perf_counter_ns() - started
            return False, time.perf_counter_ns() - started

        try:
            invocation()
        except PROPAGATED_EXCEPTIONS:
            raise
        except BaseException as exc:
            logger.debug("Invocation of %s failed: %r", self._context.test_id, exc)
            return True, time.perf_counter_ns() - started
        return False, time.perf_counter_ns() - started


def evaluate(
    context: EvaluationContext,
    invocation: Any,
    **kwargs: Any,
) -> EvaluationContext:
    """Convenience: build a scheduler for context and run it once."""
    return EvaluationScheduler(context, invocation, **kwargs).run()

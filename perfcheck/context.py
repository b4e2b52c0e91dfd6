"""
EvaluationContext: configuration, run state and verdict of one evaluation.

A context is created by the host for exactly one test method invocation and
is discarded after reporting. Run fields are written by the scheduler only:
- measurements_start_time_ms: published once, when warm-up ends
- statistics / violations: written once, by finalize()
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional, Sequence

from perfcheck.exceptions import PerfCheckStateError, PerfThresholdError
from perfcheck.models import EvaluationConfig, ThresholdViolation
from perfcheck.statistics.snapshot import Statistics


def now_ms() -> int:
    return int(time.time() * 1000)


class EvaluationContext:
    """
    Data record for one performance evaluation.

    Attributes:
        test_id: Opaque identity of the evaluated test.
        class_key: Identity of the owning test class (registry key).
        config: Immutable evaluation configuration.
        is_async_evaluation: True when completion is signalled out-of-band.
        created_at_ms: Epoch milliseconds at construction.
    """

    def __init__(
        self,
        test_id: str,
        config: EvaluationConfig,
        *,
        class_key: Optional[str] = None,
        is_async_evaluation: bool = False,
    ) -> None:
        self.test_id = test_id
        self.class_key = class_key or test_id
        self.config = config
        self.is_async_evaluation = is_async_evaluation
        self.created_at_ms = now_ms()

        self._lock = threading.Lock()
        self._started = False
        self._measurements_start_time_ms: Optional[int] = None
        self._finished_at_ms: Optional[int] = None
        self._statistics: Optional[Statistics] = None
        self._violations: List[ThresholdViolation] = []

    def mark_started(self) -> None:
        """Claim the context for a run. Contexts are never reused."""
        with self._lock:
            if self._started:
                raise PerfCheckStateError(
                    f"Evaluation context for {self.test_id} has already been run",
                    code="context_reused",
                    details={"test_id": self.test_id},
                )
            self._started = True

    def mark_measurements_started(self, timestamp_ms: Optional[int] = None) -> int:
        """
        Publish the warm-up/measurement boundary.

        Clamped so it is never earlier than created_at_ms + warm_up_ms.
        """
        with self._lock:
            if self._measurements_start_time_ms is not None:
                raise PerfCheckStateError(
                    "Measurement start time is already set",
                    code="measurement_start_already_set",
                    details={"test_id": self.test_id},
                )
            earliest = self.created_at_ms + self.config.warm_up_ms
            stamp = timestamp_ms if timestamp_ms is not None else now_ms()
            self._measurements_start_time_ms = max(stamp, earliest)
            return self._measurements_start_time_ms

    @property
    def measurements_start_time_ms(self) -> Optional[int]:
        with self._lock:
            return self._measurements_start_time_ms

    def finalize(
        self,
        statistics: Statistics,
        violations: Sequence[ThresholdViolation],
    ) -> None:
        """Store the result snapshot. Called once by the scheduler."""
        with self._lock:
            if self._statistics is not None:
                raise PerfCheckStateError(
                    f"Evaluation context for {self.test_id} is already finalized",
                    code="context_already_finalized",
                    details={"test_id": self.test_id},
                )
            self._statistics = statistics
            self._violations = list(violations)
            self._finished_at_ms = now_ms()

    @property
    def finished(self) -> bool:
        with self._lock:
            return self._statistics is not None

    @property
    def finished_at_ms(self) -> Optional[int]:
        with self._lock:
            return self._finished_at_ms

    @property
    def statistics(self) -> Optional[Statistics]:
        with self._lock:
            return self._statistics

    @property
    def violations(self) -> List[ThresholdViolation]:
        with self._lock:
            return list(self._violations)

    @property
    def passed(self) -> bool:
        return self.finished and not self.violations

    def failure_message(self) -> str:
        violations = self.violations
        if not violations:
            return ""
        lines = [f"{self.test_id}: {len(violations)} performance threshold(s) violated"]
        lines.extend(f"  - {v.message}" for v in violations)
        return "\n".join(lines)

    def raise_for_violations(self) -> None:
        """Raise PerfThresholdError listing every violated threshold."""
        violations = self.violations
        if violations:
            raise PerfThresholdError(
                self.failure_message(),
                test_id=self.test_id,
                violations=violations,
            )

    def to_dict(self) -> Dict[str, Any]:
        stats = self.statistics
        return {
            "test_id": self.test_id,
            "class_key": self.class_key,
            "is_async_evaluation": self.is_async_evaluation,
            "created_at_ms": self.created_at_ms,
            "measurements_start_time_ms": self.measurements_start_time_ms,
            "finished_at_ms": self.finished_at_ms,
            "config": self.config.model_dump(mode="json"),
            "statistics": stats.to_log_dict() if stats is not None else None,
            "violations": [v.model_dump() for v in self.violations],
            "passed": self.passed,
        }

    def __repr__(self) -> str:
        return (
            f"EvaluationContext(test_id={self.test_id!r}, "
            f"async={self.is_async_evaluation}, finished={self.finished})"
        )

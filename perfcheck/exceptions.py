"""
Typed exceptions for perfcheck.

Provides structured error handling with:
- PerfCheckError: Base exception for all perfcheck errors
- PerfCheckConfigError: Configuration and validation errors
- PerfCheckStateError: Lifecycle misuse (reused schedulers/contexts)
- PerfCheckReportError: Report generation failures
- PerfThresholdError: Post-run threshold verdicts

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class PerfCheckError(Exception):
    """Base exception for all perfcheck errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or report output."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class PerfCheckConfigError(PerfCheckError):
    """Configuration or validation error.

    Raised at setup, before any worker starts, when:
    - More than one reporting config is marked active on a test class
    - Marker arguments fail validation (zero threads, warm-up >= duration, ...)

    Examples:
        PerfCheckConfigError("Multiple active reporting configs", code="conflicting_configs")
        PerfCheckConfigError("Invalid perf marker", details={"errors": [...]})
    """

    pass


class PerfCheckStateError(PerfCheckError):
    """Lifecycle misuse.

    Raised when:
    - A scheduler is run a second time
    - A context is started, finalized or registered twice
    - The measurement start time is published twice
    """

    pass


class PerfCheckReportError(PerfCheckError):
    """Report generation failure.

    Attributes:
        generator: Name of the report generator that failed
        class_key: Test class whose reporting phase failed
    """

    def __init__(
        self,
        message: str,
        *,
        generator: Optional[str] = None,
        class_key: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if generator:
            details["generator"] = generator
        if class_key:
            details["class_key"] = class_key

        self.generator = generator
        self.class_key = class_key

        super().__init__(message, code=code, details=details)


class PerfThresholdError(PerfCheckError, AssertionError):
    """One or more thresholds were violated by an evaluation.

    Attributes:
        test_id: Identity of the evaluated test
        violations: Every violated threshold, not just the first
    """

    def __init__(
        self,
        message: str,
        *,
        test_id: Optional[str] = None,
        violations: Optional[Sequence[Any]] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        self.test_id = test_id
        self.violations: List[Any] = list(violations or [])
        if test_id:
            details["test_id"] = test_id
        details["violations"] = [
            v.model_dump() if hasattr(v, "model_dump") else v for v in self.violations
        ]

        super().__init__(message, code=code, details=details)


__all__ = [
    "PerfCheckError",
    "PerfCheckConfigError",
    "PerfCheckStateError",
    "PerfCheckReportError",
    "PerfThresholdError",
]

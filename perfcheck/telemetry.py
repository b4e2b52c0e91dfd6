"""
Optional Logfire tracing for evaluations.

Each scheduler run is wrapped in one span, and its finished statistics are
emitted as one structured record. Everything is a no-op unless the
``logfire`` package is installed and PERFCHECK_LOGFIRE is not false.

Environment:
    PERFCHECK_LOGFIRE           enable/disable (default: enabled when installed)
    PERFCHECK_LOGFIRE_CONSOLE   let Logfire print to the console (default: off)
    PERFCHECK_TELEMETRY_STDERR  echo result records to stderr as JSON (default: off)
"""
from __future__ import annotations

import json
import os
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

if TYPE_CHECKING:
    from perfcheck.context import EvaluationContext

_logfire = None
_configured = False


def _load_logfire():
    global _logfire
    if _logfire is None:
        try:
            import logfire
        except ImportError:
            _logfire = False
        else:
            _logfire = logfire
    return _logfire


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def enabled() -> bool:
    return bool(_load_logfire()) and _flag("PERFCHECK_LOGFIRE", True)


def configure() -> bool:
    """Configure Logfire once per process. Returns False when unavailable."""
    global _configured
    if not enabled():
        return False
    if not _configured:
        try:
            _logfire.configure(
                console=None if _flag("PERFCHECK_LOGFIRE_CONSOLE", False) else False,
                send_to_logfire="if-token-present",
            )
        except Exception:
            return False
        _configured = True
    return True


def _span_attributes(context: "EvaluationContext") -> Dict[str, Any]:
    config = context.config
    return {
        "test_id": context.test_id,
        "class_key": context.class_key,
        "threads": config.threads,
        "duration_ms": config.duration_ms,
        "warm_up_ms": config.warm_up_ms,
        "max_executions_per_second": config.max_executions_per_second,
        "async_evaluation": context.is_async_evaluation,
    }


@contextmanager
def evaluation_span(context: "EvaluationContext") -> Iterator[None]:
    """Trace one evaluation run."""
    if not configure():
        yield
        return
    try:
        span = _logfire.span("perfcheck evaluation {test_id}", **_span_attributes(context))
        span.__enter__()
    except Exception:
        yield
        return
    try:
        yield
    except BaseException as exc:
        span.__exit__(type(exc), exc, exc.__traceback__)
        raise
    else:
        span.__exit__(None, None, None)


def result_record(context: "EvaluationContext") -> Dict[str, Any]:
    """Structured record describing a finished evaluation."""
    statistics = context.statistics
    return {
        "test_id": context.test_id,
        "class_key": context.class_key,
        "passed": context.passed,
        "statistics": statistics.to_log_dict() if statistics is not None else None,
        "violations": [v.metric for v in context.violations],
    }


def record_result(context: "EvaluationContext") -> None:
    """Emit the result of a finished evaluation to Logfire and/or stderr."""
    record = result_record(context)
    if _flag("PERFCHECK_TELEMETRY_STDERR", False):
        print(json.dumps(record, default=str), file=sys.stderr)
    if not configure():
        return
    emit = _logfire.info if context.passed else _logfire.warn
    try:
        emit("perfcheck result {test_id}", **record)
    except Exception:
        return


def reset() -> None:
    """Forget the cached Logfire module and configuration. For testing only."""
    global _logfire, _configured
    _logfire = None
    _configured = False

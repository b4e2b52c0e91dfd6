"""
Console report: human-readable text summary of a class's evaluations.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Mapping, Optional

from perfcheck.context import EvaluationContext

logger = logging.getLogger(__name__)


def format_report(contexts: Mapping[str, EvaluationContext]) -> str:
    """
    Format finalized contexts as human-readable text.

    Args:
        contexts: test_id -> finalized EvaluationContext.

    Returns:
        Formatted string suitable for printing.
    """
    lines = []

    for test_id, context in contexts.items():
        config = context.config
        s = context.statistics

        lines.append("=" * 60)
        lines.append(f"TEST: {test_id}")
        lines.append("=" * 60)
        rate = (
            f"{config.max_executions_per_second}/s"
            if config.max_executions_per_second
            else "unbounded"
        )
        lines.append(
            f"Threads: {config.threads}  Duration: {config.duration_ms}ms  "
            f"Warm-up: {config.warm_up_ms}ms  Rate: {rate}"
        )
        if context.is_async_evaluation:
            lines.append("Mode: async")

        if s is None:
            lines.append("Not evaluated")
            lines.append("")
            continue

        lines.append("")
        lines.append("--- Invocations ---")
        lines.append(f"  Total: {s.total_count}")
        lines.append(f"  Errors: {s.error_count} ({s.error_percentage:.2f}%)")
        lines.append(f"  Throughput: {s.throughput_per_second:.2f}/s")

        lines.append("")
        lines.append("--- Latency ---")
        lines.append(
            f"  min={_fmt(s.min_latency_ms)}ms "
            f"mean={_fmt(s.mean_latency_ms)}ms "
            f"max={_fmt(s.max_latency_ms)}ms"
        )
        for percentile, value in sorted(s.latency_percentiles_ms.items()):
            lines.append(f"  p{percentile:g}={_fmt(value)}ms")

        lines.append("")
        violations = context.violations
        if violations:
            lines.append(f"--- FAILED ({len(violations)} violation(s)) ---")
            for violation in violations:
                lines.append(f"  {violation.message}")
        else:
            lines.append("--- PASSED ---")
        lines.append("")

    return "\n".join(lines)


def _fmt(val: Optional[float], decimals: int = 3) -> str:
    """Format a value, handling None."""
    if val is None:
        return "N/A"
    return f"{val:.{decimals}f}"


class ConsoleReportGenerator:
    """Writes format_report() output to a stream (stdout by default)."""

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self._stream = stream

    def generate_report(self, contexts: Mapping[str, EvaluationContext]) -> None:
        text = format_report(contexts)
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(text + "\n")
        stream.flush()
        logger.debug("Console report written for %d test(s)", len(contexts))

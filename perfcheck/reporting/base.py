"""
Report sink protocol and per-class publishing.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Protocol, Sequence, Tuple, runtime_checkable

from perfcheck.context import EvaluationContext
from perfcheck.exceptions import PerfCheckReportError
from perfcheck.registry import ActiveContextRegistry

logger = logging.getLogger(__name__)


@runtime_checkable
class ReportGenerator(Protocol):
    """Protocol for report sinks."""

    def generate_report(self, contexts: Mapping[str, EvaluationContext]) -> None:
        """
        Render finalized contexts of one test class.

        Args:
            contexts: test_id -> finalized EvaluationContext.
        """
        ...


def publish_reports(
    registry: ActiveContextRegistry,
    class_key: str,
    generators: Sequence[ReportGenerator],
) -> Dict[str, EvaluationContext]:
    """
    Hand every context of class_key to each generator, once.

    All generators are attempted; failures are raised together afterwards.
    Already-computed verdicts are not affected.

    Returns:
        The published mapping (empty when nothing was evaluated).

    Raises:
        PerfCheckReportError: If any generator raised.
    """
    contexts = registry.pop(class_key)
    if not contexts:
        return contexts

    failures: List[Tuple[str, Exception]] = []
    for generator in generators:
        name = type(generator).__name__
        try:
            generator.generate_report(contexts)
        except Exception as exc:
            logger.error("Report generator %s failed for %s: %s", name, class_key, exc)
            failures.append((name, exc))

    if failures:
        name, first = failures[0]
        raise PerfCheckReportError(
            f"Report generation failed for {class_key}: {first}",
            generator=name,
            class_key=class_key,
            details={"failures": [f"{n}: {e}" for n, e in failures]},
        ) from first

    logger.debug(
        "Published %d context(s) for %s to %d generator(s)",
        len(contexts),
        class_key,
        len(generators),
    )
    return contexts

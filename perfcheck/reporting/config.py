"""
Reporting configuration and its resolution for a test class.

A test class (or module) opts into custom reporting by declaring an active
ReportingConfig attribute:

    class TestCheckout:
        PERF_CONFIG = active_config(ReportingConfig(
            report_generators=[ConsoleReportGenerator()],
            statistics_calculator_supplier=MyCalculator,
        ))

Configs that are not marked active are ignored. More than one active config
on the same owner is a configuration error.
"""

from __future__ import annotations

import dataclasses
import types
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from perfcheck.exceptions import PerfCheckConfigError
from perfcheck.reporting.base import ReportGenerator
from perfcheck.reporting.html import HtmlReportGenerator
from perfcheck.statistics.calculator import (
    DescriptiveStatisticsCalculator,
    StatisticsCalculator,
)

DEFAULT_REPORTER: ReportGenerator = HtmlReportGenerator()


@dataclass(frozen=True)
class ReportingConfig:
    """
    Class-level reporting overrides.

    Attributes:
        report_generators: Sinks receiving the class's finalized contexts.
        statistics_calculator_supplier: Zero-arg factory for the aggregator.
        active: Only active configs are honoured.
    """

    report_generators: List[ReportGenerator] = field(default_factory=list)
    statistics_calculator_supplier: Optional[Callable[[], StatisticsCalculator]] = None
    active: bool = False


def active_config(config: ReportingConfig) -> ReportingConfig:
    """Mark a reporting config as the one to honour for its owner."""
    return dataclasses.replace(config, active=True)


@dataclass(frozen=True)
class ResolvedReporting:
    """Outcome of resolution: what to aggregate with and where to report."""

    statistics_calculator_supplier: Callable[[], StatisticsCalculator]
    report_generators: List[ReportGenerator]
    source: Optional[str] = None


def _declared_configs(owner: Any) -> List[tuple]:
    """(attribute name, ReportingConfig) pairs visible on owner, own class first."""
    if isinstance(owner, type):
        namespaces = [vars(klass) for klass in owner.__mro__]
    elif isinstance(owner, types.ModuleType):
        namespaces = [vars(owner)]
    else:
        namespaces = [getattr(owner, "__dict__", {})]
        namespaces += [vars(klass) for klass in type(owner).__mro__]

    found = []
    seen = set()
    for namespace in namespaces:
        for name, value in namespace.items():
            if name in seen:
                continue
            if isinstance(value, ReportingConfig):
                seen.add(name)
                found.append((name, value))
    return found


def resolve_reporting_config(owner: Any) -> ResolvedReporting:
    """
    Resolve the reporting setup for a test class, instance or module.

    Returns defaults (DescriptiveStatisticsCalculator, [DEFAULT_REPORTER])
    unless exactly one active ReportingConfig is declared. An active config
    that leaves a field unset falls back to the default for that field.

    Raises:
        PerfCheckConfigError: If more than one active config is declared.
    """
    active = [(name, cfg) for name, cfg in _declared_configs(owner) if cfg.active]

    if len(active) > 1:
        raise PerfCheckConfigError(
            f"Only one active reporting config is allowed per test class, "
            f"found {len(active)}",
            code="conflicting_reporting_configs",
            details={"attributes": [name for name, _ in active]},
        )

    if not active:
        return ResolvedReporting(
            statistics_calculator_supplier=DescriptiveStatisticsCalculator,
            report_generators=[DEFAULT_REPORTER],
        )

    name, cfg = active[0]
    return ResolvedReporting(
        statistics_calculator_supplier=(
            cfg.statistics_calculator_supplier or DescriptiveStatisticsCalculator
        ),
        report_generators=list(cfg.report_generators) or [DEFAULT_REPORTER],
        source=name,
    )

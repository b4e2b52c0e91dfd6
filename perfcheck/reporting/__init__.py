"""
Reporting: publish finalized evaluation contexts per test class.

Usage:
    from perfcheck.reporting import ConsoleReportGenerator, publish_reports

    publish_reports(registry, "tests/test_api.py::TestApi", [ConsoleReportGenerator()])
"""

from perfcheck.reporting.base import ReportGenerator, publish_reports
from perfcheck.reporting.console import ConsoleReportGenerator, format_report
from perfcheck.reporting.html import HtmlReportGenerator
from perfcheck.reporting.config import (
    DEFAULT_REPORTER,
    ReportingConfig,
    ResolvedReporting,
    active_config,
    resolve_reporting_config,
)

__all__ = [
    "ReportGenerator",
    "publish_reports",
    "ConsoleReportGenerator",
    "format_report",
    "HtmlReportGenerator",
    "DEFAULT_REPORTER",
    "ReportingConfig",
    "ResolvedReporting",
    "active_config",
    "resolve_reporting_config",
]

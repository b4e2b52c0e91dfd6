"""
HTML report rendered with Jinja2, one file per test class.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from jinja2 import Environment

from perfcheck.config import get_settings
from perfcheck.context import EvaluationContext

logger = logging.getLogger(__name__)

_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>perfcheck report: {{ class_key }}</title>
<style>
body { font-family: sans-serif; margin: 2em; }
table { border-collapse: collapse; margin-bottom: 1.5em; }
th, td { border: 1px solid #ccc; padding: 4px 10px; text-align: right; }
th { background: #f3f3f3; }
td.name, th.name { text-align: left; }
.passed { color: #1a7f37; }
.failed { color: #cf222e; }
</style>
</head>
<body>
<h1>{{ class_key }}</h1>
<p>Generated {{ generated_at }}</p>
<table>
<tr>
<th class="name">Test</th><th>Result</th><th>Threads</th><th>Duration (ms)</th>
<th>Invocations</th><th>Errors (%)</th><th>Throughput (/s)</th>
<th>Mean (ms)</th><th>Max (ms)</th>
</tr>
{% for test_id, ctx in contexts.items() %}
{% set s = ctx.statistics %}
<tr>
<td class="name"><a href="#{{ loop.index }}">{{ test_id }}</a></td>
<td class="{{ 'passed' if ctx.passed else 'failed' }}">{{ 'PASSED' if ctx.passed else 'FAILED' }}</td>
<td>{{ ctx.config.threads }}</td>
<td>{{ ctx.config.duration_ms }}</td>
<td>{{ s.total_count if s else '-' }}</td>
<td>{{ '%.2f'|format(s.error_percentage) if s else '-' }}</td>
<td>{{ '%.2f'|format(s.throughput_per_second) if s else '-' }}</td>
<td>{{ fmt(s.mean_latency_ms) if s else '-' }}</td>
<td>{{ fmt(s.max_latency_ms) if s else '-' }}</td>
</tr>
{% endfor %}
</table>
{% for test_id, ctx in contexts.items() %}
{% set s = ctx.statistics %}
<h2 id="{{ loop.index }}">{{ test_id }}</h2>
{% if s %}
<table>
<tr><th class="name">Percentile</th><th>Latency (ms)</th></tr>
{% for p, value in s.latency_percentiles_ms.items()|sort %}
<tr><td class="name">p{{ '%g'|format(p) }}</td><td>{{ fmt(value) }}</td></tr>
{% endfor %}
</table>
{% endif %}
{% if ctx.violations %}
<ul class="failed">
{% for v in ctx.violations %}<li>{{ v.message }}</li>{% endfor %}
</ul>
{% endif %}
{% endfor %}
</body>
</html>
"""


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.3f}"


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", value).strip("_") or "report"


class HtmlReportGenerator:
    """
    Renders a class's contexts to an HTML file.

    With no explicit path, writes <PERFCHECK_REPORT_DIR>/<class key>.html.

    Attributes:
        report_paths: class key -> file written for that class.
        last_report_path: File written by the most recent generate_report().
            One instance is shared by every class using the default
            reporter, so this is last-writer-wins; use report_paths to find
            the file of a given class.
    """

    def __init__(self, report_path: Optional[Union[str, Path]] = None) -> None:
        self._report_path = Path(report_path) if report_path is not None else None
        self._env = Environment(autoescape=True)
        self._template = self._env.from_string(_TEMPLATE)
        self.report_paths: Dict[str, Path] = {}
        self.last_report_path: Optional[Path] = None

    def render(self, contexts: Mapping[str, EvaluationContext]) -> str:
        class_key = next(iter(contexts.values())).class_key if contexts else "perfcheck"
        return self._template.render(
            class_key=class_key,
            contexts=contexts,
            generated_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            fmt=_fmt,
        )

    def generate_report(self, contexts: Mapping[str, EvaluationContext]) -> None:
        if not contexts:
            return
        class_key = next(iter(contexts.values())).class_key
        path = self._report_path or get_settings().report_dir / f"{_slug(class_key)}.html"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(contexts), encoding="utf-8")
        self.report_paths[class_key] = path
        self.last_report_path = path
        logger.info("HTML performance report written: %s", path)

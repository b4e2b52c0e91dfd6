"""Pytest configuration for test discovery with pytest-xdist."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for proper imports with pytest-xdist
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from perfcheck.config import reset_settings  # noqa: E402

pytest_plugins = ["pytester"]


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep report files and scheduler timings local to each test."""
    monkeypatch.setenv("PERFCHECK_REPORT_DIR", str(tmp_path / "reports"))
    monkeypatch.setenv("PERFCHECK_DRAIN_GRACE_MS", "500")
    monkeypatch.setenv("PERFCHECK_LOGFIRE", "0")
    reset_settings()
    yield
    reset_settings()

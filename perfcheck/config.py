"""
Runtime configuration from environment variables.

Usage:
    from perfcheck.config import get_settings

    settings = get_settings()
    print(settings.report_dir, settings.drain_grace_seconds)
"""

from functools import lru_cache
from pathlib import Path
import os


def _env_truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """perfcheck configuration loaded from environment variables."""

    def __init__(self) -> None:
        # Reporting
        self.report_dir: Path = Path(
            os.getenv("PERFCHECK_REPORT_DIR", "build/reports/perfcheck")
        )
        self.reports_disabled: bool = _env_truthy(
            os.getenv("PERFCHECK_DISABLE_REPORTS", "false")
        )

        # Scheduler
        self.drain_grace_ms: int = int(os.getenv("PERFCHECK_DRAIN_GRACE_MS", "1000"))
        self.async_timeout_ms: int = int(
            os.getenv("PERFCHECK_ASYNC_TIMEOUT_MS", "10000")
        )

    @property
    def drain_grace_seconds(self) -> float:
        return self.drain_grace_ms / 1000.0

    @property
    def async_timeout_seconds(self) -> float:
        return self.async_timeout_ms / 1000.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()

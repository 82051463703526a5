"""Configuration utilities shared by the producer, worker and CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_DATA_DIR = Path("data")
DEFAULT_DB_URL = "sqlite:///data/scraper.db"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

BROWSER_BACKENDS = ("playwright", "http")


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(0, parsed)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return max(0.0, parsed)


@dataclass(slots=True)
class TimeoutConfig:
    # None keeps the per-source navigation timeout.
    navigation_timeout: Optional[float] = None
    request_timeout: float = 10.0


@dataclass(slots=True)
class BrowserConfig:
    """Launch options for per-job browser sessions."""

    backend: str = "playwright"
    headless: bool = True
    slow_mo_ms: int = 0
    user_agent: str = DEFAULT_USER_AGENT
    launch_args: tuple[str, ...] = (
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--no-first-run",
        "--no-zygote",
        "--disable-gpu",
    )


@dataclass(slots=True)
class WorkerConfig:
    concurrency: int = 2
    max_attempts: int = 3
    retry_backoff: float = 2.0
    page_delay: float = 2.0
    # Human-like pause before each navigation attempt, as (min, max) seconds.
    navigation_jitter: tuple[float, float] = (1.0, 3.0)


@dataclass(slots=True)
class ScraperConfig:
    db_url: str = DEFAULT_DB_URL
    data_dir: Path = DEFAULT_DATA_DIR
    export_enabled: bool = True
    log_level: str = "INFO"
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ScraperConfig":
        """Build a configuration from ``SCRAPER_*`` environment variables."""

        env = os.environ if env is None else env
        config = cls()
        config.db_url = env.get("SCRAPER_DATABASE_URL") or config.db_url
        config.data_dir = Path(env.get("SCRAPER_DATA_DIR") or config.data_dir)
        config.export_enabled = _env_bool(env, "SCRAPER_EXPORT_ENABLED", config.export_enabled)
        config.log_level = (env.get("SCRAPER_LOG_LEVEL") or config.log_level).upper()

        backend = (env.get("SCRAPER_BROWSER_BACKEND") or config.browser.backend).strip().lower()
        if backend not in BROWSER_BACKENDS:
            raise ValueError(
                f"Unsupported browser backend '{backend}'; expected one of {', '.join(BROWSER_BACKENDS)}"
            )
        config.browser.backend = backend
        config.browser.headless = _env_bool(env, "SCRAPER_HEADLESS", config.browser.headless)
        config.browser.slow_mo_ms = _env_int(env, "SCRAPER_SLOW_MO_MS", config.browser.slow_mo_ms)
        config.browser.user_agent = env.get("SCRAPER_USER_AGENT") or config.browser.user_agent

        if env.get("SCRAPER_NAVIGATION_TIMEOUT"):
            config.timeout.navigation_timeout = _env_float(env, "SCRAPER_NAVIGATION_TIMEOUT", 0.0) or None
        config.timeout.request_timeout = _env_float(
            env, "SCRAPER_REQUEST_TIMEOUT", config.timeout.request_timeout
        )

        config.worker.concurrency = max(1, _env_int(env, "SCRAPER_WORKER_CONCURRENCY", config.worker.concurrency))
        config.worker.max_attempts = max(1, _env_int(env, "SCRAPER_MAX_ATTEMPTS", config.worker.max_attempts))
        config.worker.page_delay = _env_float(env, "SCRAPER_PAGE_DELAY", config.worker.page_delay)
        return config

    def to_task_payload(self) -> dict[str, Any]:
        """Settings a producer hands to the worker along with each job."""

        return {
            "db_url": self.db_url,
            "data_dir": str(self.data_dir),
            "export_enabled": self.export_enabled,
            "browser_backend": self.browser.backend,
            "headless": self.browser.headless,
        }

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        sqlite_path = self.sqlite_path()
        if sqlite_path is not None:
            sqlite_path.parent.mkdir(parents=True, exist_ok=True)

    def sqlite_path(self) -> Optional[Path]:
        prefix = "sqlite:///"
        if not self.db_url.startswith(prefix):
            return None
        raw_path = self.db_url[len(prefix):]
        if not raw_path or raw_path == ":memory:":
            return None
        return Path(raw_path)


__all__ = [
    "BROWSER_BACKENDS",
    "BrowserConfig",
    "DEFAULT_DB_URL",
    "ScraperConfig",
    "TimeoutConfig",
    "WorkerConfig",
]

"""Celery application setup for the scrape job queue."""

from __future__ import annotations

import os
from typing import Optional

from celery import Celery


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(0, parsed)


def _sqla_broker_from_db(db_url: Optional[str]) -> Optional[str]:
    if not db_url:
        return None
    return db_url if db_url.startswith("sqla+") else f"sqla+{db_url}"


def create_celery_app() -> Celery:
    """Instantiate the Celery app with environment driven configuration."""

    db_url = os.getenv("SCRAPER_DATABASE_URL")
    broker_url = os.getenv("SCRAPER_CELERY_BROKER_URL")
    backend_url = os.getenv("SCRAPER_CELERY_RESULT_BACKEND")

    if broker_url is None:
        broker_url = _sqla_broker_from_db(db_url)
    if broker_url is None:
        broker_url = "memory://"
    if backend_url is None:
        backend_url = "cache+memory://"

    app = Celery("scraper", broker=broker_url, backend=backend_url, include=["scraper.tasks"])
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_always_eager=_env_bool("SCRAPER_CELERY_TASK_ALWAYS_EAGER", True),
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_track_started=True,
        worker_prefetch_multiplier=1,
        # Each in-flight job owns a browser; threads keep sync Playwright per job.
        worker_concurrency=max(1, _env_int("SCRAPER_WORKER_CONCURRENCY", 2)),
        worker_pool="threads",
        result_extended=True,
        broker_connection_retry_on_startup=True,
    )
    return app


celery_app = create_celery_app()


__all__ = ["celery_app", "create_celery_app"]

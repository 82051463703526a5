"""Celery task that executes scrape jobs on the worker."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from celery import Task

from .celery_app import celery_app
from .config import BROWSER_BACKENDS, ScraperConfig
from .errors import UnknownJobType
from .jobs import JobRequest, JobStatus
from .persistence import ContentStore, create_store
from .worker import build_orchestrator

LOGGER = logging.getLogger(__name__)


class CeleryProgressSink:
    """Publishes progress as the task's ``PROGRESS`` state."""

    def __init__(self, task: Task, job_id: str) -> None:
        self._task = task
        self._job_id = job_id

    def report(self, percent: int) -> None:
        if not self._task.request.id:
            # Called directly rather than through the broker.
            return
        self._task.update_state(state="PROGRESS", meta={"job_id": self._job_id, "progress": percent})

    def on_terminal(self, status: JobStatus, summary: dict[str, Any]) -> None:
        LOGGER.info("Job %s reached %s", self._job_id, status.value)


def _build_config(config_payload: Mapping[str, Any]) -> ScraperConfig:
    config = ScraperConfig.from_env()
    if config_payload.get("db_url"):
        config.db_url = str(config_payload["db_url"])
    if config_payload.get("data_dir"):
        config.data_dir = Path(config_payload["data_dir"])
    if "export_enabled" in config_payload:
        config.export_enabled = bool(config_payload["export_enabled"])

    backend = config_payload.get("browser_backend")
    if backend in BROWSER_BACKENDS:
        config.browser.backend = backend
    elif backend:
        LOGGER.warning("Ignoring unknown browser backend %r in Celery payload", backend)
    if "headless" in config_payload:
        config.browser.headless = bool(config_payload["headless"])
    return config


@lru_cache(maxsize=8)
def _store(db_url: str) -> ContentStore:
    return create_store(db_url)


@celery_app.task(
    name="scraper.run_scrape_job",
    bind=True,
    autoretry_for=(Exception,),
    dont_autoretry_for=(UnknownJobType,),
    retry_backoff=2,
    retry_jitter=False,
    max_retries=2,
)
def run_scrape_job(self: Task, job: Mapping[str, Any]) -> dict[str, Any]:
    request = JobRequest.from_payload(job)
    config = _build_config(request.config)
    config.ensure_directories()
    orchestrator = build_orchestrator(config, _store(config.db_url))
    final_attempt = self.request.retries >= (self.max_retries or 0)
    outcome = orchestrator.run(request, CeleryProgressSink(self, request.job_id), final_attempt=final_attempt)
    return outcome.to_dict()


__all__ = ["CeleryProgressSink", "run_scrape_job"]

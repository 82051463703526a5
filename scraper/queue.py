"""Job producers: validate, record and hand jobs to a broker."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import Any, Mapping, Optional

from .jobs import JobRequest
from .persistence import ContentStore
from .sources import get_source_definition
from .tasks import run_scrape_job

LOGGER = logging.getLogger(__name__)


class JobQueue:
    """Base producer; subclasses decide where accepted jobs are delivered."""

    def __init__(self, store: ContentStore, config_payload: Optional[Mapping[str, Any]] = None) -> None:
        self._store = store
        self._config_payload = dict(config_payload or {})

    def enqueue(
        self,
        job_type: str,
        parameters: Optional[Mapping[str, Any]] = None,
        priority: int = 0,
    ) -> str:
        """Accept a job and return its id.

        Unknown job types raise :class:`~scraper.errors.UnknownJobType` before
        anything is written or delivered.
        """

        get_source_definition(job_type)
        request = JobRequest.create(job_type, parameters, priority)
        request.config = dict(self._config_payload)
        self._store.create_job(request)
        self._submit(request)
        LOGGER.info(
            "Queued %s job %s (request_id=%s, priority=%d)",
            job_type,
            request.job_id,
            request.metadata.get("request_id"),
            priority,
        )
        return request.job_id

    def _submit(self, request: JobRequest) -> None:
        raise NotImplementedError


class CeleryJobQueue(JobQueue):
    """Delivers jobs to the Celery broker configured in :mod:`scraper.celery_app`."""

    def _submit(self, request: JobRequest) -> None:
        run_scrape_job.apply_async(
            args=(request.to_payload(),),
            task_id=request.job_id,
            priority=request.priority,
        )


class LocalJobQueue(JobQueue):
    """In-process priority queue consumed by :class:`~scraper.worker.WorkerPool`.

    Higher priorities are dequeued first; equal priorities keep insertion
    order.
    """

    def __init__(self, store: ContentStore, config_payload: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(store, config_payload)
        self._heap: list[tuple[int, int, JobRequest]] = []
        self._counter = itertools.count()
        self._condition = threading.Condition()

    def _submit(self, request: JobRequest) -> None:
        with self._condition:
            heapq.heappush(self._heap, (-request.priority, next(self._counter), request))
            self._condition.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[JobRequest]:
        """Pop the next job, waiting up to ``timeout`` seconds; ``None`` if empty."""

        with self._condition:
            if not self._heap:
                self._condition.wait(timeout)
            if not self._heap:
                return None
            _, _, request = heapq.heappop(self._heap)
            return request

    def __len__(self) -> int:
        with self._condition:
            return len(self._heap)


__all__ = ["CeleryJobQueue", "JobQueue", "LocalJobQueue"]

"""Job orchestration: route, scrape, persist and record the lifecycle."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from .browser import SessionFactory
from .config import ScraperConfig
from .errors import PersistenceError, RecordValidationError, UnknownJobType
from .export import write_export
from .jobs import JobRequest, JobStatus
from .persistence import ContentStore
from .records import utcnow
from .sources import get_source_definition
from .strategies import CollectResult, ExtractionStrategy, StrategyOptions

LOGGER = logging.getLogger(__name__)

# Errors that fail a job on the first attempt.
NON_RETRYABLE_ERRORS = (UnknownJobType,)


class ProgressSink(Protocol):
    def report(self, percent: int) -> None: ...

    def on_terminal(self, status: JobStatus, summary: dict[str, Any]) -> None: ...


class LoggingProgressSink:
    """Progress sink that writes milestones to the log."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.last_percent = 0

    def report(self, percent: int) -> None:
        self.last_percent = max(self.last_percent, percent)
        LOGGER.info("Job %s progress %d%%", self.job_id, self.last_percent)

    def on_terminal(self, status: JobStatus, summary: dict[str, Any]) -> None:
        LOGGER.info("Job %s finished with status %s", self.job_id, status.value)


@dataclass(slots=True)
class JobOutcome:
    job_id: str
    status: str
    result_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "result_data": self.result_data,
            "error_message": self.error_message,
            "skipped": self.skipped,
        }


class JobOrchestrator:
    """Runs one job end to end against its own browser session."""

    def __init__(
        self,
        store: ContentStore,
        session_factory: SessionFactory,
        *,
        strategy_options: StrategyOptions | None = None,
        export_dir: Path | None = None,
    ) -> None:
        self._store = store
        self._session_factory = session_factory
        self._strategy_options = strategy_options or StrategyOptions()
        self._export_dir = export_dir

    def run(
        self,
        request: JobRequest,
        sink: ProgressSink | None = None,
        *,
        final_attempt: bool = True,
    ) -> JobOutcome:
        """Execute ``request`` and return its outcome.

        Exceptions propagate after the job row has been updated. On a non-final
        attempt the job stays ``active`` with the error recorded so that the
        queue runtime may retry it; only the final attempt (or an error that is
        never retried) writes ``failed``.
        """

        sink = sink or LoggingProgressSink(request.job_id)
        snapshot = self._store.get_job(request.job_id)
        if snapshot is None:
            self._store.create_job(request)
            snapshot = self._store.get_job(request.job_id)
        if snapshot.is_terminal:
            LOGGER.info("Job %s already %s; skipping redelivery", request.job_id, snapshot.status)
            return JobOutcome(
                job_id=request.job_id,
                status=snapshot.status,
                result_data=snapshot.result_data,
                error_message=snapshot.error_message,
                skipped=True,
            )
        if snapshot.status == JobStatus.PENDING.value:
            self._store.update_job(request.job_id, status=JobStatus.ACTIVE, started_at=utcnow())

        LOGGER.info(
            "Starting job %s (%s) url=%s pages=%s request_id=%s",
            request.job_id,
            request.job_type,
            request.url,
            request.pages,
            request.metadata.get("request_id"),
        )
        started = time.monotonic()
        try:
            definition = get_source_definition(request.job_type)
            strategy = definition.build_strategy(self._strategy_options)
            result_data = self._execute(request, strategy, sink, started)
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            if final_attempt or isinstance(exc, NON_RETRYABLE_ERRORS):
                LOGGER.error("Job %s failed after %dms: %s", request.job_id, duration_ms, exc)
                self._store.update_job(request.job_id, status=JobStatus.FAILED, error_message=str(exc))
                sink.on_terminal(JobStatus.FAILED, {"error": str(exc), "duration_ms": duration_ms})
            else:
                LOGGER.warning("Job %s attempt failed after %dms, will retry: %s", request.job_id, duration_ms, exc)
                self._store.update_job(request.job_id, error_message=str(exc))
            raise

        self._store.update_job(
            request.job_id,
            status=JobStatus.COMPLETED,
            result_data=result_data,
            error_message=None,
        )
        sink.report(100)
        sink.on_terminal(JobStatus.COMPLETED, result_data)
        LOGGER.info(
            "Job %s completed in %dms: %d/%d records stored",
            request.job_id,
            result_data["duration_ms"],
            result_data["count"],
            result_data["extracted"],
        )
        return JobOutcome(job_id=request.job_id, status=JobStatus.COMPLETED.value, result_data=result_data)

    def _execute(
        self,
        request: JobRequest,
        strategy: ExtractionStrategy,
        sink: ProgressSink,
        started: float,
    ) -> dict[str, Any]:
        with self._session_factory(strategy.profile) as session:
            sink.report(10)
            collected = strategy.collect(session.page, request.url, request.pages, sink.report)

        stored = self._persist(strategy, collected, request.job_id)
        if collected.units and stored == 0:
            raise PersistenceError(f"None of the {len(collected.units)} extracted records could be stored")
        sink.report(95)

        result_data: dict[str, Any] = {
            "success": True,
            "count": stored,
            "extracted": len(collected.units),
            "kinds": dict(Counter(strategy.unit_kind(unit) for unit in collected.units)),
            "top_item": strategy.summarize_unit(collected.units[0]) if collected.units else None,
            "source": strategy.source,
            "target": collected.target,
            "pages": collected.pages,
            "used_fallback": collected.used_fallback,
        }
        export_path = self._export(strategy, collected, request.job_id)
        if export_path is not None:
            result_data["export_path"] = str(export_path)
        result_data["duration_ms"] = int((time.monotonic() - started) * 1000)
        return result_data

    def _persist(self, strategy: ExtractionStrategy, collected: CollectResult, job_id: str) -> int:
        stored = 0
        for index, unit in enumerate(collected.units):
            source_url = collected.sources[index] if index < len(collected.sources) else collected.target
            try:
                record = strategy.to_record(unit, source_url=source_url, job_id=job_id)
                self._store.save_record(record)
            except (PersistenceError, RecordValidationError) as exc:
                LOGGER.warning("Failed to store %s unit %d for job %s: %s", strategy.source, index, job_id, exc)
                continue
            stored += 1
        return stored

    def _export(self, strategy: ExtractionStrategy, collected: CollectResult, job_id: str) -> Path | None:
        if self._export_dir is None or not collected.units:
            return None
        markdown = strategy.render_export(collected.units)
        if markdown is None:
            return None
        path = self._export_dir / f"{strategy.source}-{job_id}.md"
        try:
            return write_export(path, markdown)
        except OSError:
            LOGGER.exception("Failed to write export for job %s", job_id)
            return None



def build_orchestrator(config: ScraperConfig, store: ContentStore) -> JobOrchestrator:
    """Wire an orchestrator from configuration around an existing store."""

    return JobOrchestrator(
        store,
        SessionFactory(config.browser, config.timeout),
        strategy_options=StrategyOptions(
            page_delay=config.worker.page_delay,
            navigation_jitter=config.worker.navigation_jitter,
            navigation_timeout=config.timeout.navigation_timeout,
        ),
        export_dir=config.data_dir / "exports" if config.export_enabled else None,
    )


@dataclass(slots=True)
class PoolStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class WorkerPool:
    """Fixed-size thread pool draining a :class:`~scraper.queue.LocalJobQueue`.

    Each in-flight job owns its own browser session; the queue and the content
    store are the only shared objects. Failed attempts are retried with
    exponential backoff up to ``max_attempts``.
    """

    def __init__(
        self,
        queue,
        orchestrator: JobOrchestrator,
        *,
        concurrency: int = 2,
        max_attempts: int = 3,
        retry_backoff: float = 2.0,
        sink_factory: Callable[[str], ProgressSink] = LoggingProgressSink,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._queue = queue
        self._orchestrator = orchestrator
        self._concurrency = max(1, concurrency)
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff
        self._sink_factory = sink_factory
        self._sleep = sleep
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self.stats = PoolStats()

    def stop(self) -> None:
        self._stop.set()

    def run(self, *, drain: bool = True, poll_interval: float = 0.5) -> PoolStats:
        """Process jobs until stopped, or until the queue is empty when ``drain``."""

        future_to_job: dict[Future[bool], JobRequest] = {}

        def _drain_completed(*, block_until_empty: bool) -> None:
            while future_to_job:
                done, _ = wait(tuple(future_to_job), return_when=FIRST_COMPLETED)
                for finished in done:
                    request = future_to_job.pop(finished)
                    try:
                        succeeded = finished.result()
                    except Exception:  # pragma: no cover - _process_job logs its own errors
                        LOGGER.exception("Worker raised unexpectedly for job %s", request.job_id)
                        succeeded = False
                    with self._lock:
                        if succeeded:
                            self.stats.succeeded += 1
                        else:
                            self.stats.failed += 1
                if not block_until_empty:
                    break

        with ThreadPoolExecutor(max_workers=self._concurrency, thread_name_prefix="scrape-worker") as executor:
            while not self._stop.is_set():
                request = self._queue.get(timeout=poll_interval)
                if request is None:
                    if drain and not future_to_job:
                        break
                    if future_to_job:
                        _drain_completed(block_until_empty=False)
                    continue
                self.stats.processed += 1
                future_to_job[executor.submit(self._process_job, request)] = request
                if len(future_to_job) >= self._concurrency:
                    _drain_completed(block_until_empty=False)

            _drain_completed(block_until_empty=True)

        LOGGER.info(
            "Worker pool processed %d jobs: %d succeeded, %d failed",
            self.stats.processed,
            self.stats.succeeded,
            self.stats.failed,
        )
        return self.stats

    def _process_job(self, request: JobRequest) -> bool:
        for attempt in range(1, self._max_attempts + 1):
            final_attempt = attempt == self._max_attempts
            try:
                self._orchestrator.run(request, self._sink_factory(request.job_id), final_attempt=final_attempt)
                return True
            except NON_RETRYABLE_ERRORS as exc:
                self._record_failure(request, exc)
                return False
            except Exception as exc:
                if final_attempt:
                    self._record_failure(request, exc)
                    return False
                delay = self._retry_backoff * (2 ** (attempt - 1))
                LOGGER.warning(
                    "Job %s attempt %d/%d failed (%s); retrying in %.1fs",
                    request.job_id,
                    attempt,
                    self._max_attempts,
                    exc,
                    delay,
                )
                self._sleep(delay)
        return False

    def _record_failure(self, request: JobRequest, exc: BaseException) -> None:
        LOGGER.error("Job %s failed: %s", request.job_id, exc)
        with self._lock:
            self.stats.failures[request.job_id] = str(exc)


__all__ = [
    "JobOrchestrator",
    "JobOutcome",
    "LoggingProgressSink",
    "NON_RETRYABLE_ERRORS",
    "PoolStats",
    "ProgressSink",
    "WorkerPool",
    "build_orchestrator",
]

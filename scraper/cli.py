"""Command line entry point for queueing, running and inspecting scrape jobs."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from .celery_app import celery_app
from .config import BROWSER_BACKENDS, ScraperConfig
from .errors import UnknownJobType
from .jobs import JobStatus
from .persistence import ContentStore, create_store
from .queue import CeleryJobQueue, LocalJobQueue
from .sources import list_job_types
from .worker import WorkerPool, build_orchestrator

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _add_job_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("job_type", help=f"Job type ({', '.join(list_job_types())})")
    parser.add_argument("--url", type=str, default=None, help="Target URL (defaults to the source's own)")
    parser.add_argument(
        "--pages",
        type=int,
        default=None,
        help="Listing pages for quotes, post limit for reddit, item limit for tiktok",
    )
    parser.add_argument("--priority", type=int, default=0, help="Higher values are dequeued first")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Queue and run browser-driven scrape jobs")
    parser.add_argument("--db-url", type=str, default=None, help="SQLAlchemy database URL")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    enqueue = subparsers.add_parser("enqueue", help="Send a job to the Celery broker")
    _add_job_arguments(enqueue)

    run = subparsers.add_parser("run", help="Run a job in-process and wait for it")
    _add_job_arguments(run)
    run.add_argument("--backend", choices=BROWSER_BACKENDS, default=None, help="Browser backend override")
    run.add_argument("--headed", action="store_true", help="Show the browser window")

    status = subparsers.add_parser("status", help="Show one job")
    status.add_argument("job_id")

    jobs = subparsers.add_parser("jobs", help="List recent jobs")
    jobs.add_argument("--status", choices=[status.value for status in JobStatus], default=None)
    jobs.add_argument("--limit", type=int, default=20)

    records = subparsers.add_parser("records", help="List stored records")
    selector = records.add_mutually_exclusive_group()
    selector.add_argument("--source", type=str, default=None, help="Only records from this source")
    selector.add_argument("--search", type=str, default=None, help="Substring match on title and body")
    selector.add_argument("--job", type=str, default=None, help="Only records written by this job")
    records.add_argument("--limit", type=int, default=20)

    subparsers.add_parser("stats", help="Show content and job counts")

    worker = subparsers.add_parser("worker", help="Start a Celery worker")
    worker.add_argument("--concurrency", type=int, default=None)

    return parser


def build_config(args: argparse.Namespace) -> ScraperConfig:
    config = ScraperConfig.from_env()
    if args.db_url:
        config.db_url = args.db_url
    if args.log_level:
        config.log_level = args.log_level.upper()
    if getattr(args, "backend", None):
        config.browser.backend = args.backend
    if getattr(args, "headed", False):
        config.browser.headless = False
    if getattr(args, "concurrency", None):
        config.worker.concurrency = max(1, args.concurrency)
    return config


def _job_parameters(args: argparse.Namespace) -> dict[str, Any]:
    return {"url": args.url, "pages": args.pages}


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _run_in_process(config: ScraperConfig, store: ContentStore, args: argparse.Namespace) -> int:
    queue = LocalJobQueue(store)
    job_id = queue.enqueue(args.job_type, _job_parameters(args), args.priority)
    pool = WorkerPool(
        queue,
        build_orchestrator(config, store),
        concurrency=config.worker.concurrency,
        max_attempts=config.worker.max_attempts,
        retry_backoff=config.worker.retry_backoff,
    )
    pool.run(drain=True)
    snapshot = store.get_job(job_id)
    _print_json(snapshot.to_dict() if snapshot else {"job_id": job_id})
    return 0 if snapshot is not None and snapshot.status == JobStatus.COMPLETED.value else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging(config.log_level)
    config.ensure_directories()

    if args.command == "worker":
        celery_app.worker_main(
            ["worker", f"--loglevel={config.log_level}", f"--concurrency={config.worker.concurrency}", "--pool=threads"]
        )
        return 0

    store = create_store(config.db_url)

    if args.command in {"enqueue", "run"}:
        try:
            if args.command == "run":
                return _run_in_process(config, store, args)
            job_id = CeleryJobQueue(store, config.to_task_payload()).enqueue(
                args.job_type, _job_parameters(args), args.priority
            )
        except UnknownJobType as exc:
            parser.error(str(exc))
        # In eager mode the job has already run by the time enqueue returns.
        snapshot = store.get_job(job_id)
        _print_json({"job_id": job_id, "status": snapshot.status if snapshot else JobStatus.PENDING.value})
        return 0

    if args.command == "status":
        snapshot = store.get_job(args.job_id)
        if snapshot is None:
            LOGGER.error("Job %s not found", args.job_id)
            return 1
        _print_json(snapshot.to_dict())
        return 0

    if args.command == "jobs":
        _print_json([snapshot.to_dict() for snapshot in store.list_jobs(args.status, limit=args.limit)])
        return 0

    if args.command == "records":
        if args.source:
            records = store.records_by_source(args.source, limit=args.limit)
        elif args.search:
            records = store.search_records(args.search, limit=args.limit)
        elif args.job:
            records = store.records_for_job(args.job, limit=args.limit)
        else:
            records = store.recent_records(limit=args.limit)
        _print_json([record.to_dict() for record in records])
        return 0

    if args.command == "stats":
        stats = store.stats()
        stats["jobs_by_status"] = store.job_stats()
        _print_json(stats)
        return 0

    parser.error(f"Unknown command {args.command}")
    return 2


__all__ = ["build_arg_parser", "build_config", "configure_logging", "main"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())

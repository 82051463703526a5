"""SQLAlchemy content store for scrape jobs and extracted records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import create_engine, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base, ScrapedContent, ScrapeJob

from .errors import InvalidJobTransition, PersistenceError
from .jobs import ALLOWED_TRANSITIONS, JobRequest, JobStatus
from .records import ExtractedRecord, utcnow

LOGGER = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"status", "started_at", "completed_at", "error_message", "result_data"})


@dataclass(slots=True)
class JobSnapshot:
    id: str
    job_id: str
    job_type: str
    status: str
    priority: int
    parameters: dict[str, Any] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result_data: Optional[dict[str, Any]] = None

    @classmethod
    def from_row(cls, row: ScrapeJob) -> "JobSnapshot":
        return cls(
            id=str(row.id),
            job_id=row.job_id,
            job_type=row.job_type,
            status=row.status,
            priority=row.priority,
            parameters=dict(row.parameters or {}),
            started_at=row.started_at,
            completed_at=row.completed_at,
            error_message=row.error_message,
            result_data=dict(row.result_data) if row.result_data is not None else None,
        )

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status).is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "job_type": self.job_type,
            "status": self.status,
            "priority": self.priority,
            "parameters": self.parameters,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "result_data": self.result_data,
        }


@dataclass(slots=True)
class StoredContent:
    id: str
    source: str
    url: str
    title: Optional[str]
    content: str
    raw_data: str
    scraped_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    job_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: ScrapedContent) -> "StoredContent":
        return cls(
            id=str(row.id),
            source=row.source,
            url=row.url,
            title=row.title,
            content=row.content,
            raw_data=row.raw_data,
            scraped_at=row.scraped_at,
            metadata=dict(row.extra or {}),
            job_id=row.job_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "scraped_at": self.scraped_at.isoformat() if self.scraped_at else None,
            "metadata": self.metadata,
            "job_id": self.job_id,
        }


class ContentStore:
    """Job lifecycle rows plus the append-only record table."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    # -- jobs -----------------------------------------------------------

    def create_job(self, request: JobRequest) -> str:
        """Insert a pending job row, returning the existing row id on repeats."""

        try:
            with self._session_factory() as session:
                existing = self._find_job(session, request.job_id)
                if existing is not None:
                    LOGGER.debug("Job %s already recorded", request.job_id)
                    return str(existing.id)

                parameters = request.parameters
                parameters["metadata"] = dict(request.metadata)
                row = ScrapeJob(
                    job_id=request.job_id,
                    job_type=request.job_type,
                    status=JobStatus.PENDING.value,
                    priority=request.priority,
                    parameters=parameters,
                    started_at=utcnow(),
                )
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    # Another producer inserted the same job_id first.
                    session.rollback()
                    existing = self._find_job(session, request.job_id)
                    if existing is None:
                        raise
                    return str(existing.id)
                return str(row.id)
        except PersistenceError:
            raise
        except Exception as exc:  # pragma: no cover - failure path
            raise PersistenceError(str(exc)) from exc

    def update_job(self, job_id: str, **fields: Any) -> JobSnapshot:
        """Apply only the provided fields, enforcing the lifecycle graph."""

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update job fields: {', '.join(sorted(unknown))}")

        try:
            with self._session_factory() as session:
                row = self._find_job(session, job_id)
                if row is None:
                    raise PersistenceError(f"Unknown job {job_id}")

                if "status" in fields and fields["status"] is not None:
                    requested = JobStatus(fields["status"])
                    current = JobStatus(row.status)
                    self._check_transition(job_id, current, requested)
                    fields["status"] = requested.value
                    if requested.is_terminal and fields.get("completed_at") is None:
                        fields["completed_at"] = utcnow()

                for name, value in fields.items():
                    setattr(row, name, value)
                session.commit()
                return JobSnapshot.from_row(row)
        except (InvalidJobTransition, PersistenceError):
            raise
        except Exception as exc:  # pragma: no cover - failure path
            raise PersistenceError(str(exc)) from exc

    @staticmethod
    def _check_transition(job_id: str, current: JobStatus, requested: JobStatus) -> None:
        if requested is current and not current.is_terminal:
            return
        if requested not in ALLOWED_TRANSITIONS[current]:
            raise InvalidJobTransition(job_id, current.value, requested.value)

    def get_job(self, job_id: str) -> Optional[JobSnapshot]:
        with self._session_factory() as session:
            row = self._find_job(session, job_id)
            return JobSnapshot.from_row(row) if row is not None else None

    def list_jobs(self, status: Optional[str] = None, limit: int = 50) -> list[JobSnapshot]:
        with self._session_factory() as session:
            query = session.query(ScrapeJob)
            if status is not None:
                query = query.filter(ScrapeJob.status == JobStatus(status).value)
            rows = query.order_by(ScrapeJob.created_at.desc(), ScrapeJob.id.desc()).limit(limit).all()
            return [JobSnapshot.from_row(row) for row in rows]

    def job_stats(self) -> dict[str, int]:
        """Return job counts keyed by status, including empty statuses."""

        counts = {status.value: 0 for status in JobStatus}
        with self._session_factory() as session:
            for status, count in session.query(ScrapeJob.status, func.count(ScrapeJob.id)).group_by(ScrapeJob.status):
                counts[status] = count
        return counts

    @staticmethod
    def _find_job(session: Session, job_id: str) -> Optional[ScrapeJob]:
        return session.query(ScrapeJob).filter(ScrapeJob.job_id == job_id).one_or_none()

    # -- records --------------------------------------------------------

    def save_record(self, record: ExtractedRecord) -> str:
        try:
            with self._session_factory() as session:
                row = ScrapedContent(
                    source=record.source,
                    url=record.source_url,
                    title=record.title,
                    content=record.body_content,
                    raw_data=record.raw_payload,
                    scraped_at=record.scraped_at,
                    extra=record.metadata or None,
                    job_id=record.job_id,
                )
                session.add(row)
                session.commit()
                return str(row.id)
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

    def records_by_source(self, source: str, limit: int = 50) -> list[StoredContent]:
        return self._query_records(lambda query: query.filter(ScrapedContent.source == source), limit)

    def recent_records(self, limit: int = 20) -> list[StoredContent]:
        return self._query_records(lambda query: query, limit)

    def search_records(self, text: str, limit: int = 50) -> list[StoredContent]:
        escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        return self._query_records(
            lambda query: query.filter(
                or_(
                    ScrapedContent.content.ilike(pattern, escape="\\"),
                    ScrapedContent.title.ilike(pattern, escape="\\"),
                )
            ),
            limit,
        )

    def records_for_job(self, job_id: str, limit: Optional[int] = None) -> list[StoredContent]:
        return self._query_records(lambda query: query.filter(ScrapedContent.job_id == job_id), limit)

    def _query_records(self, refine, limit: Optional[int]) -> list[StoredContent]:
        with self._session_factory() as session:
            query = refine(session.query(ScrapedContent))
            query = query.order_by(ScrapedContent.scraped_at.desc(), ScrapedContent.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [StoredContent.from_row(row) for row in query.all()]

    def stats(self) -> dict[str, Any]:
        with self._session_factory() as session:
            total_content = session.query(func.count(ScrapedContent.id)).scalar() or 0
            total_jobs = session.query(func.count(ScrapeJob.id)).scalar() or 0
            by_source = {
                source: count
                for source, count in session.query(ScrapedContent.source, func.count(ScrapedContent.id)).group_by(
                    ScrapedContent.source
                )
            }
        return {
            "total_content": total_content,
            "total_jobs": total_jobs,
            "content_by_source": by_source,
        }


def create_session_factory(db_url: str):
    """Create the engine, ensure tables exist and return a session factory."""

    engine_kwargs: dict[str, Any] = {}
    if db_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database.
            engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, **engine_kwargs)
    Base.metadata.create_all(engine)  # ensure required tables exist before queries
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_store(db_url: str) -> ContentStore:
    return ContentStore(create_session_factory(db_url))


__all__ = [
    "ContentStore",
    "JobSnapshot",
    "StoredContent",
    "create_session_factory",
    "create_store",
]

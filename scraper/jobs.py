"""Job request payloads and lifecycle states."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from models import generate_uuid7


class JobStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Allowed lifecycle edges; anything else is rejected by the content store.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.ACTIVE}),
    JobStatus.ACTIVE: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def generate_job_id() -> str:
    return str(generate_uuid7())


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class JobRequest:
    job_type: str
    job_id: str = field(default_factory=generate_job_id)
    url: str | None = None
    pages: int | None = None
    priority: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    # Producer-side settings the worker applies over its own environment.
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def parameters(self) -> dict[str, Any]:
        return {"url": self.url, "pages": self.pages, "priority": self.priority}

    def to_payload(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "type": self.job_type,
            "url": self.url,
            "pages": self.pages,
            "priority": self.priority,
            "metadata": dict(self.metadata),
            "config": dict(self.config),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "JobRequest":
        job_type = payload.get("type") or payload.get("job_type")
        if not job_type:
            raise ValueError("Job payload is missing its type")
        metadata = payload.get("metadata")
        config = payload.get("config")
        return cls(
            job_type=str(job_type),
            job_id=str(payload.get("job_id") or generate_job_id()),
            url=payload.get("url") or None,
            pages=_optional_int(payload.get("pages")),
            priority=_optional_int(payload.get("priority")) or 0,
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
            config=dict(config) if isinstance(config, Mapping) else {},
        )

    @classmethod
    def create(
        cls,
        job_type: str,
        parameters: Mapping[str, Any] | None = None,
        priority: int = 0,
    ) -> "JobRequest":
        parameters = parameters or {}
        request = cls(
            job_type=job_type,
            url=parameters.get("url") or None,
            pages=_optional_int(parameters.get("pages")),
            priority=priority,
        )
        request.metadata = {
            "request_id": f"job-{int(time.time() * 1000)}-{request.job_id[-9:]}",
            "timestamp": int(time.time() * 1000),
            "user_agent": "ScraperBot/1.0",
        }
        return request


__all__ = [
    "ALLOWED_TRANSITIONS",
    "JobRequest",
    "JobStatus",
    "generate_job_id",
]

"""Source units and the normalised record shape shared by all sources."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from .errors import RecordValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PostType(str, Enum):
    TEXT = "text"
    LINK = "link"
    IMAGE = "image"
    VIDEO = "video"


class DiscoveryType(str, Enum):
    VIDEO = "video"
    PROFILE = "profile"
    CATEGORY = "category"


@dataclass(slots=True)
class Quote:
    text: str
    author: str
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DiscussionPost:
    id: str
    title: str
    author: str
    subreddit: str
    upvotes: int
    comments: int
    created_at: str
    url: str
    post_type: PostType = PostType.TEXT
    content: str | None = None
    link_url: str | None = None


@dataclass(slots=True)
class DiscoveryItem:
    type: DiscoveryType
    name: str
    url: str
    text: str | None = None
    scraped_at: str = field(default_factory=lambda: utcnow().isoformat())


Unit = Union[Quote, DiscussionPost, DiscoveryItem]

# One payload shape per source tag.
UNIT_TYPES: dict[str, type] = {
    "quotes": Quote,
    "reddit": DiscussionPost,
    "tiktok": DiscoveryItem,
}


@dataclass(slots=True)
class ExtractedRecord:
    source: str
    source_url: str
    title: str | None
    body_content: str
    raw_payload: str
    scraped_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    job_id: str | None = None


def unit_payload(unit: Unit) -> dict[str, Any]:
    """Return a JSON-friendly dict for a unit, flattening enums."""

    payload = asdict(unit)
    for key, value in payload.items():
        if isinstance(value, Enum):
            payload[key] = value.value
    return payload


def validate_unit(source: str, unit: object) -> Unit:
    """Check ``unit`` against the payload shape registered for ``source``."""

    expected = UNIT_TYPES.get(source)
    if expected is None:
        raise RecordValidationError(f"No unit shape registered for source '{source}'")
    if not isinstance(unit, expected):
        raise RecordValidationError(
            f"Source '{source}' expects {expected.__name__}, got {type(unit).__name__}"
        )

    if isinstance(unit, Quote):
        if not unit.text.strip():
            raise RecordValidationError("Quote text must not be empty")
        if not all(isinstance(tag, str) for tag in unit.tags):
            raise RecordValidationError("Quote tags must be strings")
    elif isinstance(unit, DiscussionPost):
        if not unit.title.strip():
            raise RecordValidationError(f"Post {unit.id!r} has no title")
        if not isinstance(unit.post_type, PostType):
            raise RecordValidationError(f"Post {unit.id!r} has invalid type {unit.post_type!r}")
        if unit.upvotes is None or unit.comments is None:
            raise RecordValidationError(f"Post {unit.id!r} is missing counters")
    elif isinstance(unit, DiscoveryItem):
        if not isinstance(unit.type, DiscoveryType):
            raise RecordValidationError(f"Discovery item {unit.name!r} has invalid type {unit.type!r}")
        if not unit.name.strip() or not unit.url.strip():
            raise RecordValidationError("Discovery items need a name and a URL")
    return unit


def normalize(
    source: str,
    unit: object,
    *,
    source_url: str,
    title: str | None,
    body_content: str,
    metadata: dict[str, Any] | None = None,
    job_id: str | None = None,
    scraped_at: datetime | None = None,
) -> ExtractedRecord:
    """Validate ``unit`` and wrap it in the common persisted shape."""

    validated = validate_unit(source, unit)
    return ExtractedRecord(
        source=source,
        source_url=source_url,
        title=title,
        body_content=body_content,
        raw_payload=json.dumps(unit_payload(validated), ensure_ascii=False),
        scraped_at=scraped_at or utcnow(),
        metadata=dict(metadata or {}),
        job_id=job_id,
    )


__all__ = [
    "DiscoveryItem",
    "DiscoveryType",
    "DiscussionPost",
    "ExtractedRecord",
    "PostType",
    "Quote",
    "UNIT_TYPES",
    "Unit",
    "normalize",
    "unit_payload",
    "utcnow",
    "validate_unit",
]

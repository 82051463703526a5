"""Subreddit listing extraction.

Old Reddit is tried first because its server-rendered ``.thing`` markup is far
more stable than the new client-rendered layout, which only serves as a
second candidate. When the structural parse finds no post containers the
strategy falls back to harvesting bare titles.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from bs4 import Tag

from ..browser import BrowserProfile
from ..config import DEFAULT_USER_AGENT
from ..errors import BatchExtractionError, UnitParseError
from ..fields import FieldSpec, absolute_url, extract_fields, parse_count
from ..records import DiscussionPost, ExtractedRecord, PostType, normalize, utcnow
from . import ExtractionStrategy, ResolvedContext, SuccessPredicate

LOGGER = logging.getLogger(__name__)

REDDIT_BASE_URL = "https://old.reddit.com"
DEFAULT_SUBREDDIT = "programming"
DEFAULT_POST_LIMIT = 10
DEFAULT_TITLE = "No title"

_SUBREDDIT_PATTERN = re.compile(r"/r/([^/?#]+)")
_TITLE_SELECTORS = (".title a.title", ".title a[data-event-action='title']")

POST_FIELDS = (
    FieldSpec("title", _TITLE_SELECTORS, default=DEFAULT_TITLE),
    FieldSpec("href", _TITLE_SELECTORS, attr="href", default=""),
    FieldSpec("author", (".author", "[data-author]"), default="unknown"),
    FieldSpec("upvotes", (".score.unvoted", ".score"), convert=parse_count, default=0),
    FieldSpec("comments", (".comments",), convert=parse_count, default=0),
    FieldSpec("created_at", ("time", ".live-timestamp"), attr="datetime"),
    FieldSpec("content", (".usertext .md",)),
)

FALLBACK_TITLE_SELECTORS = (
    ".thing .title a",
    "[data-testid='post-container'] a[data-click-id='body']",
    "[data-testid='post-container'] h3",
    "shreddit-post a[slot='title']",
)

_IMAGE_HOSTS = ("i.redd.it", "imgur.com")
_VIDEO_HOSTS = ("v.redd.it", "youtube.com", "youtu.be")


def subreddit_from_url(url: str | None) -> str:
    match = _SUBREDDIT_PATTERN.search(url or "")
    return match.group(1) if match else DEFAULT_SUBREDDIT


def classify_post(link: str, has_thumbnail: bool = False) -> PostType:
    """Derive the post type from its outbound link."""

    post_type = PostType.TEXT
    if link.startswith("http"):
        post_type = PostType.LINK
    if any(host in link for host in _IMAGE_HOSTS) or has_thumbnail:
        post_type = PostType.IMAGE
    if any(host in link for host in _VIDEO_HOSTS):
        post_type = PostType.VIDEO
    return post_type


def _post_id(element: Tag, index: int) -> str:
    raw_id = element.get("id") or ""
    if raw_id.startswith("thing_"):
        raw_id = raw_id[len("thing_"):]
    return raw_id or element.get("data-fullname") or f"post_{index}"


class RedditStrategy(ExtractionStrategy):
    key = "scrape-reddit"
    source = "reddit"
    default_url = f"{REDDIT_BASE_URL}/r/{DEFAULT_SUBREDDIT}"
    default_limit = DEFAULT_POST_LIMIT
    profile = BrowserProfile(
        viewport=(1366, 768),
        user_agent=DEFAULT_USER_AGENT,
        mask_automation=True,
    )
    predicate = SuccessPredicate(
        markers=(
            ".Post",
            "[data-testid='post-container']",
            ".thing",
            ".entry",
            "#siteTable",
            ".Content",
        ),
        title_keyword="reddit",
    )
    settle_ms = 3000
    timeout_ms = 15000
    uses_jitter = True
    require_results = True
    empty_message = "No posts found - subreddit might be empty or private"

    def candidates(self, target: str) -> list[str]:
        subreddit = subreddit_from_url(target)
        return [
            f"https://old.reddit.com/r/{subreddit}/",
            f"https://www.reddit.com/r/{subreddit}/",
        ]

    def extract_primary(self, context: ResolvedContext, max_items: int | None) -> list[DiscussionPost]:
        containers = context.document().select(".thing")
        if not containers:
            raise BatchExtractionError(f"No post containers found on {context.url}")

        subreddit = subreddit_from_url(context.url)
        LOGGER.info("Extracting up to %s posts from r/%s", max_items, subreddit)
        posts = self.parse_units(
            containers,
            lambda element, index: self._parse_post(element, index, subreddit),
            max_items,
        )
        LOGGER.info("Extracted %d posts from r/%s", len(posts), subreddit)
        return posts

    def _parse_post(self, element: Tag, index: int, subreddit: str) -> DiscussionPost:
        values = extract_fields(element, POST_FIELDS)
        href = values["href"]
        post_type = classify_post(href, element.select_one(".thumbnail img") is not None)
        content = values["content"] if post_type is PostType.TEXT else None
        return DiscussionPost(
            id=_post_id(element, index),
            title=values["title"],
            author=values["author"],
            subreddit=subreddit,
            upvotes=values["upvotes"],
            comments=values["comments"],
            created_at=values["created_at"] or utcnow().isoformat(),
            url=absolute_url(href, REDDIT_BASE_URL) or f"{REDDIT_BASE_URL}/r/{subreddit}/",
            post_type=post_type,
            content=content,
            link_url=href if post_type is PostType.LINK else None,
        )

    def extract_fallback(self, context: ResolvedContext, max_items: int | None) -> list[DiscussionPost]:
        """Titles only, with synthesised ids and zeroed counters."""

        soup = context.document()
        subreddit = subreddit_from_url(context.url)
        for selector in FALLBACK_TITLE_SELECTORS:
            elements = soup.select(selector)
            if elements:
                break
        else:
            return []

        created_at = utcnow().isoformat()

        def parse_title(element: Tag, index: int) -> DiscussionPost:
            title = element.get_text(" ", strip=True)
            if not title:
                raise UnitParseError(f"Fallback title {index} is empty")
            link = element if element.name == "a" else element.find_parent("a")
            href = link.get("href", "") if link is not None else ""
            return DiscussionPost(
                id=f"fallback_{index}",
                title=title,
                author="unknown",
                subreddit=subreddit,
                upvotes=0,
                comments=0,
                created_at=created_at,
                url=absolute_url(href, REDDIT_BASE_URL) or context.url,
            )

        return self.parse_units(elements, parse_title, max_items)

    def to_record(self, unit: DiscussionPost, *, source_url: str, job_id: str | None = None) -> ExtractedRecord:
        body = (
            f"**Author:** u/{unit.author}\n"
            f"**Upvotes:** {unit.upvotes}\n"
            f"**Comments:** {unit.comments}\n"
            f"**Type:** {unit.post_type.value}\n\n"
            f"{unit.content or 'No content'}"
        )
        return normalize(
            self.source,
            unit,
            source_url=unit.url or source_url,
            title=unit.title,
            body_content=body,
            metadata={
                "subreddit": unit.subreddit,
                "post_type": unit.post_type.value,
                "upvotes": unit.upvotes,
                "comments": unit.comments,
                "author": unit.author,
                "created": unit.created_at,
                "link_url": unit.link_url,
            },
            job_id=job_id,
        )

    def unit_kind(self, unit: DiscussionPost) -> str:
        return unit.post_type.value

    def summarize_unit(self, unit: DiscussionPost) -> dict[str, Any]:
        return {
            "title": unit.title,
            "author": unit.author,
            "upvotes": unit.upvotes,
            "comments": unit.comments,
        }


__all__ = [
    "RedditStrategy",
    "classify_post",
    "subreddit_from_url",
]

"""TikTok discovery pages: video links, profiles and category names."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable
from urllib.parse import quote

from bs4 import Tag

from ..browser import BrowserProfile
from ..errors import BatchExtractionError
from ..fields import SELF, FieldSpec, absolute_url, extract_fields
from ..records import DiscoveryItem, DiscoveryType, ExtractedRecord, normalize, utcnow
from . import ExtractionStrategy, ResolvedContext, SuccessPredicate

LOGGER = logging.getLogger(__name__)

TIKTOK_BASE_URL = "https://www.tiktok.com"
DISCOVERY_URLS = (
    f"{TIKTOK_BASE_URL}/explore",
    f"{TIKTOK_BASE_URL}/tag/fyp",
    f"{TIKTOK_BASE_URL}/tag/viral",
    f"{TIKTOK_BASE_URL}/discover",
    f"{TIKTOK_BASE_URL}/",
)

KNOWN_CATEGORIES = (
    "Singing & Dancing",
    "Comedy",
    "Sports",
    "Anime & Comics",
    "Relationship",
    "Shows",
    "Lipsync",
    "Daily Life",
    "Beauty Care",
    "Games",
    "Society",
    "Outfit",
    "Cars",
    "Food",
    "Animals",
    "Family",
    "Drama",
    "Fitness & Health",
    "Education",
    "Technology",
)

_HASHTAG_PATTERN = re.compile(r"#([A-Za-z0-9_]+)")

VIDEO_FIELDS = (
    FieldSpec("name", (SELF,), attr="href", pattern=re.compile(r"/video/(\d+)"), required=True),
    FieldSpec("href", (SELF,), attr="href", required=True),
    FieldSpec("text", (SELF,), default=""),
)

PROFILE_FIELDS = (
    FieldSpec("name", (SELF,), attr="href", pattern=re.compile(r"/@([^/?#]+)"), required=True),
    FieldSpec("href", (SELF,), attr="href", required=True),
    FieldSpec("text", (SELF,), default=""),
)


def category_url(name: str) -> str:
    return f"{TIKTOK_BASE_URL}/discover?category={quote(name)}"


def dedupe_items(items: Iterable[DiscoveryItem]) -> list[DiscoveryItem]:
    """Drop repeated ``(type, name)`` pairs, keeping the first occurrence."""

    seen: set[tuple[DiscoveryType, str]] = set()
    unique: list[DiscoveryItem] = []
    for item in items:
        key = (item.type, item.name)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


class DiscoveryStrategy(ExtractionStrategy):
    key = "scrape-tiktok"
    source = "tiktok"
    default_url = DISCOVERY_URLS[0]
    profile = BrowserProfile(viewport=(375, 812))
    predicate = SuccessPredicate(
        markers=("a[href*='/tag/']",),
        title_keyword="tiktok",
        min_links=20,
        min_text_length=100,
        text_markers=("#",),
    )
    settle_ms = 5000
    timeout_ms = 30000

    def candidates(self, target: str) -> list[str]:
        return [target] + [url for url in DISCOVERY_URLS if url != target]

    def extract_primary(self, context: ResolvedContext, max_items: int | None) -> list[DiscoveryItem]:
        soup = context.document()
        scraped_at = utcnow().isoformat()

        def link_item(item_type: DiscoveryType, specs: tuple[FieldSpec, ...]):
            def parse(element: Tag, index: int) -> DiscoveryItem:
                values = extract_fields(element, specs)
                return DiscoveryItem(
                    type=item_type,
                    name=values["name"],
                    url=absolute_url(values["href"], TIKTOK_BASE_URL),
                    text=values["text"],
                    scraped_at=scraped_at,
                )

            return parse

        items: list[DiscoveryItem] = []
        items.extend(self.parse_units(soup.select("a[href*='/video/']"), link_item(DiscoveryType.VIDEO, VIDEO_FIELDS), None))
        items.extend(self.parse_units(soup.select("a[href*='/@']"), link_item(DiscoveryType.PROFILE, PROFILE_FIELDS), None))

        body_text = (soup.body or soup).get_text(" ", strip=True)
        for category in KNOWN_CATEGORIES:
            if category in body_text:
                items.append(
                    DiscoveryItem(
                        type=DiscoveryType.CATEGORY,
                        name=category,
                        url=category_url(category),
                        text=f"TikTok category: {category}",
                        scraped_at=scraped_at,
                    )
                )

        if not items:
            raise BatchExtractionError(f"No discovery links found on {context.url}")
        return self._finalize(items, max_items)

    def extract_fallback(self, context: ResolvedContext, max_items: int | None) -> list[DiscoveryItem]:
        """Harvest ``#hashtags`` from the page text as category items."""

        soup = context.document()
        body_text = (soup.body or soup).get_text(" ", strip=True)
        scraped_at = utcnow().isoformat()
        items = [
            DiscoveryItem(
                type=DiscoveryType.CATEGORY,
                name=f"#{tag}",
                url=f"{TIKTOK_BASE_URL}/tag/{tag}",
                text=f"Hashtag #{tag}",
                scraped_at=scraped_at,
            )
            for tag in _HASHTAG_PATTERN.findall(body_text)
        ]
        return self._finalize(items, max_items)

    def _finalize(self, items: list[DiscoveryItem], max_items: int | None) -> list[DiscoveryItem]:
        unique = dedupe_items(items)
        if max_items is not None:
            unique = unique[:max_items]
        LOGGER.info(
            "Extracted %d discovery items (videos=%d, profiles=%d, categories=%d)",
            len(unique),
            sum(1 for item in unique if item.type is DiscoveryType.VIDEO),
            sum(1 for item in unique if item.type is DiscoveryType.PROFILE),
            sum(1 for item in unique if item.type is DiscoveryType.CATEGORY),
        )
        return unique

    def to_record(self, unit: DiscoveryItem, *, source_url: str, job_id: str | None = None) -> ExtractedRecord:
        label = unit.type.value.capitalize()
        body = f"**Type:** {unit.type.value}\n**Name:** {unit.name}\n**URL:** {unit.url}"
        if unit.text:
            body += f"\n\n{unit.text}"
        return normalize(
            self.source,
            unit,
            source_url=unit.url or source_url,
            title=f"{label}: {unit.name}",
            body_content=body,
            metadata={"type": unit.type.value, "name": unit.name, "found_on": source_url},
            job_id=job_id,
        )

    def unit_kind(self, unit: DiscoveryItem) -> str:
        return unit.type.value

    def summarize_unit(self, unit: DiscoveryItem) -> dict[str, Any]:
        return {"type": unit.type.value, "name": unit.name, "url": unit.url}


__all__ = [
    "DISCOVERY_URLS",
    "DiscoveryStrategy",
    "KNOWN_CATEGORIES",
    "category_url",
    "dedupe_items",
]

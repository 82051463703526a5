"""Paginated extraction for the quotes.toscrape.com demo site."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from bs4 import Tag

from ..browser import BrowserProfile, Page
from ..errors import ScraperError
from ..export import format_quotes_markdown
from ..fields import FieldSpec, extract_fields
from ..records import ExtractedRecord, Quote, normalize
from . import (
    CollectResult,
    ExtractionStrategy,
    ProgressCallback,
    ResolvedContext,
    SuccessPredicate,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_QUOTES_URL = "http://quotes.toscrape.com"
DEFAULT_PAGES = 3

_QUOTE_MARKS = "\"“”"


def _clean_text(value: str) -> str:
    cleaned = value.strip(_QUOTE_MARKS).strip()
    if not cleaned:
        raise ValueError("empty quote text")
    return cleaned


QUOTE_FIELDS = (
    FieldSpec("text", (".text", "[itemprop='text']"), convert=_clean_text, required=True),
    FieldSpec("author", (".author", "[itemprop='author']"), default=""),
    FieldSpec("tags", (".tags .tag", ".tag"), many=True),
)


def page_url(base_url: str, page_number: int) -> str:
    if page_number <= 1:
        return base_url
    return f"{base_url.rstrip('/')}/page/{page_number}/"


class QuotesStrategy(ExtractionStrategy):
    key = "scrape-quotes"
    source = "quotes"
    default_url = DEFAULT_QUOTES_URL
    default_limit = DEFAULT_PAGES
    profile = BrowserProfile(viewport=(1280, 800))
    predicate = SuccessPredicate(markers=(".quote", ".col-md-8"), title_keyword="quotes")
    settle_ms = 2000
    timeout_ms = 30000

    def extract_primary(self, context: ResolvedContext, max_items: int | None) -> list[Quote]:
        # An empty listing marks the end of pagination, not a failed batch.
        containers = context.document().select(".quote")
        return self.parse_units(containers, self._parse_quote, max_items)

    def _parse_quote(self, element: Tag, index: int) -> Quote:
        values = extract_fields(element, QUOTE_FIELDS)
        return Quote(text=values["text"], author=values["author"], tags=values["tags"])

    def collect(
        self,
        page: Page,
        url: str | None,
        limit: int | None,
        progress: ProgressCallback,
    ) -> CollectResult:
        """Walk ``limit`` listing pages, stopping early at the first empty one."""

        base_url = self.resolve_target(url)
        max_pages = limit or self.default_limit
        result = CollectResult(target=base_url, units=[], pages=0)

        for page_number in range(1, max_pages + 1):
            current_url = page_url(base_url, page_number)
            if page_number > 1 and self.options.page_delay > 0:
                self.options.sleep(self.options.page_delay)

            try:
                context = self.navigate(page, current_url)
                quotes, used_fallback = self.extract(context, None)
            except ScraperError:
                if page_number == 1:
                    raise
                LOGGER.warning("Stopping pagination after error on page %d (%s)", page_number, current_url, exc_info=True)
                break

            if not quotes:
                LOGGER.info("No quotes found on page %d. Stopping.", page_number)
                break

            result.units.extend(quotes)
            result.sources.extend([context.url] * len(quotes))
            result.used_fallback = result.used_fallback or used_fallback
            result.pages = page_number
            LOGGER.info("Page %d complete. Total quotes so far: %d", page_number, len(result.units))
            progress(30 + int(45 * page_number / max_pages))

        return result

    def to_record(self, unit: Quote, *, source_url: str, job_id: str | None = None) -> ExtractedRecord:
        body = f"\"{unit.text}\"\n\n- {unit.author}" if unit.author else f"\"{unit.text}\""
        if unit.tags:
            body += "\n\nTags: " + ", ".join(unit.tags)
        return normalize(
            self.source,
            unit,
            source_url=source_url,
            title=f"Quote by {unit.author}" if unit.author else "Quote",
            body_content=body,
            metadata={"author": unit.author, "tags": list(unit.tags)},
            job_id=job_id,
        )

    def unit_kind(self, unit: Quote) -> str:
        return "quote"

    def summarize_unit(self, unit: Quote) -> dict[str, Any]:
        return {"text": unit.text, "author": unit.author, "tags": list(unit.tags)}

    def render_export(self, units: Sequence[Quote]) -> str | None:
        return format_quotes_markdown(units)


__all__ = ["DEFAULT_QUOTES_URL", "QuotesStrategy", "page_url"]

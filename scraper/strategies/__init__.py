"""Extraction strategy interface shared by all sources.

A strategy owns everything source specific: the browser profile it wants, the
ordered candidate URLs for a logical target, the success predicate that
confirms a loaded page carries real content, the primary and fallback parsers
and the conversion of its units into :class:`~scraper.records.ExtractedRecord`.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from bs4 import BeautifulSoup, Tag
from playwright.sync_api import Error as PlaywrightError

from ..browser import BrowserProfile, Page
from ..errors import (
    BatchExtractionError,
    CandidateRejected,
    NavigationExhausted,
    ScraperError,
    UnitParseError,
)
from ..records import ExtractedRecord, Unit

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

# Errors that count as "this candidate failed" rather than a job failure.
CANDIDATE_ERRORS = (PlaywrightError, ScraperError)
# Errors raised by a single malformed unit.
UNIT_ERRORS = (UnitParseError, AttributeError, KeyError, TypeError, ValueError)


@dataclass(frozen=True, slots=True)
class SuccessPredicate:
    """Short-circuit OR over independent content indicators."""

    markers: tuple[str, ...] = ()
    title_keyword: str | None = None
    min_links: int | None = None
    min_text_length: int | None = None
    text_markers: tuple[str, ...] = ()

    def evaluate(self, soup: BeautifulSoup, title: str) -> str | None:
        """Return the indicator that matched, or ``None`` when nothing did."""

        for selector in self.markers:
            if soup.select_one(selector) is not None:
                return f"found {selector}"

        if self.title_keyword and self.title_keyword.lower() in (title or "").lower():
            return f'title contains "{self.title_keyword}"'

        if self.min_links is not None and len(soup.find_all("a")) > self.min_links:
            return f"more than {self.min_links} links"

        if self.min_text_length is not None or self.text_markers:
            body = soup.body or soup
            text = body.get_text(" ", strip=True)
            if self.min_text_length is not None and len(text) > self.min_text_length:
                return f"body text longer than {self.min_text_length} characters"
            for marker in self.text_markers:
                if marker in text:
                    return f'body text contains "{marker}"'
        return None


@dataclass(slots=True)
class ResolvedContext:
    """A loaded page that passed the success predicate."""

    target: str
    url: str
    html: str
    title: str
    matched: str
    attempts: list[str] = field(default_factory=list)
    soup: BeautifulSoup | None = None

    def document(self) -> BeautifulSoup:
        if self.soup is None:
            self.soup = BeautifulSoup(self.html, "html.parser")
        return self.soup


@dataclass(slots=True)
class CollectResult:
    target: str
    units: list[Unit]
    used_fallback: bool = False
    pages: int = 1
    # Page URL each unit was read from, parallel to ``units``.
    sources: list[str] = field(default_factory=list)


@dataclass(slots=True)
class StrategyOptions:
    page_delay: float = 2.0
    navigation_jitter: tuple[float, float] = (1.0, 3.0)
    navigation_timeout: float | None = None
    sleep: Callable[[float], None] = time.sleep


class ExtractionStrategy:
    """Base class for source-specific navigation and parsing."""

    key: str = ""
    source: str = ""
    default_url: str = ""
    default_limit: int | None = None
    profile: BrowserProfile = BrowserProfile()
    predicate: SuccessPredicate = SuccessPredicate()
    settle_ms: int = 2000
    timeout_ms: int = 30000
    uses_jitter: bool = False
    require_results: bool = False
    empty_message: str = "No items found"

    def __init__(self, options: StrategyOptions | None = None) -> None:
        self.options = options or StrategyOptions()
        if self.options.navigation_timeout:
            self.timeout_ms = int(self.options.navigation_timeout * 1000)

    # -- navigation -----------------------------------------------------

    def resolve_target(self, url: str | None) -> str:
        return url or self.default_url

    def candidates(self, target: str) -> list[str]:
        return [target]

    def navigate(self, page: Page, target: str, candidates: Sequence[str] | None = None) -> ResolvedContext:
        """Load the first candidate whose page passes the success predicate."""

        urls = list(candidates) if candidates is not None else self.candidates(target)
        attempted: list[str] = []
        last_error: BaseException | None = None

        for index, url in enumerate(urls, start=1):
            attempted.append(url)
            LOGGER.info("[%s] Attempt %d/%d: navigating to %s", self.source, index, len(urls), url)
            try:
                self._pause_before_navigation()
                page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
                page.wait_for_timeout(self.settle_ms)
                html = page.content()
                title = page.title()
                soup = BeautifulSoup(html, "html.parser")
                matched = self.predicate.evaluate(soup, title)
                if matched is None:
                    raise CandidateRejected(f"Expected {self.source} content not detected on {url}")
            except CANDIDATE_ERRORS as exc:
                LOGGER.warning("[%s] Attempt %d failed: %s", self.source, index, exc)
                last_error = exc
                continue

            LOGGER.info("[%s] Loaded %s (%s)", self.source, url, matched)
            return ResolvedContext(
                target=target,
                url=url,
                html=html,
                title=title,
                matched=matched,
                attempts=attempted,
                soup=soup,
            )

        LOGGER.error("[%s] All navigation attempts failed for %s", self.source, target)
        raise NavigationExhausted(target, attempted, last_error)

    def _pause_before_navigation(self) -> None:
        if not self.uses_jitter:
            return
        low, high = self.options.navigation_jitter
        if high <= 0:
            return
        self.options.sleep(random.uniform(max(0.0, low), high))

    # -- extraction -----------------------------------------------------

    def extract_primary(self, context: ResolvedContext, max_items: int | None) -> list[Unit]:
        raise NotImplementedError

    def extract_fallback(self, context: ResolvedContext, max_items: int | None) -> list[Unit]:
        raise BatchExtractionError(f"No fallback extractor for {self.source}")

    def extract(self, context: ResolvedContext, max_items: int | None) -> tuple[list[Unit], bool]:
        """Run the primary parser, degrading to the fallback on batch failure."""

        try:
            return self.extract_primary(context, max_items), False
        except Exception as exc:
            LOGGER.warning("[%s] Primary extraction failed on %s: %s", self.source, context.url, exc)

        LOGGER.info("[%s] Attempting fallback extraction", self.source)
        units = self.extract_fallback(context, max_items)
        LOGGER.info("[%s] Fallback extraction found %d units", self.source, len(units))
        return units, True

    def parse_units(
        self,
        elements: Iterable[Tag],
        parse_one: Callable[[Tag, int], Unit],
        max_items: int | None,
    ) -> list[Unit]:
        """Parse each element, skipping the ones that raise."""

        units: list[Unit] = []
        for index, element in enumerate(elements):
            if max_items is not None and len(units) >= max_items:
                break
            try:
                units.append(parse_one(element, index))
            except UNIT_ERRORS as exc:
                LOGGER.warning("[%s] Skipping unit %d: %s", self.source, index, exc)
        return units

    def collect(
        self,
        page: Page,
        url: str | None,
        limit: int | None,
        progress: ProgressCallback,
    ) -> CollectResult:
        """Navigate to the job target and extract its units."""

        target = self.resolve_target(url)
        max_items = limit or self.default_limit
        context = self.navigate(page, target)
        progress(50)
        units, used_fallback = self.extract(context, max_items)
        if self.require_results and not units:
            raise BatchExtractionError(self.empty_message)
        progress(80)
        return CollectResult(
            target=target,
            units=units,
            used_fallback=used_fallback,
            sources=[context.url] * len(units),
        )

    # -- normalisation and reporting -------------------------------------

    def to_record(self, unit: Unit, *, source_url: str, job_id: str | None = None) -> ExtractedRecord:
        raise NotImplementedError

    def unit_kind(self, unit: Unit) -> str:
        return self.source

    def summarize_unit(self, unit: Unit) -> dict[str, Any]:
        return {}

    def render_export(self, units: Sequence[Unit]) -> str | None:
        """Return a human-readable export of ``units``, if the source has one."""

        return None


__all__ = [
    "CANDIDATE_ERRORS",
    "CollectResult",
    "ExtractionStrategy",
    "ProgressCallback",
    "ResolvedContext",
    "StrategyOptions",
    "SuccessPredicate",
]

"""Strategy registry keyed by job type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

from .errors import UnknownJobType
from .strategies import ExtractionStrategy, StrategyOptions
from .strategies.discovery import DiscoveryStrategy
from .strategies.quotes import QuotesStrategy
from .strategies.reddit import RedditStrategy


@dataclass(slots=True)
class SourceDefinition:
    """A job type and the strategy that serves it."""

    job_type: str
    source: str
    description: str
    strategy_factory: Callable[[StrategyOptions | None], ExtractionStrategy]

    def build_strategy(self, options: StrategyOptions | None = None) -> ExtractionStrategy:
        return self.strategy_factory(options)


_SOURCE_REGISTRY: Dict[str, SourceDefinition] = {
    QuotesStrategy.key: SourceDefinition(
        job_type=QuotesStrategy.key,
        source=QuotesStrategy.source,
        description="Paginated quotes from quotes.toscrape.com",
        strategy_factory=QuotesStrategy,
    ),
    RedditStrategy.key: SourceDefinition(
        job_type=RedditStrategy.key,
        source=RedditStrategy.source,
        description="Subreddit listing posts",
        strategy_factory=RedditStrategy,
    ),
    DiscoveryStrategy.key: SourceDefinition(
        job_type=DiscoveryStrategy.key,
        source=DiscoveryStrategy.source,
        description="TikTok discovery videos, profiles and categories",
        strategy_factory=DiscoveryStrategy,
    ),
}


def get_source_definition(job_type: str) -> SourceDefinition:
    """Return the registered definition for ``job_type``."""

    try:
        return _SOURCE_REGISTRY[job_type]
    except KeyError as exc:
        raise UnknownJobType(job_type, list_job_types()) from exc


def list_job_types() -> list[str]:
    return sorted(_SOURCE_REGISTRY)


def build_strategy(job_type: str, options: StrategyOptions | None = None) -> ExtractionStrategy:
    return get_source_definition(job_type).build_strategy(options)


__all__ = [
    "SourceDefinition",
    "build_strategy",
    "get_source_definition",
    "list_job_types",
]

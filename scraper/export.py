"""Markdown side-output for finished jobs."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from .records import Quote

LOGGER = logging.getLogger(__name__)


def format_quotes_markdown(quotes: Sequence[Quote], *, scraped_on: Optional[date] = None) -> str:
    scraped_on = scraped_on or date.today()
    lines = [
        "# 📚 Scraped Quotes Collection",
        "",
        f"*Scraped {len(quotes)} quotes on {scraped_on.isoformat()}*",
        "",
        "---",
        "",
    ]
    for index, quote in enumerate(quotes, start=1):
        lines.extend([f"## Quote {index}", "", f'> "{quote.text}"', "", f"**Author:** {quote.author}", ""])
        if quote.tags:
            lines.append("**Tags:** " + ", ".join(f"`{tag}`" for tag in quote.tags))
        lines.extend(["", "---", ""])
    return "\n".join(lines)


def write_export(path: Path, markdown: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(markdown, encoding="utf-8")
    LOGGER.info("Wrote export to %s", path)
    return path


__all__ = ["format_quotes_markdown", "write_export"]

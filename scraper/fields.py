"""Declarative field extraction with ordered selector fallbacks.

Each field of a unit is described by a :class:`FieldSpec`: an ordered tuple of
CSS selectors tried against the unit's element, an optional attribute to read
instead of the text, an optional regex, and a converter. The first selector
that yields a usable value wins. When none does, the field falls back to its
``default``; fields marked ``required`` raise :class:`UnitParseError` instead,
which makes the caller skip that single unit.

Adding a source therefore means adding a table of ``FieldSpec`` entries, not
new control flow.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Pattern

from bs4 import Tag

from .errors import UnitParseError

# Selector meaning "the unit element itself".
SELF = ""

_COUNT_PATTERN = re.compile(r"(-?\d+(?:\.\d+)?)\s*([kKmM]?)")


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    selectors: tuple[str, ...] = (SELF,)
    attr: str | None = None
    pattern: Pattern[str] | None = None
    convert: Callable[[str], Any] | None = None
    default: Any = None
    required: bool = False
    many: bool = False


def _select(element: Tag, selector: str, many: bool) -> list[Tag]:
    if selector == SELF:
        return [element]
    if many:
        return list(element.select(selector))
    found = element.select_one(selector)
    return [found] if found is not None else []


def _raw_value(node: Tag, attr: str | None) -> str | None:
    if attr is None:
        value = node.get_text(" ", strip=True)
    else:
        raw = node.get(attr)
        if isinstance(raw, list):
            raw = " ".join(raw)
        value = raw.strip() if isinstance(raw, str) else None
    return value or None


def _coerce(spec: FieldSpec, value: str) -> Any:
    if spec.pattern is not None:
        match = spec.pattern.search(value)
        if not match:
            raise ValueError(f"pattern did not match {value!r}")
        value = match.group(1) if match.groups() else match.group(0)
    if spec.convert is not None:
        return spec.convert(value)
    return value


def extract_field(element: Tag, spec: FieldSpec) -> Any:
    """Return the value of ``spec`` for ``element`` following the fallback policy."""

    for selector in spec.selectors:
        nodes = _select(element, selector, spec.many)
        values: list[Any] = []
        for node in nodes:
            raw = _raw_value(node, spec.attr)
            if raw is None:
                continue
            try:
                values.append(_coerce(spec, raw))
            except (TypeError, ValueError):
                continue
            if not spec.many:
                break
        if values:
            return values if spec.many else values[0]

    if spec.required:
        raise UnitParseError(f"Missing required field '{spec.name}'")
    if spec.many and spec.default is None:
        return []
    return spec.default


def extract_fields(element: Tag, specs: Iterable[FieldSpec]) -> dict[str, Any]:
    return {spec.name: extract_field(element, spec) for spec in specs}


def parse_count(raw: str) -> int:
    """Parse a vote/comment counter such as ``"1.2k"`` or ``"34 comments"``.

    Placeholder glyphs (``"•"``) and unparsable text count as zero.
    """

    match = _COUNT_PATTERN.search(raw.replace("\xa0", " ").replace(",", ""))
    if not match:
        return 0
    number = float(match.group(1))
    suffix = match.group(2).lower()
    if suffix == "k":
        number *= 1_000
    elif suffix == "m":
        number *= 1_000_000
    return int(number)


def absolute_url(href: str | None, base_url: str) -> str:
    if not href:
        return ""
    cleaned = href.strip()
    if cleaned.startswith("http"):
        return cleaned
    if cleaned.startswith("//"):
        return f"https:{cleaned}"
    if cleaned.startswith("/"):
        return f"{base_url.rstrip('/')}{cleaned}"
    return cleaned


__all__ = [
    "FieldSpec",
    "SELF",
    "absolute_url",
    "extract_field",
    "extract_fields",
    "parse_count",
]

"""Helpers shared by provider enrichers.

A raw selector map is the ``raw`` block of a link preview: CSS selector ->
first matching element as ``{"text": str | None, "attributes": {name: value}}``.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

RawSelectorMap = dict[str, dict[str, Any]]


@dataclass(frozen=True)
class ProviderEnrichment:
    """Facts and raw values one provider contributed to a link category."""

    facts: list[dict[str, str]] = field(default_factory=list)
    raw: dict[str, Any] | None = None
    image_url: str | None = None

_WHITESPACE_RE = re.compile(r"\s+")
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)")


def build_raw_selector_map(raw: Any) -> RawSelectorMap:
    """Keep only well-formed entries of a stored preview ``raw`` block."""
    if not isinstance(raw, dict):
        return {}
    return {
        selector: entry
        for selector, entry in raw.items()
        if isinstance(selector, str) and isinstance(entry, dict)
    }


def normalize_whitespace(value: str | None) -> str | None:
    if not value:
        return None
    collapsed = _WHITESPACE_RE.sub(" ", value).strip()
    return collapsed or None


def get_raw_text(raw_map: RawSelectorMap, selector: str) -> str | None:
    entry = raw_map.get(selector) or {}
    return normalize_whitespace(entry.get("text"))


def get_raw_attribute(raw_map: RawSelectorMap, selector: str, attribute: str) -> str | None:
    entry = raw_map.get(selector) or {}
    attributes = entry.get("attributes") or {}
    needle = attribute.lower()
    for name, value in attributes.items():
        if isinstance(name, str) and name.lower() == needle:
            return normalize_whitespace(value if isinstance(value, str) else None)
    return None


def get_meta_content(raw_map: RawSelectorMap, selector: str) -> str | None:
    return get_raw_attribute(raw_map, selector, "content")


def _parse_float_prefix(value: str) -> float | None:
    match = _FLOAT_PREFIX_RE.match(value.strip())
    if not match:
        return None
    return float(match.group(0))


def _numeric_token(value: str | None) -> str | None:
    trimmed = normalize_whitespace(value)
    if not trimmed:
        return None
    for segment in trimmed.split(" "):
        if re.search(r"\d", segment.replace(",", "").replace(".", "")):
            return segment
    return trimmed


def parse_count(value: str | None) -> int | None:
    """Parse "1.5k", "2M" or "12,345" into an integer count."""
    token = _numeric_token(value)
    if not token:
        return None
    lower = token.lower()
    multiplier = 1
    if lower.endswith("k"):
        multiplier = 1_000
    elif lower.endswith("m"):
        multiplier = 1_000_000
    numeric = lower if multiplier == 1 else lower[:-1]
    parsed = _parse_float_prefix(numeric.replace(",", ""))
    if parsed is None:
        return None
    return int(math.floor(parsed * multiplier + 0.5))


def format_count(value: str | None) -> str | None:
    """Format a count with thousands separators, or return the cleaned text."""
    number = parse_count(value)
    if number is not None:
        return f"{number:,}"
    return normalize_whitespace(value)


def format_rating(value: str | None) -> str | None:
    if not value:
        return None
    numeric = _parse_float_prefix(value)
    if numeric is None:
        return normalize_whitespace(value)
    return f"{numeric:.2f}"


def format_date(value: str | None) -> str | None:
    """Format an ISO date as "Dec 25, 2023"; None when it does not parse."""
    if not value:
        return None
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text[:10])
        except ValueError:
            return None
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def add_fact(facts: list[dict[str, str]], label: str, value: str | None) -> None:
    if value:
        facts.append({"label": label, "value": value})


def merge_facts(target: list[dict[str, str]], incoming: list[dict[str, str]] | None) -> None:
    """Append incoming facts not already present (same label and value)."""
    if not incoming:
        return
    seen = {f"{fact['label']}::{fact['value']}" for fact in target}
    for fact in incoming:
        key = f"{fact['label']}::{fact['value']}"
        if key not in seen:
            target.append(fact)
            seen.add(key)


def compact(data: dict[str, Any]) -> dict[str, Any] | None:
    """Drop None values; None when nothing is left."""
    kept = {key: value for key, value in data.items() if value is not None}
    return kept or None

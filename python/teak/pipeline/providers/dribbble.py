"""Dribbble shot pages.

Stats come from the ``twitter:labelN`` / ``twitter:dataN`` pairs first and
fall back to the on-page counters. The designer is read from the title
("Shot name by Designer on Dribbble") before author metadata.
"""

import re
from typing import Any

from teak.pipeline.providers.common import (
    ProviderEnrichment,
    RawSelectorMap,
    add_fact,
    compact,
    format_count,
    get_meta_content,
    get_raw_text,
    normalize_whitespace,
)

LIKES_SELECTORS = (
    "a[href$='/likes']",
    "[data-testid='shot-likes']",
    "[data-testid='shot-likes-count']",
    ".shot-stats [data-label='Likes']",
)
VIEWS_SELECTORS = (
    "a[href$='/views']",
    "[data-testid='shot-views']",
    "[data-testid='shot-views-count']",
    ".shot-stats [data-label='Views']",
)
COMMENTS_SELECTORS = (
    "a[href$='/comments']",
    "[data-testid='shot-comments']",
    "[data-testid='shot-comments-count']",
    ".shot-stats [data-label='Comments']",
)
DESIGNER_SELECTORS = (
    "meta[name='twitter:creator']",
    "a[rel='author']",
    ".shot-byline a",
)
KEYWORD_SELECTORS = (
    "meta[name='keywords']",
    "meta[name='parsely-tags']",
    "meta[property='article:tag']",
)
TAG_LINK = "a[rel='tag']"
TWITTER_LABELS = tuple(f"meta[name='twitter:label{index}']" for index in range(1, 5))
TWITTER_DATA = tuple(f"meta[name='twitter:data{index}']" for index in range(1, 5))

SELECTORS = (
    *LIKES_SELECTORS,
    *VIEWS_SELECTORS,
    *COMMENTS_SELECTORS,
    *DESIGNER_SELECTORS,
    *KEYWORD_SELECTORS,
    TAG_LINK,
    *TWITTER_LABELS,
    *TWITTER_DATA,
)

MAX_KEYWORDS = 5


def _stat_key(label: str) -> str | None:
    lowered = label.lower()
    for key, needle in (("likes", "like"), ("views", "view"), ("comments", "comment")):
        if needle in lowered:
            return key
    return None


def _twitter_stats(raw_map: RawSelectorMap) -> dict[str, str]:
    stats: dict[str, str] = {}
    for label_selector, data_selector in zip(TWITTER_LABELS, TWITTER_DATA, strict=True):
        label = get_meta_content(raw_map, label_selector)
        value = get_meta_content(raw_map, data_selector)
        if not (label and value):
            continue
        key = _stat_key(label)
        if key and key not in stats:
            stats[key] = value
    return stats


def _selector_value(raw_map: RawSelectorMap, selector: str) -> str | None:
    if selector.startswith("meta["):
        return get_meta_content(raw_map, selector)
    return get_raw_text(raw_map, selector)


def _stat(
    raw_map: RawSelectorMap, selectors: tuple[str, ...], seed: str | None
) -> tuple[str | None, str | None]:
    """Return (raw, formatted) for the first source with a value."""
    candidates = [seed] if seed else []
    candidates.extend(_selector_value(raw_map, selector) for selector in selectors)
    for candidate in candidates:
        normalized = normalize_whitespace(candidate)
        if normalized:
            return candidate, format_count(normalized) or normalized
    return None, None


def _clean_designer(value: str | None) -> str | None:
    normalized = normalize_whitespace(value)
    if not normalized:
        return None
    normalized = re.sub(r"^@", "", normalized).strip()
    normalized = re.sub(r"\s+on\s+dribbble$", "", normalized, flags=re.IGNORECASE).strip()
    return normalized or None


def _title(raw_map: RawSelectorMap) -> str | None:
    return get_meta_content(raw_map, "meta[property='og:title']") or get_raw_text(
        raw_map, "head > title"
    )


def _designer(raw_map: RawSelectorMap) -> tuple[str | None, str | None]:
    candidates: list[str] = []
    title = _title(raw_map)
    if title:
        by_index = title.lower().rfind(" by ")
        if by_index != -1:
            tail = title[by_index + 4 :]
            tail = re.sub(r"\|\s*dribbble$", "", tail, flags=re.IGNORECASE)
            tail = re.sub(r"\son\s+dribbble$", "", tail, flags=re.IGNORECASE)
            from_title = normalize_whitespace(tail)
            if from_title:
                candidates.append(from_title)

    meta_author = get_meta_content(raw_map, "meta[name='author']") or get_meta_content(
        raw_map, "meta[property='article:author']"
    )
    if meta_author:
        candidates.append(meta_author)
    for selector in DESIGNER_SELECTORS:
        value = _selector_value(raw_map, selector)
        if value:
            candidates.append(value)

    for candidate in candidates:
        display = _clean_designer(candidate)
        if display:
            return display, candidate
    return None, None


def _keywords(raw_map: RawSelectorMap) -> list[str] | None:
    source = None
    for selector in KEYWORD_SELECTORS:
        source = get_meta_content(raw_map, selector)
        if source:
            break
    source = source or get_raw_text(raw_map, TAG_LINK)
    if not source:
        return None

    unique: list[str] = []
    for item in re.split(r"[,|]", source):
        value = normalize_whitespace(item)
        if value and value not in unique:
            unique.append(value)
        if len(unique) == MAX_KEYWORDS:
            break
    return unique or None


def _image(raw_map: RawSelectorMap) -> str | None:
    for selector in (
        "meta[property='og:image:secure_url']",
        "meta[property='og:image']",
        "meta[name='og:image']",
        "meta[name='twitter:image']",
        "meta[property='twitter:image']",
    ):
        value = get_meta_content(raw_map, selector)
        if value:
            return value
    return None


def enrich(raw_map: RawSelectorMap) -> ProviderEnrichment | None:
    designer, designer_raw = _designer(raw_map)
    seeds = _twitter_stats(raw_map)
    likes_raw, likes = _stat(raw_map, LIKES_SELECTORS, seeds.get("likes"))
    views_raw, views = _stat(raw_map, VIEWS_SELECTORS, seeds.get("views"))
    comments_raw, comments = _stat(raw_map, COMMENTS_SELECTORS, seeds.get("comments"))
    keywords = _keywords(raw_map)
    image_url = _image(raw_map)

    facts: list[dict[str, str]] = []
    add_fact(facts, "Designer", designer)
    add_fact(facts, "Likes", likes)
    add_fact(facts, "Views", views)
    add_fact(facts, "Comments", comments)
    if keywords:
        add_fact(facts, "Tags" if len(keywords) > 1 else "Tag", ", ".join(keywords[:3]))

    raw: dict[str, Any] | None = compact(
        {
            "title": _title(raw_map),
            "description": get_meta_content(raw_map, "meta[property='og:description']")
            or get_meta_content(raw_map, "meta[name='description']"),
            "designer": designer_raw or designer,
            "stats": compact(
                {
                    "likes": likes_raw or likes,
                    "views": views_raw or views,
                    "comments": comments_raw or comments,
                }
            ),
            "keywords": keywords,
        }
    )

    if not image_url and not facts and not raw:
        return None
    return ProviderEnrichment(facts=facts, raw=raw, image_url=image_url)

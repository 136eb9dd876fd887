"""HTML -> link preview fields.

collect_selector_map() evaluates every known selector once and keeps the
first non-empty match per selector as ``{"text", "attributes"}``. That map is
both the input to parse_link_preview() and the ``raw`` block stored on the
preview, so provider enrichers can run later without refetching the page.
"""

import re
from functools import lru_cache
from typing import Any
from urllib.parse import urljoin, urlparse

from lxml import etree
from lxml.cssselect import CSSSelector
from lxml.html import HtmlElement, document_fromstring

from teak.pipeline.link_metadata.selectors import (
    AUTHOR_SOURCES,
    CANONICAL_SOURCES,
    DESCRIPTION_SOURCES,
    FAVICON_SOURCES,
    FINAL_URL_SOURCES,
    IMAGE_SOURCES,
    PUBLISHED_TIME_SOURCES,
    PUBLISHER_SOURCES,
    SITE_NAME_SOURCES,
    TITLE_SOURCES,
    SelectorSource,
    all_selectors,
)
from teak.pipeline.providers.common import RawSelectorMap

MAX_TITLE_LENGTH = 512
MAX_DESCRIPTION_LENGTH = 2048
MAX_NAME_LENGTH = 256
MAX_PUBLISHED_AT_LENGTH = 128
MAX_RAW_TEXT_LENGTH = 500

_WHITESPACE_RE = re.compile(r"\s+")
_DATA_URL_RE = re.compile(r"^data:", re.IGNORECASE)
_BLOCKED_SCHEME_RE = re.compile(r"^(javascript:|mailto:)", re.IGNORECASE)


@lru_cache(maxsize=256)
def _compiled(selector: str) -> CSSSelector:
    return CSSSelector(selector)


def parse_document(html: str) -> HtmlElement | None:
    if not html or not html.strip():
        return None
    try:
        return document_fromstring(html)
    except (etree.ParserError, ValueError):
        return None


def _element_entry(element: HtmlElement) -> dict[str, Any] | None:
    text = _WHITESPACE_RE.sub(" ", element.text_content() or "").strip()
    attributes = {
        str(name): value.strip()
        for name, value in element.attrib.items()
        if isinstance(value, str) and value.strip()
    }
    if not text and not attributes:
        return None
    return {"text": text[:MAX_RAW_TEXT_LENGTH] or None, "attributes": attributes}


def collect_selector_map(html_or_doc: str | HtmlElement | None) -> RawSelectorMap:
    """Evaluate every known selector against the page."""
    doc = parse_document(html_or_doc) if isinstance(html_or_doc, str) else html_or_doc
    if doc is None:
        return {}

    selector_map: RawSelectorMap = {}
    for selector in all_selectors():
        for element in _compiled(selector)(doc):
            entry = _element_entry(element)
            if entry is not None:
                selector_map[selector] = entry
                break
    return selector_map


def _source_value(selector_map: RawSelectorMap, source: SelectorSource) -> str | None:
    entry = selector_map.get(source.selector)
    if not entry:
        return None
    if source.attribute == "text":
        value = entry.get("text")
    else:
        attributes = entry.get("attributes") or {}
        needle = source.attribute.lower()
        value = next(
            (val for name, val in attributes.items() if name.lower() == needle), None
        )
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def first_from_sources(selector_map: RawSelectorMap, sources: list[SelectorSource]) -> str | None:
    """Value of the first source that yields a non-empty string."""
    for source in sources:
        value = _source_value(selector_map, source)
        if value:
            return value
    return None


def sanitize_text(value: str | None, max_length: int) -> str | None:
    """Collapse whitespace and truncate; None when nothing remains."""
    if not value:
        return None
    normalized = _WHITESPACE_RE.sub(" ", value).strip()
    if not normalized:
        return None
    return normalized[:max_length]


def sanitize_url(base_url: str, value: str | None, *, allow_data: bool = False) -> str | None:
    """Resolve ``value`` against ``base_url`` and keep only http(s) results.

    ``data:`` URLs pass through only with ``allow_data``; ``javascript:`` and
    ``mailto:`` are always rejected.
    """
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if _DATA_URL_RE.match(trimmed):
        return trimmed if allow_data else None
    if _BLOCKED_SCHEME_RE.match(trimmed):
        return None
    try:
        resolved = urljoin(base_url, trimmed)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return None
    return resolved


def sanitize_image_url(base_url: str, value: str | None) -> str | None:
    return sanitize_url(base_url, value, allow_data=True)


def _int_attr(element: HtmlElement, name: str) -> int | None:
    match = re.match(r"\s*(\d+)", element.get(name) or "")
    return int(match.group(1)) if match else None


def pick_fallback_image(doc: HtmlElement | None, base_url: str) -> str | None:
    """Largest declared <img> on the page when no meta image exists."""
    if doc is None:
        return None
    best: tuple[int, str] | None = None
    for img in doc.iter("img"):
        url = sanitize_image_url(base_url, img.get("src"))
        if not url:
            continue
        width = _int_attr(img, "width")
        height = _int_attr(img, "height")
        area = width * height if width is not None and height is not None else 0
        if best is None or area > best[0]:
            best = (area, url)
    return best[1] if best else None


def normalize_link_url(url: str) -> str:
    """Prefix a scheme-less URL with https://."""
    trimmed = url.strip()
    if not trimmed.lower().startswith(("http://", "https://")):
        return f"https://{trimmed}"
    return trimmed


def parse_link_preview(
    url: str, selector_map: RawSelectorMap, *, fallback_image: str | None = None
) -> dict[str, Any]:
    """Build sanitized preview fields from a selector map.

    Args:
        url: The normalized page URL, used to resolve relative links.
        selector_map: Output of collect_selector_map().
        fallback_image: Image to use when no meta source names one.

    Returns:
        Dict of preview fields (absent values omitted) plus ``raw``.
    """
    canonical = sanitize_url(url, first_from_sources(selector_map, CANONICAL_SOURCES))
    final_candidate = sanitize_url(url, first_from_sources(selector_map, FINAL_URL_SOURCES))
    image = sanitize_image_url(url, first_from_sources(selector_map, IMAGE_SOURCES))
    published_raw = first_from_sources(selector_map, PUBLISHED_TIME_SOURCES)

    fields = {
        "title": sanitize_text(first_from_sources(selector_map, TITLE_SOURCES), MAX_TITLE_LENGTH),
        "description": sanitize_text(
            first_from_sources(selector_map, DESCRIPTION_SOURCES), MAX_DESCRIPTION_LENGTH
        ),
        "imageUrl": image or fallback_image,
        "faviconUrl": sanitize_url(url, first_from_sources(selector_map, FAVICON_SOURCES)),
        "siteName": sanitize_text(
            first_from_sources(selector_map, SITE_NAME_SOURCES), MAX_NAME_LENGTH
        ),
        "author": sanitize_text(first_from_sources(selector_map, AUTHOR_SOURCES), MAX_NAME_LENGTH),
        "publisher": sanitize_text(
            first_from_sources(selector_map, PUBLISHER_SOURCES), MAX_NAME_LENGTH
        ),
        "publishedAt": published_raw.strip()[:MAX_PUBLISHED_AT_LENGTH] if published_raw else None,
        "canonicalUrl": canonical,
        "finalUrl": final_candidate or canonical or url,
    }
    parsed = {key: value for key, value in fields.items() if value is not None}
    parsed["raw"] = selector_map
    return parsed


def extract_link_preview(url: str, html: str) -> dict[str, Any]:
    """Parse a fetched page into preview fields."""
    doc = parse_document(html)
    selector_map = collect_selector_map(doc)
    return parse_link_preview(url, selector_map, fallback_image=pick_fallback_image(doc, url))


IMAGE_STORAGE_FIELDS = ("imageStorageId", "imageWidth", "imageHeight", "imageUpdatedAt")
SCREENSHOT_FIELDS = ("screenshotStorageId", "screenshotUpdatedAt")


def build_success_preview(url: str, parsed: dict[str, Any], fetched_at: int) -> dict[str, Any]:
    return {
        "source": "teak_fetch",
        "status": "success",
        "fetchedAt": fetched_at,
        "url": url,
        **parsed,
    }


def build_error_preview(
    url: str,
    error_type: str,
    message: str,
    fetched_at: int,
    previous: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Error preview that keeps previously stored screenshot and image blobs."""
    preview: dict[str, Any] = {
        "source": "teak_fetch",
        "status": "error",
        "fetchedAt": fetched_at,
        "url": url,
        "finalUrl": url,
        "error": {"type": error_type, "message": message},
    }
    for key in (*SCREENSHOT_FIELDS, *IMAGE_STORAGE_FIELDS):
        if previous and previous.get(key) is not None:
            preview[key] = previous[key]
    return preview

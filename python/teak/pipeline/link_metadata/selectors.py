"""CSS selector sources for link previews.

Each preview field is read from an ordered list of (selector, attribute)
sources; the first source yielding a non-empty value wins. ``attribute`` is
an HTML attribute name or ``"text"`` for the element's text content.
"""

from typing import NamedTuple

from teak.pipeline.providers import amazon, dribbble, github, goodreads, imdb


class SelectorSource(NamedTuple):
    selector: str
    attribute: str


def _meta(kind: str, names: tuple[str, ...]) -> list[SelectorSource]:
    return [SelectorSource(f"meta[{kind}='{name}']", "content") for name in names]


TITLE_SOURCES = [
    SelectorSource("meta[property='og:title']", "content"),
    SelectorSource("meta[name='og:title']", "content"),
    SelectorSource("meta[name='twitter:title']", "content"),
    SelectorSource("meta[property='twitter:title']", "content"),
    SelectorSource("meta[name='title']", "content"),
    SelectorSource("head > title", "text"),
]

DESCRIPTION_SOURCES = [
    SelectorSource("meta[property='og:description']", "content"),
    SelectorSource("meta[name='og:description']", "content"),
    SelectorSource("meta[name='description']", "content"),
    SelectorSource("meta[property='description']", "content"),
    SelectorSource("meta[name='twitter:description']", "content"),
    SelectorSource("meta[property='twitter:description']", "content"),
]

IMAGE_SOURCES = [
    SelectorSource("meta[property='og:image:secure_url']", "content"),
    SelectorSource("meta[property='og:image:url']", "content"),
    SelectorSource("meta[property='og:image']", "content"),
    SelectorSource("meta[name='og:image']", "content"),
    SelectorSource("meta[property='twitter:image']", "content"),
    SelectorSource("meta[name='twitter:image']", "content"),
    SelectorSource("meta[property='twitter:image:src']", "content"),
    SelectorSource("meta[name='twitter:image:src']", "content"),
    SelectorSource("link[rel='image_src']", "href"),
    SelectorSource("meta[name='msapplication-TileImage']", "content"),
]

FAVICON_SOURCES = [
    SelectorSource("link[rel='icon']", "href"),
    SelectorSource("link[rel='shortcut icon']", "href"),
    SelectorSource("link[rel='apple-touch-icon']", "href"),
    SelectorSource("link[rel='apple-touch-icon-precomposed']", "href"),
    SelectorSource("link[rel='mask-icon']", "href"),
]

SITE_NAME_SOURCES = [
    SelectorSource("meta[property='og:site_name']", "content"),
    SelectorSource("meta[name='og:site_name']", "content"),
    SelectorSource("meta[name='application-name']", "content"),
    SelectorSource("meta[name='publisher']", "content"),
]

AUTHOR_SOURCES = [
    SelectorSource("meta[name='author']", "content"),
    SelectorSource("meta[property='article:author']", "content"),
    SelectorSource("meta[name='byl']", "content"),
    SelectorSource("meta[property='book:author']", "content"),
]

PUBLISHER_SOURCES = [
    SelectorSource("meta[property='article:publisher']", "content"),
    SelectorSource("meta[name='publisher']", "content"),
    SelectorSource("meta[property='og:site_name']", "content"),
]

PUBLISHED_TIME_SOURCES = [
    SelectorSource("meta[property='article:published_time']", "content"),
    SelectorSource("meta[name='article:published_time']", "content"),
    SelectorSource("meta[name='pubdate']", "content"),
    SelectorSource("meta[name='publication_date']", "content"),
    SelectorSource("meta[name='date']", "content"),
]

CANONICAL_SOURCES = [
    SelectorSource("link[rel='canonical']", "href"),
    SelectorSource("meta[property='og:url']", "content"),
    SelectorSource("meta[name='og:url']", "content"),
]

FINAL_URL_SOURCES = [
    SelectorSource("meta[property='og:url']", "content"),
    SelectorSource("meta[name='og:url']", "content"),
    SelectorSource("meta[property='al:web:url']", "content"),
    SelectorSource("meta[name='twitter:url']", "content"),
    SelectorSource("meta[property='twitter:url']", "content"),
]

FIELD_SOURCES: dict[str, list[SelectorSource]] = {
    "title": TITLE_SOURCES,
    "description": DESCRIPTION_SOURCES,
    "image": IMAGE_SOURCES,
    "favicon": FAVICON_SOURCES,
    "siteName": SITE_NAME_SOURCES,
    "author": AUTHOR_SOURCES,
    "publisher": PUBLISHER_SOURCES,
    "publishedAt": PUBLISHED_TIME_SOURCES,
    "canonical": CANONICAL_SOURCES,
    "finalUrl": FINAL_URL_SOURCES,
}

# Selectors read by provider enrichers from the stored raw map.
PROVIDER_SELECTORS: tuple[str, ...] = (
    *github.SELECTORS,
    *goodreads.SELECTORS,
    *amazon.SELECTORS,
    *imdb.SELECTORS,
    *dribbble.SELECTORS,
)


def all_selectors() -> list[str]:
    """Every selector evaluated against a page, in first-seen order."""
    ordered: dict[str, None] = {}
    for sources in FIELD_SOURCES.values():
        for source in sources:
            ordered.setdefault(source.selector, None)
    for selector in PROVIDER_SELECTORS:
        ordered.setdefault(selector, None)
    return list(ordered)

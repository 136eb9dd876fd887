"""Link category resolution from a URL alone.

Resolution is pure and deterministic. Sources are tried in this order and
exactly one of them names the result:

- domain_rule: hostname (or a parent domain) is in DOMAIN_RULES
- path_rule: a path segment names the category (``/recipes/...``)
- provider_mapping: hostname implies a provider with a default category
- fallback: category ``other``
"""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

LINK_CATEGORIES = (
    "book",
    "movie",
    "tv",
    "article",
    "news",
    "podcast",
    "music",
    "product",
    "recipe",
    "course",
    "research",
    "event",
    "software",
    "design_portfolio",
    "other",
)

DOMAIN_RULE_CONFIDENCE = 0.98
SPOTIFY_PODCAST_CONFIDENCE = 0.9
PATH_RULE_CONFIDENCE = 0.8
PROVIDER_MAPPING_CONFIDENCE = 0.72
FALLBACK_CONFIDENCE = 0.35


@dataclass(frozen=True)
class DomainRule:
    category: str
    provider: str | None = None


DOMAIN_RULES: dict[str, DomainRule] = {
    "github.com": DomainRule("software", "github"),
    "gitlab.com": DomainRule("software"),
    "bitbucket.org": DomainRule("software"),
    "npmjs.com": DomainRule("software"),
    "pypi.org": DomainRule("software"),
    "rubygems.org": DomainRule("software"),
    "itch.io": DomainRule("software"),
    "imdb.com": DomainRule("movie", "imdb"),
    "goodreads.com": DomainRule("book", "goodreads"),
    "amazon.com": DomainRule("product", "amazon"),
    "amazon.co.uk": DomainRule("product", "amazon"),
    "amazon.in": DomainRule("product", "amazon"),
    "dribbble.com": DomainRule("design_portfolio", "dribbble"),
    "behance.net": DomainRule("design_portfolio"),
    "figma.com": DomainRule("design_portfolio", "figma"),
    "youtube.com": DomainRule("tv", "youtube"),
    "youtu.be": DomainRule("tv", "youtube"),
    "netflix.com": DomainRule("tv"),
    "medium.com": DomainRule("article"),
    "substack.com": DomainRule("article"),
    "dev.to": DomainRule("article"),
    "open.spotify.com": DomainRule("music", "spotify"),
    "spotify.com": DomainRule("music", "spotify"),
    "music.apple.com": DomainRule("music", "apple"),
}

# Hosts that identify a provider but carry no category rule of their own.
PROVIDER_HINTS: dict[str, str] = {
    "youtube.com": "youtube",
    "youtu.be": "youtube",
    "open.spotify.com": "spotify",
    "spotify.com": "spotify",
    "music.apple.com": "apple",
    "podcasts.apple.com": "apple",
    "figma.com": "figma",
    "vimeo.com": "vimeo",
    "soundcloud.com": "soundcloud",
    "arxiv.org": "arxiv",
    "coursera.org": "coursera",
    "udemy.com": "udemy",
    "eventbrite.com": "eventbrite",
    "meetup.com": "meetup",
}

PROVIDER_CATEGORIES: dict[str, str] = {
    "youtube": "tv",
    "spotify": "music",
    "apple": "music",
    "figma": "design_portfolio",
    "vimeo": "tv",
    "soundcloud": "music",
    "arxiv": "research",
    "coursera": "course",
    "udemy": "course",
    "eventbrite": "event",
    "meetup": "event",
}

# First matching pattern wins; patterns run against the lowercased path.
PATH_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"/recipes?(/|$)"), "recipe"),
    (re.compile(r"/(podcasts?|episodes?)(/|$)"), "podcast"),
    (re.compile(r"/news(/|$)"), "news"),
    (re.compile(r"/(courses?|learn|lessons?)(/|$)"), "course"),
    (re.compile(r"/events?(/|$)"), "event"),
    (re.compile(r"/(papers?|abs|publications?)(/|$)"), "research"),
    (re.compile(r"/(books?)(/|$)"), "book"),
    (re.compile(r"/(movies?|films?)(/|$)"), "movie"),
    (re.compile(r"/(products?|dp|shop)(/|$)"), "product"),
    (re.compile(r"/(blog|articles?|posts?)(/|$)"), "article"),
)

_SPOTIFY_PODCAST_PATH = re.compile(r"^/(episode|show)(/|$)")


@dataclass(frozen=True)
class LinkCategoryResolution:
    category: str
    confidence: float
    provider: str | None
    reason: str
    rule: str | None = None

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "confidence": self.confidence,
            "provider": self.provider,
            "reason": self.reason,
            "rule": self.rule,
        }


def _hostname(url: str) -> str | None:
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None
    host = (parsed.hostname or "").lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def _lookup(table: dict, host: str) -> tuple[str, object] | None:
    """Most specific table entry for the host (exact, then parent domains)."""
    labels = host.split(".")
    for index in range(len(labels) - 1):
        candidate = ".".join(labels[index:])
        if candidate in table:
            return candidate, table[candidate]
    return None


def resolve_link_category(url: str | None) -> LinkCategoryResolution:
    """Resolve a URL to a link category.

    Args:
        url: The link URL. Missing or unparsable URLs fall back.

    Returns:
        LinkCategoryResolution with exactly one reason.
    """
    host = _hostname(url or "")
    if not host:
        return LinkCategoryResolution("other", FALLBACK_CONFIDENCE, None, "fallback")

    path = (urlparse(url.strip()).path or "/").lower()

    domain_match = _lookup(DOMAIN_RULES, host)
    if domain_match:
        domain, rule = domain_match
        if _host_matches(host, "spotify.com") and _SPOTIFY_PODCAST_PATH.match(path):
            return LinkCategoryResolution(
                "podcast", SPOTIFY_PODCAST_CONFIDENCE, rule.provider, "domain_rule", domain
            )
        return LinkCategoryResolution(
            rule.category, DOMAIN_RULE_CONFIDENCE, rule.provider, "domain_rule", domain
        )

    provider_match = _lookup(PROVIDER_HINTS, host)
    provider = provider_match[1] if provider_match else None

    for pattern, category in PATH_RULES:
        if pattern.search(path):
            return LinkCategoryResolution(
                category, PATH_RULE_CONFIDENCE, provider, "path_rule", pattern.pattern
            )

    if provider and provider in PROVIDER_CATEGORIES:
        return LinkCategoryResolution(
            PROVIDER_CATEGORIES[provider],
            PROVIDER_MAPPING_CONFIDENCE,
            provider,
            "provider_mapping",
            provider_match[0],
        )

    return LinkCategoryResolution("other", FALLBACK_CONFIDENCE, provider, "fallback")

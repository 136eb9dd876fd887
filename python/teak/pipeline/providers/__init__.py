"""Provider enrichment registry.

Each provider key maps to the categories it applies to and an ``enrich``
function over the raw selector map of the fetched page. Dispatch is a
dictionary lookup:

    enricher = PROVIDER_REGISTRY.get(provider)
    if enricher and enricher.applies_to(category):
        enrichment = enricher.enrich(raw_map)
"""

from collections.abc import Callable
from dataclasses import dataclass

from teak.pipeline.providers import amazon, dribbble, github, goodreads, imdb
from teak.pipeline.providers.common import (
    ProviderEnrichment,
    RawSelectorMap,
    build_raw_selector_map,
    merge_facts,
)


@dataclass(frozen=True)
class ProviderEnricher:
    applicable_categories: frozenset[str]
    enrich: Callable[[RawSelectorMap], ProviderEnrichment | None]

    def applies_to(self, category: str) -> bool:
        return category in self.applicable_categories


PROVIDER_REGISTRY: dict[str, ProviderEnricher] = {
    "github": ProviderEnricher(frozenset({"software"}), github.enrich),
    "goodreads": ProviderEnricher(frozenset({"book"}), goodreads.enrich),
    "imdb": ProviderEnricher(frozenset({"movie", "tv"}), imdb.enrich),
    "amazon": ProviderEnricher(frozenset({"product", "book"}), amazon.enrich),
    "dribbble": ProviderEnricher(frozenset({"design_portfolio"}), dribbble.enrich),
}

# Hostname fragments identifying a provider when no rule named one.
_PROVIDER_HOST_FRAGMENTS: tuple[tuple[str, str], ...] = (
    ("github.com", "github"),
    ("goodreads.com", "goodreads"),
    ("imdb.com", "imdb"),
    ("amazon.", "amazon"),
    ("dribbble.com", "dribbble"),
    ("netflix.com", "netflix"),
    ("youtube.com", "youtube"),
    ("youtu.be", "youtube"),
    ("spotify.com", "spotify"),
)


def detect_provider(hostname: str | None, hint: str | None = None) -> str | None:
    """Provider key for a hostname, preferring an explicit hint."""
    if hint:
        return hint
    host = (hostname or "").lower()
    for fragment, provider in _PROVIDER_HOST_FRAGMENTS:
        if fragment in host:
            return provider
    return None


def get_provider_enricher(provider: str | None, category: str) -> ProviderEnricher | None:
    """Registered enricher for the provider when it applies to the category."""
    if not provider:
        return None
    enricher = PROVIDER_REGISTRY.get(provider)
    if enricher is None or not enricher.applies_to(category):
        return None
    return enricher


def enrich_provider(
    provider: str | None, category: str, raw_map: RawSelectorMap
) -> ProviderEnrichment | None:
    enricher = get_provider_enricher(provider, category)
    if enricher is None:
        return None
    return enricher.enrich(raw_map)


__all__ = [
    "PROVIDER_REGISTRY",
    "ProviderEnricher",
    "ProviderEnrichment",
    "RawSelectorMap",
    "build_raw_selector_map",
    "detect_provider",
    "enrich_provider",
    "get_provider_enricher",
    "merge_facts",
]

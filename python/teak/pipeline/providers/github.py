"""GitHub repository pages."""

import re

from teak.pipeline.providers.common import (
    ProviderEnrichment,
    RawSelectorMap,
    add_fact,
    format_count,
    get_raw_text,
    normalize_whitespace,
)

STARS = "a[href$='/stargazers']"
FORKS = "a[href$='/network/members']"
WATCHERS = "a[href$='/watchers']"
LANGUAGE = "span[itemprop='programmingLanguage']"
UPDATED = "relative-time"

SELECTORS = (STARS, FORKS, WATCHERS, LANGUAGE, UPDATED)


def enrich(raw_map: RawSelectorMap) -> ProviderEnrichment | None:
    stars = format_count(get_raw_text(raw_map, STARS))
    forks = format_count(get_raw_text(raw_map, FORKS))
    watchers = format_count(get_raw_text(raw_map, WATCHERS))
    language = get_raw_text(raw_map, LANGUAGE)
    updated_raw = get_raw_text(raw_map, UPDATED)
    updated = normalize_whitespace(re.sub(r"^on\s+", "", updated_raw or "", flags=re.IGNORECASE))

    facts: list[dict[str, str]] = []
    add_fact(facts, "Stars", stars)
    add_fact(facts, "Forks", forks)
    add_fact(facts, "Watchers", watchers)
    add_fact(facts, "Language", language)
    add_fact(facts, "Updated", updated)
    if not facts:
        return None

    return ProviderEnrichment(
        facts=facts,
        raw={
            "stars": stars,
            "forks": forks,
            "watchers": watchers,
            "language": language,
            "updated": updated_raw,
        },
    )

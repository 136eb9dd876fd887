"""Goodreads book pages (Open Graph ``books:*`` tags)."""

from teak.pipeline.providers.common import (
    ProviderEnrichment,
    RawSelectorMap,
    add_fact,
    format_count,
    format_rating,
    get_meta_content,
)

RATING_AVERAGE = "meta[property='books:rating:average']"
RATING_COUNT = "meta[property='books:rating:count']"
ISBN = "meta[property='books:isbn']"

SELECTORS = (RATING_AVERAGE, RATING_COUNT, ISBN)


def enrich(raw_map: RawSelectorMap) -> ProviderEnrichment | None:
    average = format_rating(get_meta_content(raw_map, RATING_AVERAGE))
    count = format_count(get_meta_content(raw_map, RATING_COUNT))
    isbn = get_meta_content(raw_map, ISBN)

    facts: list[dict[str, str]] = []
    add_fact(facts, "Average rating", f"{average} / 5" if average else None)
    add_fact(facts, "Ratings", count)
    add_fact(facts, "ISBN", isbn)
    if not facts:
        return None

    return ProviderEnrichment(
        facts=facts,
        raw={"ratingAverage": average, "ratingCount": count, "isbn": isbn},
    )

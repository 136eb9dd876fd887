"""IMDb title pages."""

from teak.pipeline.providers.common import (
    ProviderEnrichment,
    RawSelectorMap,
    add_fact,
    format_count,
    format_date,
    format_rating,
    get_meta_content,
    get_raw_text,
)

RATING_META = "meta[name='imdb:rating']"
VOTES_META = "meta[name='imdb:votes']"
RELEASE_DATE = "meta[property='video:release_date']"
RATING_SCORE = "span[data-testid='hero-rating-bar__aggregate-rating__score']"
RUNTIME = "span[data-testid='title-techspec_runtime'] span"

SELECTORS = (RATING_META, VOTES_META, RELEASE_DATE, RATING_SCORE, RUNTIME)


def enrich(raw_map: RawSelectorMap) -> ProviderEnrichment | None:
    rating = format_rating(
        get_meta_content(raw_map, RATING_META) or get_raw_text(raw_map, RATING_SCORE)
    )
    votes = format_count(get_meta_content(raw_map, VOTES_META))
    runtime = get_raw_text(raw_map, RUNTIME)
    release_raw = get_meta_content(raw_map, RELEASE_DATE)
    released = format_date(release_raw)

    facts: list[dict[str, str]] = []
    add_fact(facts, "IMDb rating", f"{rating} / 10" if rating else None)
    add_fact(facts, "Votes", votes)
    add_fact(facts, "Runtime", runtime)
    add_fact(facts, "Released", released)
    if not facts:
        return None

    return ProviderEnrichment(
        facts=facts,
        raw={"rating": rating, "votes": votes, "runtime": runtime, "releaseDate": release_raw},
    )

"""JSON-LD structured data extraction for link categorization.

Entities are read from ``<script type="application/ld+json">`` blocks
(top-level arrays and ``@graph`` containers are flattened), de-duplicated on
their ``@type`` / ``name`` / ``url`` and capped at STRUCTURED_DATA_MAX_ITEMS.
Each category then turns the first entity of a matching schema.org type into
display facts.
"""

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from lxml import etree
from lxml.html import document_fromstring

from teak.logging import get_logger
from teak.pipeline.providers.common import add_fact, format_date

logger = get_logger(__name__)

STRUCTURED_DATA_MAX_ITEMS = 8

STRUCTURED_DATA_FIELDS = (
    "name",
    "url",
    "image",
    "@type",
    "sameAs",
    "datePublished",
    "dateModified",
    "startDate",
    "endDate",
    "author",
    "creator",
    "publisher",
    "headline",
    "description",
    "aggregateRating",
    "recipeIngredient",
    "recipeInstructions",
    "offers",
    "genre",
    "keywords",
    "duration",
    "performer",
    "byArtist",
)

_DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$", re.IGNORECASE)


@dataclass
class StructuredEnrichment:
    facts: list[dict[str, str]] = field(default_factory=list)
    raw: dict[str, Any] | None = None
    image_url: str | None = None


def _as_list(value: Any) -> list[Any]:
    if not value:
        return []
    return value if isinstance(value, list) else [value]


def pick_fields(entity: dict[str, Any], fields: tuple[str, ...] = STRUCTURED_DATA_FIELDS) -> dict:
    return {name: entity[name] for name in fields if entity.get(name) is not None}


def parse_structured_data(html: str) -> list[dict[str, Any]]:
    """Return up to STRUCTURED_DATA_MAX_ITEMS distinct JSON-LD entities."""
    if not html or not html.strip():
        return []
    try:
        doc = document_fromstring(html)
    except (etree.ParserError, ValueError):
        return []

    entities: list[dict[str, Any]] = []
    seen: set[str] = set()
    for script in doc.xpath("//script[@type='application/ld+json']"):
        text = (script.text or "").strip()
        if not text:
            continue
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("structured_data_parse_failed", error=str(e))
            continue

        candidates: list[Any] = []
        for item in _as_list(parsed):
            if isinstance(item, dict) and isinstance(item.get("@graph"), list):
                candidates.extend(item["@graph"])
            else:
                candidates.append(item)

        for item in candidates:
            if not isinstance(item, dict):
                continue
            fingerprint = json.dumps(pick_fields(item, ("@type", "name", "url")), sort_keys=True)
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            entities.append(item)
            if len(entities) >= STRUCTURED_DATA_MAX_ITEMS:
                return entities
    return entities


def find_by_type(entities: list[dict[str, Any]], types: tuple[str, ...]) -> dict | None:
    wanted = {name.lower() for name in types}
    for entity in entities:
        entity_types = {
            entry.lower() for entry in _as_list(entity.get("@type")) if isinstance(entry, str)
        }
        if entity_types & wanted:
            return entity
    return None


def string_array(value: Any) -> list[str]:
    """Names from a string, a {"name"} object, or a list of either."""
    result = []
    for entry in _as_list(value):
        if isinstance(entry, str):
            result.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
            result.append(entry["name"])
    return result


def value_to_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, dict) and value.get("name"):
        return str(value["name"])
    return None


def normalize_image(value: Any) -> str | None:
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        first = value[0]
        if isinstance(first, str):
            return first
        if isinstance(first, dict) and first.get("url"):
            return first["url"]
        return None
    if isinstance(value, dict) and value.get("url"):
        return value["url"]
    return None


def format_duration(value: Any) -> str | None:
    """Format an ISO-8601 time duration ("PT1H2M") as "1h 2m"."""
    if not isinstance(value, str):
        return None
    match = _DURATION_RE.match(value.strip())
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{seconds}s")
    return " ".join(parts) or None


def _rating(entity: dict[str, Any]) -> dict[str, Any]:
    rating = entity.get("aggregateRating")
    return rating if isinstance(rating, dict) else {}


def _rating_count(entity: dict[str, Any]) -> str | None:
    rating = _rating(entity)
    return value_to_text(rating.get("ratingCount") or rating.get("reviewCount"))


def _book(entity: dict, facts: list) -> None:
    add_fact(facts, "Authors", ", ".join(string_array(entity.get("author"))))
    add_fact(facts, "Rating", value_to_text(_rating(entity).get("ratingValue")))
    add_fact(facts, "Reviews", _rating_count(entity))
    length = entity.get("numberOfPages") or entity.get("bookFormat")
    add_fact(facts, "Length", value_to_text(length))
    add_fact(facts, "Published", format_date(value_to_text(entity.get("datePublished"))))


def _movie(entity: dict, facts: list) -> None:
    add_fact(facts, "Rating", value_to_text(_rating(entity).get("ratingValue")))
    add_fact(facts, "Votes", _rating_count(entity))
    released = entity.get("datePublished") or entity.get("dateCreated")
    add_fact(facts, "Release", format_date(value_to_text(released)))


def _tv(entity: dict, facts: list) -> None:
    seasons = entity.get("numberOfSeasons") or entity.get("seasonNumber")
    add_fact(facts, "Seasons", value_to_text(seasons))
    add_fact(facts, "Episodes", value_to_text(entity.get("numberOfEpisodes")))
    aired = entity.get("datePublished") or entity.get("dateCreated")
    add_fact(facts, "First aired", format_date(value_to_text(aired)))


def _article(entity: dict, facts: list) -> None:
    published = format_date(value_to_text(entity.get("datePublished")))
    updated = format_date(value_to_text(entity.get("dateModified")))
    add_fact(facts, "Published", published)
    if updated != published:
        add_fact(facts, "Updated", updated)


def _podcast(entity: dict, facts: list) -> None:
    add_fact(facts, "Duration", format_duration(entity.get("duration")))
    series = value_to_text(entity.get("partOfSeries")) or value_to_text(entity.get("isPartOf"))
    add_fact(facts, "Series", series)


def _music(entity: dict, facts: list) -> None:
    artist = entity.get("byArtist") or entity.get("creator") or entity.get("performer")
    add_fact(facts, "Artist", ", ".join(string_array(artist)))
    add_fact(facts, "Length", format_duration(entity.get("duration")))


def _product(entity: dict, facts: list) -> None:
    offers = entity.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if isinstance(offers, dict) and offers.get("price") is not None:
        currency = offers.get("priceCurrency") or ""
        add_fact(facts, "Price", f"{offers['price']} {currency}".strip())
    add_fact(facts, "Brand", value_to_text(entity.get("brand")))


def _recipe(entity: dict, facts: list) -> None:
    add_fact(facts, "Servings", value_to_text(entity.get("recipeYield")))
    timing = [
        f"{label} {duration}"
        for label, key in (("Prep", "prepTime"), ("Cook", "cookTime"), ("Total", "totalTime"))
        if (duration := format_duration(entity.get(key)))
    ]
    add_fact(facts, "Timing", " · ".join(timing))
    ingredients = string_array(entity.get("recipeIngredient"))
    add_fact(facts, "Ingredients", ", ".join(ingredients[:6]))


def _course(entity: dict, facts: list) -> None:
    provider = value_to_text(entity.get("provider")) or value_to_text(entity.get("publisher"))
    add_fact(facts, "Provider", provider)


def _research(entity: dict, facts: list) -> None:
    add_fact(facts, "Authors", ", ".join(string_array(entity.get("author"))))
    add_fact(facts, "Published", format_date(value_to_text(entity.get("datePublished"))))


def _event(entity: dict, facts: list) -> None:
    start = format_date(value_to_text(entity.get("startDate")))
    end = format_date(value_to_text(entity.get("endDate")))
    dates = f"{start} → {end}" if start and end and start != end else start or end
    add_fact(facts, "Dates", dates)
    location = entity.get("location")
    location_name = location.get("name") if isinstance(location, dict) else None
    add_fact(facts, "Location", value_to_text(location_name) or value_to_text(location))


def _software(entity: dict, facts: list) -> None:
    add_fact(facts, "Platform", value_to_text(entity.get("operatingSystem")))
    add_fact(facts, "Category", value_to_text(entity.get("applicationCategory")))


def _design(entity: dict, facts: list) -> None:
    creator = value_to_text(entity.get("author")) or value_to_text(entity.get("creator"))
    add_fact(facts, "Creator", creator)


_Extractor = Callable[[dict, list], None]

CATEGORY_EXTRACTORS: dict[str, tuple[tuple[str, ...], _Extractor]] = {
    "book": (("Book",), _book),
    "movie": (("Movie", "VideoObject", "CreativeWork"), _movie),
    "tv": (("TVSeries", "TVEpisode", "VideoObject"), _tv),
    "article": (("NewsArticle", "Article", "BlogPosting"), _article),
    "news": (("NewsArticle", "Article", "BlogPosting"), _article),
    "podcast": (("PodcastEpisode", "PodcastSeries", "AudioObject"), _podcast),
    "music": (("MusicRecording", "MusicAlbum", "MusicPlaylist"), _music),
    "product": (("Product", "Offer"), _product),
    "recipe": (("Recipe",), _recipe),
    "course": (("Course", "EducationalOccupationalProgram"), _course),
    "research": (("ScholarlyArticle", "ResearchArticle", "Report"), _research),
    "event": (("Event", "MusicEvent", "BusinessEvent"), _event),
    "software": (("SoftwareApplication", "SoftwareSourceCode"), _software),
    "design_portfolio": (("CreativeWork", "CollectionPage", "Portfolio"), _design),
}


def enrich_with_structured_data(
    category: str, entities: list[dict[str, Any]]
) -> StructuredEnrichment | None:
    """Build category facts from the first entity of a matching type.

    Returns:
        StructuredEnrichment, or None when the category has no extractor or
        no entity matches.
    """
    entry = CATEGORY_EXTRACTORS.get(category)
    if entry is None:
        return None
    types, extractor = entry
    entity = find_by_type(entities, types)
    if entity is None:
        return None

    facts: list[dict[str, str]] = []
    extractor(entity, facts)
    return StructuredEnrichment(
        facts=facts,
        raw=pick_fields(entity),
        image_url=normalize_image(entity.get("image")),
    )

"""Categorize stage for link cards.

Resolves the link category from the URL, then gathers facts from two
sources: the provider enricher registered for the detected provider, and
JSON-LD structured data on the page. Only ``metadata.linkCategory`` is
written; AI-owned fields are left alone.
"""

from datetime import timedelta
from typing import Any
from urllib.parse import urlparse

from teak.db.models import Card, MetadataStatus
from teak.logging import get_logger
from teak.pipeline.context import PipelineContext
from teak.pipeline.link_category import resolve_link_category
from teak.pipeline.link_metadata.fetch import LinkFetchError
from teak.pipeline.link_metadata.parsing import collect_selector_map
from teak.pipeline.providers import (
    build_raw_selector_map,
    detect_provider,
    enrich_provider,
    get_provider_enricher,
    merge_facts,
)
from teak.pipeline.results import NotReady, Ready, StageResult
from teak.pipeline.structured_data import enrich_with_structured_data, parse_structured_data
from teak.services.url_normalize import normalize_url_for_cache

logger = get_logger(__name__)

CATEGORY_REUSE_WINDOW = timedelta(days=30)
STRUCTURED_DATA_HTML_LIMIT = 250_000


def _reusable_category(card: Card, source_url: str, now_ms: int) -> dict[str, Any] | None:
    existing = (card.card_metadata or {}).get("linkCategory")
    if not isinstance(existing, dict):
        return None
    fetched_at = existing.get("fetchedAt")
    if not isinstance(fetched_at, int | float):
        return None
    if now_ms - fetched_at > CATEGORY_REUSE_WINDOW.total_seconds() * 1000:
        return None
    if normalize_url_for_cache(existing.get("sourceUrl")) != normalize_url_for_cache(source_url):
        return None
    return existing


def run_categorization(card: Card, ctx: PipelineContext) -> StageResult:
    """Categorize a link card and collect display facts.

    Returns:
        NotReady while link metadata is still pending; Ready otherwise.
        Page fetch failures only drop the facts, they never fail the stage.
    """
    if card.metadata_status == MetadataStatus.pending.value:
        return NotReady("link metadata pending")

    preview = card.link_preview or {}
    source_url = card.url
    if not source_url and preview.get("status") == "success":
        source_url = preview.get("finalUrl") or preview.get("url")
    if not source_url:
        return NotReady("link url missing")

    now_ms = ctx.now_ms()
    existing = _reusable_category(card, source_url, now_ms)
    if existing is not None:
        logger.info("link_category_reused", card_id=str(card.id), category=existing["category"])
        return Ready(
            confidence=float(existing.get("confidence") or 1.0),
            summary={"category": existing["category"], "reused": True},
        )

    resolution = resolve_link_category(source_url)
    category = resolution.category
    hostname = (urlparse(source_url).hostname or "").lower()
    provider = detect_provider(hostname, resolution.provider)
    enricher = get_provider_enricher(provider, category)

    raw_map = build_raw_selector_map(preview.get("raw"))
    entities: list[dict[str, Any]] = []
    should_fetch = (enricher is not None and not raw_map) or category != "other"
    if should_fetch:
        try:
            page = ctx.link_fetcher.fetch_page(source_url)
        except LinkFetchError as e:
            logger.warning(
                "link_category_fetch_failed",
                card_id=str(card.id),
                error_type=e.error_type,
                category=category,
            )
        else:
            entities = parse_structured_data(page.html[:STRUCTURED_DATA_HTML_LIMIT])
            if enricher is not None and not raw_map:
                raw_map = collect_selector_map(page.html)

    facts: list[dict[str, str]] = []
    image_url: str | None = None
    raw: dict[str, Any] = {}

    if enricher is not None and raw_map:
        enrichment = enrich_provider(provider, category, raw_map)
        if enrichment is not None:
            merge_facts(facts, enrichment.facts)
            image_url = enrichment.image_url
            raw["provider"] = {"name": provider, **(enrichment.raw or {})}

    structured = enrich_with_structured_data(category, entities)
    if structured is not None:
        merge_facts(facts, structured.facts)
        image_url = image_url or structured.image_url
        if structured.raw:
            raw["structured"] = structured.raw

    link_category: dict[str, Any] = {
        "category": category,
        "confidence": resolution.confidence,
        "reason": resolution.reason,
        "detectedProvider": provider,
        "fetchedAt": now_ms,
        "sourceUrl": source_url,
        "raw": raw or None,
    }
    if image_url:
        link_category["imageUrl"] = image_url
    if facts:
        link_category["facts"] = facts

    logger.info(
        "link_categorized",
        card_id=str(card.id),
        category=category,
        reason=resolution.reason,
        provider=provider,
        facts_count=len(facts),
    )
    return Ready(
        confidence=resolution.confidence,
        metadata_updates={"linkCategory": link_category},
        summary={
            "category": category,
            "confidence": resolution.confidence,
            "reason": resolution.reason,
            "provider": provider,
            "facts_count": len(facts),
        },
    )

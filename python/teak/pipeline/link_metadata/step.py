"""Link metadata step: fetch the page and store a sanitized preview.

Runs for link cards whose metadataStatus is pending. A success writes the
preview under ``metadata.linkPreview`` and mirrors title/description into
their columns. The preview image is copied into blob storage so cards keep
rendering after the origin changes; the previous copy is deleted only once
the new reference has committed.
"""

from typing import Any

from teak.db.models import Card, MetadataStatus
from teak.logging import get_logger
from teak.pipeline.context import PipelineContext
from teak.pipeline.link_metadata.fetch import LinkFetchError
from teak.pipeline.link_metadata.parsing import (
    IMAGE_STORAGE_FIELDS,
    SCREENSHOT_FIELDS,
    build_error_preview,
    build_success_preview,
    extract_link_preview,
    normalize_link_url,
)
from teak.pipeline.results import Failed, Ready, StageResult
from teak.storage import StorageError, build_card_asset_path

logger = get_logger(__name__)


def _store_preview_image(
    card: Card, image_url: str, ctx: PipelineContext
) -> dict[str, Any] | None:
    """Download, validate and upload the preview image; None on any failure."""
    if not image_url.lower().startswith(("http://", "https://")):
        return None
    try:
        image = ctx.link_fetcher.fetch_image(image_url)
    except LinkFetchError as e:
        logger.warning(
            "link_preview_image_failed", card_id=str(card.id), error_type=e.error_type
        )
        return None

    path = build_card_asset_path(card.id, "preview-image", image.extension)
    try:
        ctx.storage.upload_bytes(path, image.data, content_type=image.content_type)
    except StorageError as e:
        logger.warning("link_preview_image_upload_failed", card_id=str(card.id), error=e.message)
        return None

    return {
        "imageStorageId": path,
        "imageWidth": image.width,
        "imageHeight": image.height,
        "imageUpdatedAt": ctx.now_ms(),
    }


def run_link_metadata(card: Card, ctx: PipelineContext) -> StageResult:
    """Fetch link metadata for a card.

    Returns:
        Ready with the preview patch; Failed with an error preview patch
        (retryable for timeouts, network errors, 5xx and 429).
    """
    previous = card.link_preview or {}

    if not card.url or not card.url.strip():
        error_preview = build_error_preview(
            "", "invalid_url", "Card has no URL", ctx.now_ms(), previous
        )
        return Failed(
            error="Card has no URL",
            retryable=False,
            updates={"metadata_status": MetadataStatus.failed.value},
            metadata_updates={"linkPreview": error_preview},
        )

    url = normalize_link_url(card.url)
    try:
        page = ctx.link_fetcher.fetch_page(url)
    except LinkFetchError as e:
        logger.warning(
            "link_metadata_fetch_failed",
            card_id=str(card.id),
            error_type=e.error_type,
            retryable=e.retryable,
        )
        error_preview = build_error_preview(url, e.error_type, e.message, ctx.now_ms(), previous)
        return Failed(
            error=f"{e.error_type}: {e.message}",
            retryable=e.retryable,
            updates={"metadata_status": MetadataStatus.failed.value},
            metadata_updates={"linkPreview": error_preview},
        )

    parsed = extract_link_preview(page.final_url or url, page.html)
    preview = build_success_preview(url, parsed, ctx.now_ms())

    for key in SCREENSHOT_FIELDS:
        if previous.get(key) is not None:
            preview[key] = previous[key]

    created: tuple[str, ...] = ()
    replaced: tuple[str, ...] = ()
    old_image = previous.get("imageStorageId")
    image_url = preview.get("imageUrl")

    if old_image and image_url and previous.get("imageUrl") == image_url:
        for key in IMAGE_STORAGE_FIELDS:
            if previous.get(key) is not None:
                preview[key] = previous[key]
    else:
        stored = _store_preview_image(card, image_url, ctx) if image_url else None
        if stored:
            preview.update(stored)
            created = (stored["imageStorageId"],)
        if old_image:
            replaced = (old_image,)

    logger.info(
        "link_metadata_fetched",
        card_id=str(card.id),
        has_title=bool(preview.get("title")),
        has_image=bool(preview.get("imageStorageId")),
    )
    return Ready(
        confidence=1.0,
        updates={
            "metadata_status": MetadataStatus.completed.value,
            "metadata_title": preview.get("title"),
            "metadata_description": preview.get("description"),
        },
        metadata_updates={"linkPreview": preview},
        created_blobs=created,
        replaced_blobs=replaced,
        summary={"status": "success", "final_url": preview.get("finalUrl")},
    )

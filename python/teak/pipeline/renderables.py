"""Renderables stage: thumbnails and palette colors for visual cards.

Image cards get a WebP thumbnail (large sources only) and a palette of
dominant colors. Video and document cards complete without a derived asset.
Existing thumbnails and palettes are never recomputed.
"""

from typing import Any

from PIL import UnidentifiedImageError

from teak.db.models import Card, CardType
from teak.logging import get_logger
from teak.pipeline.context import PipelineContext
from teak.pipeline.palette import extract_palette
from teak.pipeline.results import Failed, Ready, StageResult
from teak.pipeline.thumbnail import (
    THUMBNAIL_CONTENT_TYPE,
    needs_thumbnail,
    render_thumbnail,
)
from teak.storage import StorageError, build_card_asset_path

logger = get_logger(__name__)


def _summary(thumbnail_generated: bool, palette_colors: int) -> dict[str, Any]:
    return {"thumbnail_generated": thumbnail_generated, "palette_colors": palette_colors}


def run_renderables(card: Card, ctx: PipelineContext) -> StageResult:
    """Generate derived assets for a card.

    Returns:
        Ready (possibly with no patch); Failed(retryable) when the source
        file cannot be read from storage. Undecodable images are logged and
        still complete.
    """
    if card.type != CardType.image.value:
        logger.info("renderables_skipped", card_id=str(card.id), type=card.type)
        return Ready(summary=_summary(False, 0))

    has_thumbnail = bool(card.thumbnail_path)
    has_palette = bool(card.colors)
    if not card.file_path or (has_thumbnail and has_palette):
        return Ready(summary=_summary(False, 0))

    try:
        data = ctx.storage.get_bytes(card.file_path)
    except StorageError as e:
        logger.warning("renderables_source_unavailable", card_id=str(card.id), error=e.message)
        return Failed(error=e.message, retryable=True)

    updates: dict[str, Any] = {}
    created: tuple[str, ...] = ()
    palette_colors = 0

    try:
        if not has_thumbnail and needs_thumbnail(len(data)):
            thumbnail = render_thumbnail(data)
            path = build_card_asset_path(card.id, "thumbnail", "webp")
            ctx.storage.upload_bytes(path, thumbnail, content_type=THUMBNAIL_CONTENT_TYPE)
            updates["thumbnail_path"] = path
            created = (path,)

        if not has_palette:
            colors = extract_palette(data)
            if colors:
                updates["colors"] = [{"hex": color} for color in colors]
                palette_colors = len(colors)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("renderables_decode_failed", card_id=str(card.id), error=str(e))
    except StorageError as e:
        logger.warning("renderables_upload_failed", card_id=str(card.id), error=e.message)
        return Failed(error=e.message, retryable=True)

    logger.info(
        "renderables_generated",
        card_id=str(card.id),
        thumbnail_generated="thumbnail_path" in updates,
        palette_colors=palette_colors,
    )
    return Ready(
        updates=updates,
        created_blobs=created,
        summary=_summary("thumbnail_path" in updates, palette_colors),
    )

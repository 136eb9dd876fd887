"""Recording externally captured link screenshots."""

from uuid import UUID

from sqlalchemy.orm import Session

from teak.db.models import Card, to_epoch_ms, utcnow
from teak.errors import ApiErrorCode, NotFoundError
from teak.logging import get_logger
from teak.storage import StorageClientBase, StorageError

logger = get_logger(__name__)


def record_link_screenshot(
    db: Session,
    storage: StorageClientBase,
    card_id: UUID,
    path: str,
    *,
    updated_at_ms: int | None = None,
) -> dict:
    """Point a card's link preview at a new screenshot blob.

    The new reference is committed before the previous blob is deleted, so
    a failed delete leaves an orphan blob rather than a dangling reference.

    Raises:
        NotFoundError: If the card does not exist or is deleted.

    Returns:
        The updated link preview.
    """
    card = db.get(Card, card_id)
    if card is None or card.is_deleted:
        raise NotFoundError(ApiErrorCode.E_CARD_NOT_FOUND, "Card not found")

    metadata = card.metadata_dict
    preview = dict(metadata.get("linkPreview") or {})
    previous_path = preview.get("screenshotStorageId")

    preview["screenshotStorageId"] = path
    preview["screenshotUpdatedAt"] = updated_at_ms or to_epoch_ms(utcnow())
    metadata["linkPreview"] = preview
    card.card_metadata = metadata
    card.updated_at = utcnow()
    db.commit()

    if previous_path and previous_path != path:
        try:
            storage.delete_object(previous_path)
        except StorageError as e:
            logger.warning(
                "link_screenshot_cleanup_failed",
                card_id=str(card_id),
                path=previous_path,
                error=e.message,
            )

    logger.info("link_screenshot_recorded", card_id=str(card_id))
    return preview

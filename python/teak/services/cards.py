"""Card-facing service functions used by the API.

Ownership is checked here, before anything is scheduled: a viewer may only
read or regenerate their own cards.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from teak.db.models import Card, utcnow
from teak.errors import ApiErrorCode, ForbiddenError, NotFoundError
from teak.logging import get_logger
from teak.pipeline import processing_status as ps
from teak.pipeline.orchestrator import start_card_processing

logger = get_logger(__name__)


def get_card_for_viewer(db: Session, viewer_id: UUID, card_id: UUID) -> Card:
    """Load a live card owned by the viewer.

    Raises:
        NotFoundError: If the card does not exist or is soft-deleted.
        ForbiddenError: If the card belongs to someone else.
    """
    card = db.get(Card, card_id)
    if card is None or card.is_deleted:
        raise NotFoundError(ApiErrorCode.E_CARD_NOT_FOUND, "Card not found")
    if card.user_id != viewer_id:
        logger.warning("card_access_denied", card_id=str(card_id))
        raise ForbiddenError(message="Card belongs to another user")
    return card


def manually_generate_ai(
    db: Session, viewer_id: UUID, card_id: UUID, *, request_id: str | None = None
) -> dict[str, Any]:
    """Regenerate AI metadata for one of the viewer's cards.

    Clears aiModelMeta, reopens the metadata stage and starts a fresh run
    that supersedes any run already in flight.

    Returns:
        {"workflow_id": str}
    """
    card = get_card_for_viewer(db, viewer_id, card_id)
    card.ai_model_meta = None
    card.updated_at = utcnow()
    db.flush()

    result = start_card_processing(
        db, card.id, reset_stages=[ps.Stage.metadata.value], request_id=request_id
    )
    logger.info("ai_regeneration_requested", card_id=str(card_id), **result)
    return result


def get_processing_status(db: Session, viewer_id: UUID, card_id: UUID) -> dict[str, Any]:
    """Processing status of one of the viewer's cards.

    Returns:
        {"card_id", "workflow_id", "processing_status"}
    """
    card = get_card_for_viewer(db, viewer_id, card_id)
    return {
        "card_id": str(card.id),
        "workflow_id": str(card.workflow_id) if card.workflow_id else None,
        "processing_status": card.processing_status or {},
    }

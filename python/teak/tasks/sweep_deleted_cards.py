"""Retention sweep: permanently remove long soft-deleted cards.

Runs daily from beat. Cards are processed in small batches; each card's
eligibility is re-checked right before deletion (it may have been restored
since the batch was selected). Blobs go first, then the record. A blob that
cannot be deleted is logged and does not block the record or the batch.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teak.celery import celery_app
from teak.config import get_settings
from teak.db.models import Card, CardWorkflowRun, CardWorkflowStep, as_utc, utcnow
from teak.db.session import get_session_factory
from teak.logging import clear_task_context, configure_task_logging, get_logger
from teak.storage import StorageClientBase, StorageError, get_storage_client

logger = get_logger(__name__)

BATCH_SIZE = 10


def card_blob_paths(card: Card) -> list[str]:
    """Every blob a card references: file, thumbnail, preview image, screenshot."""
    preview = card.link_preview or {}
    candidates = [
        card.file_path,
        card.thumbnail_path,
        preview.get("imageStorageId"),
        preview.get("screenshotStorageId"),
    ]
    paths: list[str] = []
    for path in candidates:
        if isinstance(path, str) and path and path not in paths:
            paths.append(path)
    return paths


def _is_eligible(card: Card | None, cutoff: datetime) -> bool:
    if card is None or not card.is_deleted or card.deleted_at is None:
        return False
    return as_utc(card.deleted_at) < cutoff


def _purge_card(db: Session, storage: StorageClientBase, card: Card) -> None:
    for path in card_blob_paths(card):
        try:
            storage.delete_object(path)
        except StorageError as e:
            logger.warning("retention_blob_delete_failed", card_id=str(card.id), error=e.message)

    run_ids = select(CardWorkflowRun.id).where(CardWorkflowRun.card_id == card.id)
    db.execute(delete(CardWorkflowStep).where(CardWorkflowStep.workflow_id.in_(run_ids)))
    db.execute(delete(CardWorkflowRun).where(CardWorkflowRun.card_id == card.id))
    db.delete(card)
    db.commit()


def sweep_deleted_cards_sync(
    db: Session,
    storage: StorageClientBase,
    *,
    now: datetime | None = None,
    retention_days: int | None = None,
) -> int:
    """Delete cards soft-deleted more than ``retention_days`` ago.

    Returns:
        Number of cards permanently removed.
    """
    if retention_days is None:
        retention_days = get_settings().retention_days
    cutoff = (now or utcnow()) - timedelta(days=retention_days)

    removed = 0
    attempted: set[UUID] = set()
    while True:
        query = (
            select(Card.id)
            .where(Card.is_deleted.is_(True), Card.deleted_at < cutoff)
            .order_by(Card.deleted_at)
            .limit(BATCH_SIZE)
        )
        if attempted:
            query = query.where(Card.id.not_in(attempted))
        batch = list(db.scalars(query))
        if not batch:
            break

        for card_id in batch:
            attempted.add(card_id)
            card = db.get(Card, card_id, populate_existing=True)
            if not _is_eligible(card, cutoff):
                logger.info("retention_card_skipped", card_id=str(card_id))
                continue
            try:
                _purge_card(db, storage, card)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("retention_card_delete_failed", card_id=str(card_id), error=str(e))
                continue
            removed += 1

        if len(batch) < BATCH_SIZE:
            break

    logger.info("retention_sweep_completed", removed=removed, retention_days=retention_days)
    return removed


@celery_app.task(bind=True, max_retries=0, name="sweep_deleted_cards")
def sweep_deleted_cards(self) -> dict:
    configure_task_logging(task_name="sweep_deleted_cards", task_id=self.request.id)
    db = get_session_factory()()
    try:
        return {"removed": sweep_deleted_cards_sync(db, get_storage_client())}
    finally:
        db.close()
        clear_task_context()

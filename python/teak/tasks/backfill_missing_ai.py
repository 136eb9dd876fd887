"""Backfill scan for cards that never received AI metadata.

Runs periodically from beat. Cards younger than the grace period are left
alone so a just-created card's own run is not raced. Each card is started
independently; one failure never stops the rest. A card whose run stalled
is joined and its run re-enqueued from the cursor.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teak.celery import celery_app
from teak.config import get_settings
from teak.db.models import Card, utcnow
from teak.db.session import get_session_factory
from teak.errors import ApiError
from teak.logging import clear_task_context, configure_task_logging, get_logger
from teak.pipeline.orchestrator import start_card_processing

logger = get_logger(__name__)


def backfill_missing_ai_sync(
    db: Session,
    *,
    now: datetime | None = None,
    batch_size: int | None = None,
    grace: timedelta | None = None,
) -> dict[str, Any]:
    """Start processing for cards missing aiModelMeta.

    Returns:
        {"enqueued_count": int, "failed_card_ids": [str, ...]}
    """
    settings = get_settings()
    if batch_size is None:
        batch_size = settings.backfill_batch_size
    if grace is None:
        grace = timedelta(minutes=settings.backfill_grace_minutes)
    threshold = (now or utcnow()) - grace

    card_ids = list(
        db.scalars(
            select(Card.id)
            .where(
                Card.is_deleted.is_(False),
                Card.ai_model_meta.is_(None),
                Card.created_at < threshold,
            )
            .order_by(Card.created_at)
            .limit(batch_size)
        )
    )

    enqueued = 0
    failed: list[str] = []
    for card_id in card_ids:
        try:
            result = start_card_processing(db, card_id, now=now)
        except (ApiError, SQLAlchemyError) as e:
            db.rollback()
            logger.warning("backfill_card_failed", card_id=str(card_id), error=str(e))
            failed.append(str(card_id))
            continue
        if result["workflow_id"] is not None:
            enqueued += 1

    logger.info(
        "backfill_missing_ai_completed",
        scanned=len(card_ids),
        enqueued_count=enqueued,
        failed_count=len(failed),
    )
    return {"enqueued_count": enqueued, "failed_card_ids": failed}


@celery_app.task(bind=True, max_retries=0, name="backfill_missing_ai")
def backfill_missing_ai(self) -> dict:
    configure_task_logging(task_name="backfill_missing_ai", task_id=self.request.id)
    db = get_session_factory()()
    try:
        return backfill_missing_ai_sync(db)
    finally:
        db.close()
        clear_task_context()

"""Factories for creating test data.

Each factory commits so the rows are visible to API routes and tasks that
open their own sessions.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from teak.db.models import Card, CardWorkflowRun, utcnow


def create_test_card(
    db: Session,
    *,
    user_id: UUID | None = None,
    type: str = "text",
    content: str = "",
    url: str | None = None,
    file_path: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_at: datetime | None = None,
    **fields: Any,
) -> Card:
    """Create a card with sensible defaults.

    Returns:
        The committed Card.
    """
    now = utcnow()
    card = Card(
        user_id=user_id or uuid4(),
        type=type,
        content=content,
        url=url,
        file_path=file_path,
        card_metadata=metadata,
        created_at=created_at or now,
        updated_at=now,
        **fields,
    )
    db.add(card)
    db.commit()
    return card


def create_image_card(db: Session, storage, data: bytes, **fields: Any) -> Card:
    """Image card whose file is already uploaded to the fake storage."""
    file_path = f"uploads/{uuid4()}.png"
    storage.put_object(file_path, data, "image/png")
    return create_test_card(
        db,
        type="image",
        file_path=file_path,
        metadata={"fileMetadata": {"mimeType": "image/png"}},
        **fields,
    )


def soft_delete(db: Session, card: Card, deleted_at: datetime) -> Card:
    card.is_deleted = True
    card.deleted_at = deleted_at
    db.commit()
    return card


def get_run(db: Session, workflow_id: str | UUID) -> CardWorkflowRun:
    db.expire_all()
    run = db.get(CardWorkflowRun, UUID(str(workflow_id)))
    assert run is not None
    return run

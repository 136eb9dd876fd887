"""SQLAlchemy ORM models for Teak.

Column types are portable (JSON with a JSONB variant, Uuid, timezone-aware
DateTime) so the test suite can run against SQLite while production runs on
PostgreSQL. JSON columns are always reassigned with a fresh dict, never
mutated in place, so change tracking picks every update up.
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# None is stored as SQL NULL so "is_(None)" filters see cleared fields.
JsonType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds."""
    return int(as_utc(value).timestamp() * 1000)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class CardType(str, PyEnum):
    """Kinds of card a user can save."""

    text = "text"
    link = "link"
    image = "image"
    video = "video"
    audio = "audio"
    document = "document"
    palette = "palette"
    quote = "quote"


class MetadataStatus(str, PyEnum):
    """Link preview extraction state."""

    pending = "pending"
    completed = "completed"
    failed = "failed"


class WorkflowStatus(str, PyEnum):
    """Lifecycle of one processing run."""

    running = "running"
    completed = "completed"
    aborted = "aborted"
    superseded = "superseded"


class StepStatus(str, PyEnum):
    """Outcome of one step inside a run."""

    pending = "pending"
    completed = "completed"
    failed = "failed"
    skipped = "skipped"


# =============================================================================
# Models
# =============================================================================


class Card(Base):
    """A saved card and every field the enrichment pipeline manages.

    AI-owned fields: ai_tags, ai_summary, ai_transcript, ai_model_meta.
    Renderable-owned fields: thumbnail_path, colors (palette extraction).
    Link-owned fields: metadata["linkPreview"], metadata["linkCategory"],
    metadata_status, metadata_title, metadata_description.
    """

    __tablename__ = "cards"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default=CardType.text.value)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JsonType, nullable=True)
    colors: Mapped[list[dict[str, Any]] | None] = mapped_column(JsonType, nullable=True)
    is_favorited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    ai_tags: Mapped[list[str] | None] = mapped_column(JsonType, nullable=True)
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_model_meta: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)

    card_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JsonType, nullable=True
    )
    metadata_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    processing_status: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    workflow_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_cards_deleted", "is_deleted", "deleted_at"),
        Index("ix_cards_created_at", "created_at"),
    )

    @property
    def metadata_dict(self) -> dict[str, Any]:
        """A copy of the metadata object (empty when unset)."""
        return dict(self.card_metadata or {})

    @property
    def link_preview(self) -> dict[str, Any] | None:
        return (self.card_metadata or {}).get("linkPreview")

    @property
    def file_metadata(self) -> dict[str, Any] | None:
        return (self.card_metadata or {}).get("fileMetadata")


class CardWorkflowRun(Base):
    """One processing run for a card.

    active_card_id is set only while the run is in flight; the unique index
    makes it impossible to start two concurrent runs for the same card.
    cursor is the index of the next step to execute.
    """

    __tablename__ = "card_workflow_runs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    card_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    active_card_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, unique=True)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=WorkflowStatus.running.value
    )
    cursor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    context: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CardWorkflowStep(Base):
    """Per-step bookkeeping inside a run.

    idempotency_key is "{workflow_id}:{step}" and unique, so an outcome is
    recorded (and applied) at most once per run.
    """

    __tablename__ = "card_workflow_steps"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    workflow_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("card_workflow_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step: Mapped[str] = mapped_column(Text, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=StepStatus.pending.value)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

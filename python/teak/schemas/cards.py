"""Card pipeline request and response schemas."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

# =============================================================================
# Request Schemas
# =============================================================================


class ProcessCardRequest(BaseModel):
    """Body for starting (or restarting) a card's processing run.

    Card create/update collaborators pass the stages an edit invalidated;
    an empty list joins any run already in flight.
    """

    reset_stages: list[str] = Field(default_factory=list, max_length=4)


class AdmissionCheckRequest(BaseModel):
    """Body for an admission check."""

    kind: str = Field(..., min_length=1, max_length=64)
    identifier: str = Field(..., min_length=1, max_length=256)
    count: int = Field(default=1, ge=1, le=1000)


class ScreenshotRecordRequest(BaseModel):
    """A screenshot captured outside the pipeline and already uploaded."""

    path: str = Field(..., min_length=1, max_length=1024)
    updated_at_ms: int | None = Field(default=None, ge=0)


# =============================================================================
# Response Schemas
# =============================================================================


class WorkflowStartOut(BaseModel):
    """workflow_id is None when the card is soft-deleted."""

    workflow_id: UUID | None


class ProcessingStatusOut(BaseModel):
    card_id: UUID
    workflow_id: UUID | None
    processing_status: dict[str, Any]


class AdmissionCheckOut(BaseModel):
    ok: bool
    retry_at: int | None = None

"""Internal service routes.

Not exposed to end users; AuthMiddleware enforces the internal header.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from teak.api.deps import get_db, get_storage
from teak.middleware.request_id import get_request_id_from_request
from teak.pipeline.link_metadata.screenshot import record_link_screenshot
from teak.pipeline.orchestrator import start_card_processing
from teak.responses import success_response
from teak.schemas.cards import (
    AdmissionCheckOut,
    AdmissionCheckRequest,
    ProcessCardRequest,
    ScreenshotRecordRequest,
    WorkflowStartOut,
)
from teak.services.admission import get_admission_limiter
from teak.storage import StorageClientBase

router = APIRouter()


@router.post("/internal/cards/{card_id}/process", status_code=202)
def process_card(
    card_id: UUID,
    body: ProcessCardRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Start the card's processing run, or join the one in flight.

    Called after a card is created or edited.
    """
    result = start_card_processing(
        db,
        card_id,
        reset_stages=body.reset_stages,
        request_id=get_request_id_from_request(request),
    )
    return success_response(WorkflowStartOut(**result).model_dump(mode="json"))


@router.post("/internal/cards/{card_id}/screenshot")
def record_screenshot(
    card_id: UUID,
    body: ScreenshotRecordRequest,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
) -> dict:
    """Attach an uploaded screenshot to the card's link preview."""
    preview = record_link_screenshot(
        db, storage, card_id, body.path, updated_at_ms=body.updated_at_ms
    )
    return success_response({"link_preview": preview})


@router.post("/internal/admission/check")
def admission_check(body: AdmissionCheckRequest) -> dict:
    """Take tokens from a bucket. Denials are data (ok=false), not errors."""
    decision = get_admission_limiter().check(body.kind, body.identifier, body.count)
    return success_response(AdmissionCheckOut(**decision.to_dict()).model_dump(mode="json"))

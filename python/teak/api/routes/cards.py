"""Viewer-facing card routes.

Routes are transport-only: resolve the viewer, call one service function,
wrap the result. Ownership checks live in teak.services.cards.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from teak.api.deps import get_db
from teak.auth.middleware import Viewer, get_viewer
from teak.middleware.request_id import get_request_id_from_request
from teak.responses import success_response
from teak.schemas.cards import ProcessingStatusOut, WorkflowStartOut
from teak.services import cards as cards_service

router = APIRouter()


@router.post("/cards/{card_id}/ai/regenerate", status_code=202)
def regenerate_ai(
    card_id: UUID,
    request: Request,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Clear the card's AI metadata and start a fresh run for it.

    Returns 403 for another user's card and 404 for a missing or deleted one.
    """
    result = cards_service.manually_generate_ai(
        db, viewer.user_id, card_id, request_id=get_request_id_from_request(request)
    )
    return success_response(WorkflowStartOut(**result).model_dump(mode="json"))


@router.get("/cards/{card_id}/processing-status")
def get_processing_status(
    card_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = cards_service.get_processing_status(db, viewer.user_id, card_id)
    return success_response(ProcessingStatusOut(**result).model_dump(mode="json"))

"""Per-card processing status state machine.

processingStatus maps a stage name to an entry:

    {"status": "pending" | "completed" | "failed",
     "confidence": float (completed only),
     "completedAt": epoch ms (completed and failed),
     "error": str (failed only)}

A stage only ever moves pending -> completed or pending -> failed. Going
back to pending is a reset, which callers must request explicitly through
reset_stages().
"""

from collections.abc import Iterable
from enum import Enum
from typing import Any

from teak.db.models import CardType


class Stage(str, Enum):
    """Enrichment stages in execution order."""

    classify = "classify"
    categorize = "categorize"
    metadata = "metadata"
    renderables = "renderables"


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.classify,
    Stage.categorize,
    Stage.metadata,
    Stage.renderables,
)

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"

RENDERABLE_TYPES = frozenset({CardType.image.value, CardType.video.value, CardType.document.value})


class InvalidStageTransition(Exception):
    """Raised when a stage entry would move anywhere but out of pending."""

    def __init__(self, stage: str, current: str | None, target: str):
        self.stage = stage
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition for stage '{stage}': {current} -> {target}")


def stage_pending() -> dict[str, Any]:
    return {"status": PENDING}


def stage_completed(now_ms: int, confidence: float = 1.0) -> dict[str, Any]:
    return {
        "status": COMPLETED,
        "confidence": max(0.0, min(float(confidence), 1.0)),
        "completedAt": now_ms,
    }


def stage_failed(now_ms: int, error: str) -> dict[str, Any]:
    return {"status": FAILED, "completedAt": now_ms, "error": error}


def should_categorize(card_type: str) -> bool:
    """Only link cards carry a URL worth categorizing."""
    return card_type == CardType.link.value


def should_generate_renderables(card_type: str) -> bool:
    """Cards with a visual or derivable asset."""
    return card_type in RENDERABLE_TYPES


def is_stage_applicable(stage: Stage | str, card_type: str) -> bool:
    stage = Stage(stage)
    if stage == Stage.categorize:
        return should_categorize(card_type)
    if stage == Stage.renderables:
        return should_generate_renderables(card_type)
    return True


def build_initial_processing_status(card_type: str, now_ms: int) -> dict[str, Any]:
    """Fresh status for a card that has never been processed.

    Applicable stages start pending. Stages that can never run for this type
    are completed up front with full confidence so progress reads as done.
    """
    status: dict[str, Any] = {}
    for stage in STAGE_ORDER:
        if is_stage_applicable(stage, card_type):
            status[stage.value] = stage_pending()
        else:
            status[stage.value] = stage_completed(now_ms, 1.0)
    return status


def get_stage_status(status: dict[str, Any] | None, stage: Stage | str) -> str | None:
    """Return the status string for a stage, or None when no entry exists."""
    entry = (status or {}).get(Stage(stage).value)
    if not entry:
        return None
    return entry.get("status")


def transition(
    status: dict[str, Any] | None, stage: Stage | str, entry: dict[str, Any]
) -> dict[str, Any]:
    """Return a new status mapping with ``stage`` moved to ``entry``.

    Raises:
        InvalidStageTransition: If the stage is not currently pending, or the
            target is not completed/failed.
    """
    stage = Stage(stage)
    current = get_stage_status(status, stage)
    target = entry.get("status")
    if current != PENDING or target not in (COMPLETED, FAILED):
        raise InvalidStageTransition(stage.value, current, str(target))

    updated = dict(status or {})
    updated[stage.value] = dict(entry)
    return updated


def reset_stages(status: dict[str, Any] | None, stages: Iterable[Stage | str]) -> dict[str, Any]:
    """Return a new status mapping with the given stages reopened as pending."""
    updated = dict(status or {})
    for stage in stages:
        updated[Stage(stage).value] = stage_pending()
    return updated


def failed_stages(status: dict[str, Any] | None) -> list[Stage]:
    return [stage for stage in STAGE_ORDER if get_stage_status(status, stage) == FAILED]

"""Card processing orchestrator.

A run walks a card through a fixed sequence of steps:

    classify -> link_metadata -> categorize -> metadata -> renderables

link_metadata is an internal prerequisite for link cards and has no entry in
processingStatus; the other four steps are stages of the same name.

The run persists a cursor (index of the next step) and one row per step
keyed by ``"{workflow_id}:{step}"``. ``advance_workflow`` executes exactly
one step and commits its outcome before returning, so a worker crash
replays at most the step that was in flight, and an outcome recorded once is
never applied twice.

Results are applied only while the run is still the card's current
workflow. A run that lost that race drops its results and deletes any blobs
the step created. A card deleted mid-run aborts the run without touching
its stage statuses.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teak.config import Environment, get_settings
from teak.db.models import (
    Card,
    CardWorkflowRun,
    CardWorkflowStep,
    StepStatus,
    WorkflowStatus,
    as_utc,
    to_epoch_ms,
    utcnow,
)
from teak.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from teak.logging import get_logger, set_pipeline_context
from teak.pipeline import processing_status as ps
from teak.pipeline.ai_metadata import run_ai_metadata
from teak.pipeline.categorization import run_categorization
from teak.pipeline.classification import run_classification
from teak.pipeline.context import PipelineContext
from teak.pipeline.link_metadata.step import run_link_metadata
from teak.pipeline.policies import STEP_RETRY_POLICIES
from teak.pipeline.renderables import run_renderables
from teak.pipeline.results import Failed, NotReady, Ready, StageResult
from teak.storage import StorageClientBase, StorageError

logger = get_logger(__name__)

STEP_ORDER: tuple[str, ...] = (
    "classify",
    "link_metadata",
    "categorize",
    "metadata",
    "renderables",
)

STEP_RUNNERS: dict[str, Callable[[Card, PipelineContext], StageResult]] = {
    "classify": lambda card, ctx: run_classification(card),
    "link_metadata": run_link_metadata,
    "categorize": run_categorization,
    "metadata": run_ai_metadata,
    "renderables": run_renderables,
}

# Card columns a stage result may patch.
UPDATABLE_FIELDS = frozenset(
    {
        "type",
        "url",
        "colors",
        "thumbnail_path",
        "metadata_status",
        "metadata_title",
        "metadata_description",
        "ai_tags",
        "ai_summary",
        "ai_transcript",
        "ai_model_meta",
    }
)

FINISHED_STEP_STATUSES = frozenset(
    {StepStatus.completed.value, StepStatus.failed.value, StepStatus.skipped.value}
)


@dataclass(frozen=True)
class AdvanceOutcome:
    """What the caller should do after one advance.

    kind is one of: continue (run the next step now), retry (run the same
    step again after ``delay_s``), done, aborted, stale.
    """

    kind: str
    delay_s: float = 0.0
    step: str | None = None


# =============================================================================
# Starting runs
# =============================================================================


def _active_run(db: Session, card_id: UUID) -> CardWorkflowRun | None:
    return db.scalar(select(CardWorkflowRun).where(CardWorkflowRun.active_card_id == card_id))


def _validate_stages(stages: list[str]) -> list[ps.Stage]:
    valid = []
    for stage in stages:
        try:
            valid.append(ps.Stage(stage))
        except ValueError:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_STAGE, f"Unknown stage: {stage}"
            ) from None
    return valid


def enqueue_workflow_step(
    workflow_id: UUID | str, *, countdown: float = 0.0, request_id: str | None = None
) -> bool:
    """Enqueue the next step of a run on the pipeline queue.

    Skipped in the test environment, where tests drive runs inline.

    Returns:
        True if the task was enqueued, False otherwise.
    """
    if get_settings().teak_env == Environment.TEST:
        logger.debug("skipping_task_enqueue", reason="test_environment")
        return False

    try:
        from teak.tasks.card_pipeline import run_card_pipeline

        run_card_pipeline.apply_async(
            args=[str(workflow_id)],
            kwargs={"request_id": request_id},
            countdown=countdown,
            queue="pipeline",
        )
    except Exception as e:
        # The run stays at its cursor; resume_stalled_runs picks it up once it stalls.
        logger.warning("pipeline_enqueue_failed", workflow_id=str(workflow_id), error=str(e))
        return False
    return True


def _stall_timeout() -> timedelta:
    return timedelta(minutes=get_settings().pipeline_stall_minutes)


def is_stalled(
    run: CardWorkflowRun, now: datetime | None = None, stall_after: timedelta | None = None
) -> bool:
    """Whether an in-flight run has gone without progress past the stall timeout.

    Every advance and every resume touches ``updated_at``; the timeout is well
    above the longest retry delay, so a run waiting on a countdown never
    counts as stalled.
    """
    if run.status != WorkflowStatus.running.value:
        return False
    stall_after = stall_after if stall_after is not None else _stall_timeout()
    return as_utc(run.updated_at) < (now or utcnow()) - stall_after


def resume_run(
    db: Session,
    run: CardWorkflowRun,
    *,
    now: datetime | None = None,
    request_id: str | None = None,
) -> bool:
    """Re-enqueue a run at its persisted cursor.

    ``updated_at`` is touched first so repeated triggers inside one stall
    window enqueue at most once. A duplicate message is harmless: finished
    steps are never re-applied.

    Returns:
        True if the task was enqueued.
    """
    run.updated_at = now or utcnow()
    db.commit()
    logger.info(
        "pipeline_run_resumed",
        card_id=str(run.card_id),
        workflow_id=str(run.id),
        cursor=run.cursor,
    )
    return enqueue_workflow_step(run.id, request_id=request_id)


def resume_stalled_runs(
    db: Session,
    *,
    now: datetime | None = None,
    stall_after: timedelta | None = None,
    limit: int = 100,
) -> dict[str, Any]:
    """Re-enqueue every in-flight run that has stopped making progress.

    Covers runs whose step message was lost: a failed enqueue, a worker that
    died after acking, or a task that raised.

    Returns:
        {"resumed_count": int, "workflow_ids": [str, ...]}
    """
    now = now or utcnow()
    stall_after = stall_after if stall_after is not None else _stall_timeout()
    runs = db.scalars(
        select(CardWorkflowRun)
        .where(
            CardWorkflowRun.status == WorkflowStatus.running.value,
            CardWorkflowRun.active_card_id.is_not(None),
            CardWorkflowRun.updated_at < now - stall_after,
        )
        .order_by(CardWorkflowRun.updated_at)
        .limit(limit)
    ).all()

    workflow_ids = []
    for run in runs:
        resume_run(db, run, now=now)
        workflow_ids.append(str(run.id))

    if workflow_ids:
        logger.info("stalled_runs_resumed", resumed_count=len(workflow_ids))
    return {"resumed_count": len(workflow_ids), "workflow_ids": workflow_ids}


def start_card_processing(
    db: Session,
    card_id: UUID,
    *,
    reset_stages: list[str] | None = None,
    enqueue: bool = True,
    request_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Start (or join) the processing run for a card.

    Without ``reset_stages`` this is idempotent: while a run is in flight its
    id is returned and nothing else changes, except that a run which has
    made no progress for ``PIPELINE_STALL_MINUTES`` is re-enqueued at its
    cursor. With ``reset_stages`` the named stages are reopened and any
    in-flight run is superseded.

    Raises:
        NotFoundError: If the card does not exist.
        InvalidRequestError: If a reset stage name is unknown.

    Returns:
        {"workflow_id": str | None}; None for soft-deleted cards.
    """
    stages = _validate_stages(reset_stages or [])

    card = db.get(Card, card_id)
    if card is None:
        raise NotFoundError(ApiErrorCode.E_CARD_NOT_FOUND, "Card not found")
    if card.is_deleted:
        logger.info("pipeline_start_skipped_deleted", card_id=str(card_id))
        return {"workflow_id": None}

    now = now or utcnow()
    active = _active_run(db, card.id)
    if active is not None and not stages:
        logger.info("pipeline_already_running", card_id=str(card_id), workflow_id=str(active.id))
        if enqueue and is_stalled(active, now):
            resume_run(db, active, now=now, request_id=request_id)
        return {"workflow_id": str(active.id)}

    if active is not None:
        active.status = WorkflowStatus.superseded.value
        active.active_card_id = None
        active.finished_at = now
        active.updated_at = now
        db.flush()
        logger.info("pipeline_run_superseded", card_id=str(card_id), workflow_id=str(active.id))

    status = card.processing_status or ps.build_initial_processing_status(
        card.type, to_epoch_ms(now)
    )
    status = ps.reset_stages(status, ps.failed_stages(status))
    status = ps.reset_stages(status, stages)

    run = CardWorkflowRun(
        card_id=card.id,
        active_card_id=card.id,
        status=WorkflowStatus.running.value,
        cursor=0,
        context={"reset_stages": [stage.value for stage in stages], "results": {}},
        created_at=now,
        updated_at=now,
    )
    db.add(run)
    try:
        db.flush()
    except IntegrityError:
        # Another trigger started a run between our lookup and insert.
        db.rollback()
        active = _active_run(db, card_id)
        if active is None:
            raise
        return {"workflow_id": str(active.id)}

    card.processing_status = status
    card.workflow_id = run.id
    card.updated_at = now
    db.commit()

    logger.info(
        "pipeline_run_started",
        card_id=str(card.id),
        workflow_id=str(run.id),
        reset_stages=[stage.value for stage in stages],
    )
    if enqueue:
        enqueue_workflow_step(run.id, request_id=request_id)
    return {"workflow_id": str(run.id)}


# =============================================================================
# Advancing runs
# =============================================================================


def _get_step_row(db: Session, run: CardWorkflowRun, step: str) -> CardWorkflowStep:
    key = f"{run.id}:{step}"
    row = db.scalar(select(CardWorkflowStep).where(CardWorkflowStep.idempotency_key == key))
    if row is None:
        row = CardWorkflowStep(workflow_id=run.id, step=step, idempotency_key=key)
        db.add(row)
        db.flush()
    return row


def _finish_run(run: CardWorkflowRun, status: WorkflowStatus, result: dict | None = None) -> None:
    now = utcnow()
    run.status = status.value
    run.active_card_id = None
    run.finished_at = now
    run.updated_at = now
    if result is not None:
        run.result = result


def _record_step_result(run: CardWorkflowRun, step: str, summary: dict[str, Any]) -> None:
    context = dict(run.context or {})
    results = dict(context.get("results") or {})
    results[step] = summary
    context["results"] = results
    run.context = context


def _delete_blobs(storage: StorageClientBase, paths: tuple[str, ...], reason: str) -> None:
    for path in paths:
        try:
            storage.delete_object(path)
        except StorageError as e:
            logger.warning(
                "pipeline_blob_cleanup_failed", path=path, reason=reason, error=e.message
            )


def _apply_patches(card: Card, updates: dict[str, Any], metadata_updates: dict[str, Any]) -> None:
    for field, value in updates.items():
        if field not in UPDATABLE_FIELDS:
            raise ValueError(f"Stage result tried to update unknown card field: {field}")
        setattr(card, field, value)
    if metadata_updates:
        metadata = card.metadata_dict
        metadata.update(metadata_updates)
        card.card_metadata = metadata


def _reconcile_type_change(status: dict[str, Any], old_type: str, new_type: str) -> dict:
    """Reopen stages that a new card type makes applicable.

    Stages the new type no longer needs stay pending here and are completed
    when the cursor reaches them.
    """
    updated = dict(status)
    for stage in ps.STAGE_ORDER:
        was = ps.is_stage_applicable(stage, old_type)
        now = ps.is_stage_applicable(stage, new_type)
        if now and not was:
            updated = ps.reset_stages(updated, [stage])
    return updated


def _should_skip(step: str, card: Card) -> str | None:
    """Reason to skip the step for this card, or None to run it."""
    if step == "link_metadata":
        if card.type != "link" or card.metadata_status != "pending":
            return "not_needed"
        return None

    state = ps.get_stage_status(card.processing_status, step)
    if state != ps.PENDING:
        return f"stage_{state or 'missing'}"
    if not ps.is_stage_applicable(step, card.type):
        return "not_applicable"
    return None


def _build_summary(run: CardWorkflowRun, card: Card) -> dict[str, Any]:
    results = (run.context or {}).get("results") or {}
    summary: dict[str, Any] = {
        "success": not ps.failed_stages(card.processing_status),
        "classification": results.get("classify") or {"type": card.type},
        "metadata": {
            "ai_tags_count": len(card.ai_tags or []),
            "has_summary": bool(card.ai_summary),
            "has_transcript": bool(card.ai_transcript),
        },
    }
    if "categorize" in results:
        summary["categorization"] = results["categorize"]
    if "renderables" in results:
        summary["renderables"] = results["renderables"]
    return summary


def _complete_run(db: Session, run: CardWorkflowRun, card: Card) -> AdvanceOutcome:
    summary = _build_summary(run, card)
    _finish_run(run, WorkflowStatus.completed, summary)
    db.commit()
    logger.info(
        "pipeline_run_completed",
        card_id=str(card.id),
        workflow_id=str(run.id),
        success=summary["success"],
    )
    return AdvanceOutcome("done")


def _execute(step: str, card: Card, ctx: PipelineContext) -> StageResult:
    try:
        return STEP_RUNNERS[step](card, ctx)
    except Exception as e:
        logger.exception("pipeline_step_crashed", card_id=str(card.id), step=step)
        return Failed(error=f"{type(e).__name__}: {e}", retryable=True)


def advance_workflow(
    db: Session, workflow_id: UUID | str, ctx: PipelineContext
) -> AdvanceOutcome:
    """Execute the step at the run's cursor and persist its outcome."""
    workflow_id = UUID(str(workflow_id))
    run = db.get(CardWorkflowRun, workflow_id)
    if run is None:
        logger.warning("pipeline_run_missing", workflow_id=str(workflow_id))
        return AdvanceOutcome("aborted")
    if run.status == WorkflowStatus.completed.value:
        return AdvanceOutcome("done")
    if run.status != WorkflowStatus.running.value:
        superseded = run.status == WorkflowStatus.superseded.value
        return AdvanceOutcome("stale" if superseded else "aborted")

    set_pipeline_context(str(run.card_id), str(run.id))
    card = db.get(Card, run.card_id)
    if card is None or card.is_deleted:
        _finish_run(run, WorkflowStatus.aborted)
        db.commit()
        logger.info("pipeline_run_aborted", card_id=str(run.card_id), reason="card_deleted")
        return AdvanceOutcome("aborted")
    if card.workflow_id != run.id:
        _finish_run(run, WorkflowStatus.superseded)
        db.commit()
        return AdvanceOutcome("stale")

    if run.cursor >= len(STEP_ORDER):
        return _complete_run(db, run, card)

    step = STEP_ORDER[run.cursor]
    row = _get_step_row(db, run, step)

    if row.status in FINISHED_STEP_STATUSES:
        run.cursor += 1
        run.updated_at = utcnow()
        db.commit()
        return AdvanceOutcome("continue", step=step)

    skip_reason = _should_skip(step, card)
    if skip_reason is not None:
        if skip_reason == "not_applicable":
            # Stages that can never run for this type read as done.
            card.processing_status = ps.transition(
                card.processing_status, step, ps.stage_completed(ctx.now_ms(), 1.0)
            )
        row.status = StepStatus.skipped.value
        row.result = {"reason": skip_reason}
        row.updated_at = utcnow()
        run.cursor += 1
        run.updated_at = utcnow()
        db.commit()
        logger.info("pipeline_step_skipped", card_id=str(card.id), step=step, reason=skip_reason)
        return AdvanceOutcome("continue", step=step)

    row.attempts += 1
    row.updated_at = utcnow()
    db.commit()
    attempt = row.attempts

    result = _execute(step, card, ctx)

    # Re-read: the card may have been edited, deleted or re-triggered meanwhile.
    db.expire_all()
    run = db.get(CardWorkflowRun, workflow_id)
    card = db.get(Card, run.card_id) if run is not None else None
    created = result.created_blobs if isinstance(result, Ready) else ()

    if run is None or card is None or card.is_deleted:
        _delete_blobs(ctx.storage, created, "card_deleted")
        if run is not None:
            _finish_run(run, WorkflowStatus.aborted)
            db.commit()
        logger.info("pipeline_run_aborted", workflow_id=str(workflow_id), reason="card_deleted")
        return AdvanceOutcome("aborted", step=step)

    if card.workflow_id != run.id or run.status != WorkflowStatus.running.value:
        _delete_blobs(ctx.storage, created, "stale_run")
        if run.status == WorkflowStatus.running.value:
            _finish_run(run, WorkflowStatus.superseded)
            db.commit()
        logger.info("pipeline_step_stale", card_id=str(card.id), step=step)
        return AdvanceOutcome("stale", step=step)

    row = _get_step_row(db, run, step)
    now_ms = ctx.now_ms()
    stage = step if step != "link_metadata" else None
    replaced: tuple[str, ...] = ()

    if isinstance(result, Ready):
        old_type = card.type
        _apply_patches(card, result.updates, result.metadata_updates)
        if stage is not None:
            status = ps.transition(
                card.processing_status, stage, ps.stage_completed(now_ms, result.confidence)
            )
            if card.type != old_type:
                status = _reconcile_type_change(status, old_type, card.type)
            card.processing_status = status
        row.status = StepStatus.completed.value
        row.result = result.summary
        row.last_error = None
        _record_step_result(run, step, result.summary)
        replaced = result.replaced_blobs
        logger.info(
            "card_stage_completed",
            card_id=str(card.id),
            stage=step,
            confidence=result.confidence,
            attempt=attempt,
        )
    else:
        error = result.error if isinstance(result, Failed) else f"not ready: {result.reason}"
        retryable = isinstance(result, NotReady) or result.retryable
        policy = STEP_RETRY_POLICIES[step]

        if retryable and not policy.exhausted(attempt):
            row.last_error = error
            row.updated_at = utcnow()
            db.commit()
            delay = policy.delay_for(attempt)
            logger.info(
                "card_stage_retry_scheduled",
                card_id=str(card.id),
                stage=step,
                attempt=attempt,
                delay_s=delay,
                error=error,
            )
            return AdvanceOutcome("retry", delay_s=delay, step=step)

        if isinstance(result, Failed):
            _apply_patches(card, result.updates, result.metadata_updates)
        if stage is not None:
            card.processing_status = ps.transition(
                card.processing_status, stage, ps.stage_failed(now_ms, error)
            )
        row.status = StepStatus.failed.value
        row.last_error = error
        logger.warning(
            "card_stage_failed", card_id=str(card.id), stage=step, attempt=attempt, error=error
        )

    now = utcnow()
    row.updated_at = now
    card.updated_at = now
    run.cursor += 1
    run.updated_at = now
    db.commit()

    _delete_blobs(ctx.storage, replaced, "replaced")

    if run.cursor >= len(STEP_ORDER):
        return _complete_run(db, run, card)
    return AdvanceOutcome("continue", step=step)


def run_card_pipeline_sync(
    db: Session,
    workflow_id: UUID | str,
    ctx: PipelineContext,
    *,
    sleep: Callable[[float], None] | None = None,
    max_advances: int = 100,
) -> AdvanceOutcome:
    """Drive a run to a terminal outcome inline.

    Args:
        sleep: Called with each retry delay; retries run immediately when None.
        max_advances: Safety bound on the number of advances.
    """
    outcome = AdvanceOutcome("continue")
    for _ in range(max_advances):
        outcome = advance_workflow(db, workflow_id, ctx)
        if outcome.kind in ("done", "aborted", "stale"):
            return outcome
        if outcome.kind == "retry" and sleep is not None:
            sleep(outcome.delay_s)
    return outcome

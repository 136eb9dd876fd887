"""Celery task driving card processing runs.

Each invocation executes exactly one step at the run's persisted cursor and
re-enqueues itself, so a worker crash loses at most the step in flight and
a retry delay never blocks a worker. max_retries=0: retries are scheduled
by the orchestrator's per-step policy, not by Celery.
"""

from uuid import UUID

from teak.celery import celery_app
from teak.db.session import get_session_factory
from teak.logging import clear_task_context, configure_task_logging, get_logger
from teak.pipeline.context import build_pipeline_context
from teak.pipeline.orchestrator import advance_workflow, enqueue_workflow_step

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="run_card_pipeline")
def run_card_pipeline(self, workflow_id: str, request_id: str | None = None) -> dict:
    """Advance one step of a processing run.

    Args:
        workflow_id: The run to advance.
        request_id: Correlation id of the request that started the run.

    Returns:
        {"outcome": kind, "step": step or None}
    """
    configure_task_logging(
        request_id=request_id, task_name="run_card_pipeline", task_id=self.request.id
    )
    db = get_session_factory()()
    ctx = build_pipeline_context()
    try:
        outcome = advance_workflow(db, UUID(workflow_id), ctx)
        if outcome.kind == "continue":
            enqueue_workflow_step(workflow_id, request_id=request_id)
        elif outcome.kind == "retry":
            enqueue_workflow_step(workflow_id, countdown=outcome.delay_s, request_id=request_id)
        return {"outcome": outcome.kind, "step": outcome.step}
    except Exception:
        logger.exception("card_pipeline_task_failed", workflow_id=workflow_id)
        db.rollback()
        raise
    finally:
        ctx.close()
        db.close()
        clear_task_context()

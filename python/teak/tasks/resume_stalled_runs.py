"""Periodic resume of processing runs that stopped making progress.

A run only advances when a run_card_pipeline message for it is delivered.
When that message is lost the run keeps its cursor and its active slot;
this scan re-enqueues it from the cursor.
"""

from teak.celery import celery_app
from teak.db.session import get_session_factory
from teak.logging import clear_task_context, configure_task_logging
from teak.pipeline.orchestrator import resume_stalled_runs as resume_stalled_runs_sync


@celery_app.task(bind=True, max_retries=0, name="resume_stalled_runs")
def resume_stalled_runs(self) -> dict:
    configure_task_logging(task_name="resume_stalled_runs", task_id=self.request.id)
    db = get_session_factory()()
    try:
        return resume_stalled_runs_sync(db)
    finally:
        db.close()
        clear_task_context()

"""Celery application configuration.

Shared by the API (enqueueing) and the worker (executing).

Queues:
- pipeline: one card pipeline step per task
- maintenance: retention sweep, backfill scan and stalled-run resume (beat)
"""

from celery import Celery
from celery.schedules import crontab

from teak.config import get_settings

settings = get_settings()

celery_app = Celery("teak")

celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

celery_app.conf.task_routes = {
    "run_card_pipeline": {"queue": "pipeline"},
    "sweep_deleted_cards": {"queue": "maintenance"},
    "backfill_missing_ai": {"queue": "maintenance"},
    "resume_stalled_runs": {"queue": "maintenance"},
}
celery_app.conf.task_default_queue = "pipeline"

celery_app.conf.beat_schedule = {
    "sweep-deleted-cards": {
        "task": "sweep_deleted_cards",
        "schedule": crontab(hour=settings.retention_sweep_hour_utc, minute=0),
    },
    "backfill-missing-ai": {
        "task": "backfill_missing_ai",
        "schedule": settings.backfill_interval_hours * 3600.0,
    },
    "resume-stalled-runs": {
        "task": "resume_stalled_runs",
        "schedule": settings.pipeline_stall_minutes * 60.0,
    },
}


def get_celery_app() -> Celery:
    return celery_app

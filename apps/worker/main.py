"""Celery worker entrypoint.

Run with:
    celery -A apps.worker.main:celery_app worker -Q pipeline,maintenance -B --loglevel=info

Tasks are registered by explicit import; there is no autodiscovery. Every
task accepts or derives its own logging context (configure_task_logging).
"""

from celery.signals import worker_process_init

from teak.celery import celery_app
from teak.logging import configure_logging, get_logger

# Importing the package registers run_card_pipeline, sweep_deleted_cards
# and backfill_missing_ai with celery_app.
import teak.tasks  # noqa: F401


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog in each worker process."""
    configure_logging()
    get_logger(__name__).info("celery_worker_started", queues=["pipeline", "maintenance"])


__all__ = ["celery_app"]

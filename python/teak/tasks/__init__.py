"""Celery tasks for Teak.

Tasks are imported explicitly to register them with Celery; there is no
autodiscovery.
"""

from teak.tasks.backfill_missing_ai import backfill_missing_ai
from teak.tasks.card_pipeline import run_card_pipeline
from teak.tasks.resume_stalled_runs import resume_stalled_runs
from teak.tasks.sweep_deleted_cards import sweep_deleted_cards

__all__ = [
    "backfill_missing_ai",
    "resume_stalled_runs",
    "run_card_pipeline",
    "sweep_deleted_cards",
]

"""Database module for Teak.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from teak.db.engine import create_db_engine, get_engine
from teak.db.models import (
    Base,
    Card,
    CardType,
    CardWorkflowRun,
    CardWorkflowStep,
    MetadataStatus,
    StepStatus,
    WorkflowStatus,
)
from teak.db.session import get_db, get_session_factory, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "get_session_factory",
    "transaction",
    # Base
    "Base",
    # Enums
    "CardType",
    "MetadataStatus",
    "WorkflowStatus",
    "StepStatus",
    # Models
    "Card",
    "CardWorkflowRun",
    "CardWorkflowStep",
]

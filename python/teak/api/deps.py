"""FastAPI dependencies for route handlers."""

from teak.db.session import get_db, get_session_factory
from teak.storage import StorageClientBase, get_storage_client


def get_storage() -> StorageClientBase:
    """Blob storage for the request; overridden in tests."""
    return get_storage_client()


__all__ = ["get_db", "get_session_factory", "get_storage"]

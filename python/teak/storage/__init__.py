"""Blob storage for card files and derived assets."""

from teak.storage.client import (
    FakeStorageClient,
    StorageClient,
    StorageClientBase,
    StorageError,
    get_storage_client,
)
from teak.storage.paths import build_card_asset_path

__all__ = [
    "StorageClient",
    "StorageClientBase",
    "FakeStorageClient",
    "StorageError",
    "get_storage_client",
    "build_card_asset_path",
]

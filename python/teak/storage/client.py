"""Supabase Storage client abstraction.

Card blobs (uploaded files, generated thumbnails, link preview images and
screenshots) live in a single bucket. The pipeline needs to:
- Read an object's bytes (thumbnail and palette generation)
- Write derived objects (thumbnails, preview images)
- Sign short-lived download URLs (vision models fetch images by URL)
- Delete objects (retention sweep, replaced preview images)

Unlike reads, deletes raise StorageError so callers can decide whether a
failure is fatal (it never is for the sweeper, which logs and moves on).
"""

import os
from abc import ABC, abstractmethod
from uuid import uuid4

import httpx


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class StorageClientBase(ABC):
    """Abstract base class for storage client implementations."""

    @abstractmethod
    def sign_download(self, path: str, *, expires_in: int = 600) -> str:
        """Create a signed download URL.

        Raises:
            StorageError: If signing fails.
        """
        ...

    @abstractmethod
    def get_bytes(self, path: str) -> bytes:
        """Download an object's full content.

        Raises:
            StorageError: If the object is missing or the download fails.
        """
        ...

    @abstractmethod
    def upload_bytes(self, path: str, content: bytes, *, content_type: str) -> str:
        """Store content at path (overwriting) and return the path.

        Raises:
            StorageError: If the upload fails.
        """
        ...

    @abstractmethod
    def delete_object(self, path: str) -> None:
        """Delete an object. Deleting a missing object is not an error.

        Raises:
            StorageError: If the backend rejects the delete.
        """
        ...


class StorageClient(StorageClientBase):
    """Production Supabase Storage client over the REST API."""

    def __init__(self, supabase_url: str, service_key: str, bucket: str = "cards"):
        self._base_url = supabase_url.rstrip("/")
        self._bucket = bucket
        self._storage_url = f"{self._base_url}/storage/v1"
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _object_url(self, path: str) -> str:
        return f"{self._storage_url}/object/{self._bucket}/{path}"

    def sign_download(self, path: str, *, expires_in: int = 600) -> str:
        url = f"{self._storage_url}/object/sign/{self._bucket}/{path}"

        with httpx.Client() as client:
            response = client.post(
                url, headers=self._headers, json={"expiresIn": expires_in}, timeout=30.0
            )

        if response.status_code != 200:
            raise StorageError(
                f"Failed to sign download: {response.status_code} {response.text}",
                code="E_SIGN_DOWNLOAD_FAILED",
            )

        data = response.json()
        signed_path = data.get("signedURL") or data.get("signedUrl") or ""
        if not signed_path:
            raise StorageError(
                "Failed to sign download: missing signed URL", code="E_SIGN_DOWNLOAD_FAILED"
            )

        # Supabase may return relative paths with or without the /storage/v1 prefix.
        if signed_path.startswith(("http://", "https://")):
            return signed_path
        if signed_path.startswith("/storage/"):
            return f"{self._base_url}{signed_path}"
        return f"{self._storage_url}/{signed_path.lstrip('/')}"

    def get_bytes(self, path: str) -> bytes:
        try:
            with httpx.Client() as client:
                response = client.get(self._object_url(path), headers=self._headers, timeout=60.0)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to download object: {e}") from e

        if response.status_code in (400, 404):
            raise StorageError(f"Object not found: {path}", code="E_STORAGE_MISSING")
        if response.status_code != 200:
            raise StorageError(f"Failed to download object: {response.status_code}")
        return response.content

    def upload_bytes(self, path: str, content: bytes, *, content_type: str) -> str:
        headers = {**self._headers, "Content-Type": content_type, "x-upsert": "true"}
        try:
            with httpx.Client() as client:
                response = client.post(
                    self._object_url(path), headers=headers, content=content, timeout=60.0
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to upload object: {e}") from e

        if response.status_code not in (200, 201):
            raise StorageError(
                f"Failed to upload object: {response.status_code} {response.text}",
                code="E_STORAGE_UPLOAD_FAILED",
            )
        return path

    def delete_object(self, path: str) -> None:
        try:
            with httpx.Client() as client:
                response = client.delete(self._object_url(path), headers=self._headers, timeout=30.0)
        except httpx.HTTPError as e:
            raise StorageError(f"Storage delete error: {e}", code="E_STORAGE_DELETE_FAILED") from e

        if response.status_code not in (200, 204, 404):
            raise StorageError(
                f"Storage delete failed: {response.status_code} {response.text}",
                code="E_STORAGE_DELETE_FAILED",
            )


class FakeStorageClient(StorageClientBase):
    """In-memory storage client for tests and local development."""

    def __init__(self):
        self._objects: dict[str, tuple[bytes, str]] = {}  # path -> (content, content_type)
        self.failing_deletes: set[str] = set()
        self.deleted: list[str] = []

    def sign_download(self, path: str, *, expires_in: int = 600) -> str:
        return f"https://fake-storage.test/download/{path}?token=fake-{uuid4()}"

    def get_bytes(self, path: str) -> bytes:
        if path not in self._objects:
            raise StorageError(f"Object not found: {path}", code="E_STORAGE_MISSING")
        return self._objects[path][0]

    def upload_bytes(self, path: str, content: bytes, *, content_type: str) -> str:
        self._objects[path] = (content, content_type)
        return path

    def delete_object(self, path: str) -> None:
        if path in self.failing_deletes:
            raise StorageError(f"Simulated delete failure: {path}", code="E_STORAGE_DELETE_FAILED")
        self._objects.pop(path, None)
        self.deleted.append(path)

    # Test helper methods

    def put_object(self, path: str, content: bytes, content_type: str = "image/png") -> None:
        """Store an object directly (test helper)."""
        self._objects[path] = (content, content_type)

    def get_object(self, path: str) -> bytes | None:
        """Get object content directly (test helper)."""
        if path not in self._objects:
            return None
        return self._objects[path][0]

    def has_object(self, path: str) -> bool:
        """Check whether an object exists (test helper)."""
        return path in self._objects


def get_storage_client() -> StorageClientBase:
    """Get the configured storage client.

    Returns:
        StorageClient if SUPABASE_URL and SUPABASE_SERVICE_KEY are set,
        FakeStorageClient otherwise.
    """
    supabase_url = os.environ.get("SUPABASE_URL")
    service_key = os.environ.get("SUPABASE_SERVICE_KEY")

    if supabase_url and service_key:
        return StorageClient(
            supabase_url=supabase_url,
            service_key=service_key,
            bucket=os.environ.get("STORAGE_BUCKET", "cards"),
        )

    return FakeStorageClient()

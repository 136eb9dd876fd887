"""Tests for storage paths, the fake client and the Supabase REST client."""

from uuid import uuid4

import httpx
import pytest
import respx

from teak.storage import (
    FakeStorageClient,
    StorageClient,
    StorageError,
    build_card_asset_path,
    get_storage_client,
)

SUPABASE_URL = "https://project.supabase.test"
OBJECT_URL = f"{SUPABASE_URL}/storage/v1/object/cards"


class TestBuildCardAssetPath:
    def test_production_layout(self, monkeypatch):
        monkeypatch.delenv("STORAGE_TEST_PREFIX", raising=False)
        card_id = uuid4()

        path = build_card_asset_path(card_id, "thumbnail", "webp")

        prefix, token_ext = path.rsplit("/", 1)
        assert prefix == f"cards/{card_id}"
        token, ext = token_ext.removeprefix("thumbnail-").split(".")
        assert len(token) == 12
        assert ext == "webp"

    def test_fresh_token_per_call(self):
        card_id = uuid4()

        assert build_card_asset_path(card_id, "screenshot", "png") != build_card_asset_path(
            card_id, "screenshot", "png"
        )

    def test_test_prefix(self, monkeypatch):
        monkeypatch.setenv("STORAGE_TEST_PREFIX", "test_runs/run-1")

        path = build_card_asset_path("abc", "preview-image", ".jpg")

        assert path.startswith("test_runs/run-1/cards/abc/preview-image-")
        assert path.endswith(".jpg")

    def test_unknown_asset(self):
        with pytest.raises(ValueError):
            build_card_asset_path(uuid4(), "original", "png")


class TestFakeStorageClient:
    def test_upload_read_delete(self):
        storage = FakeStorageClient()

        storage.upload_bytes("a/b.png", b"data", content_type="image/png")

        assert storage.get_bytes("a/b.png") == b"data"
        storage.delete_object("a/b.png")
        assert not storage.has_object("a/b.png")
        assert storage.deleted == ["a/b.png"]

    def test_missing_object(self):
        with pytest.raises(StorageError) as exc_info:
            FakeStorageClient().get_bytes("nope")

        assert exc_info.value.code == "E_STORAGE_MISSING"

    def test_failing_delete(self):
        storage = FakeStorageClient()
        storage.put_object("x", b"1")
        storage.failing_deletes.add("x")

        with pytest.raises(StorageError):
            storage.delete_object("x")
        assert storage.has_object("x")

    def test_selected_without_supabase_env(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)

        assert isinstance(get_storage_client(), FakeStorageClient)


class TestStorageClient:
    @pytest.fixture
    def storage(self) -> StorageClient:
        return StorageClient(f"{SUPABASE_URL}/", "service-key")

    @respx.mock
    def test_get_bytes(self, storage):
        route = respx.get(f"{OBJECT_URL}/uploads/a.png").mock(
            return_value=httpx.Response(200, content=b"png")
        )

        assert storage.get_bytes("uploads/a.png") == b"png"
        assert route.calls.last.request.headers["apikey"] == "service-key"

    @respx.mock
    def test_get_bytes_missing(self, storage):
        respx.get(f"{OBJECT_URL}/uploads/a.png").mock(return_value=httpx.Response(404))

        with pytest.raises(StorageError) as exc_info:
            storage.get_bytes("uploads/a.png")

        assert exc_info.value.code == "E_STORAGE_MISSING"

    @respx.mock
    def test_upload_upserts(self, storage):
        route = respx.post(f"{OBJECT_URL}/cards/1/thumbnail-a.webp").mock(
            return_value=httpx.Response(200, json={"Key": "x"})
        )

        storage.upload_bytes("cards/1/thumbnail-a.webp", b"webp", content_type="image/webp")

        request = route.calls.last.request
        assert request.headers["x-upsert"] == "true"
        assert request.headers["content-type"] == "image/webp"

    @respx.mock
    def test_delete_missing_is_not_an_error(self, storage):
        respx.delete(f"{OBJECT_URL}/gone.png").mock(return_value=httpx.Response(404))

        storage.delete_object("gone.png")

    @respx.mock
    def test_delete_failure(self, storage):
        respx.delete(f"{OBJECT_URL}/x.png").mock(return_value=httpx.Response(500))

        with pytest.raises(StorageError):
            storage.delete_object("x.png")

    @respx.mock
    def test_sign_download_relative_path(self, storage):
        respx.post(f"{SUPABASE_URL}/storage/v1/object/sign/cards/a.png").mock(
            return_value=httpx.Response(200, json={"signedURL": "/object/sign/cards/a.png?t=1"})
        )

        url = storage.sign_download("a.png", expires_in=60)

        assert url == f"{SUPABASE_URL}/storage/v1/object/sign/cards/a.png?t=1"

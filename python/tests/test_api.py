"""Tests for the HTTP API: card routes, internal routes and middleware."""

from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from teak.api.deps import get_storage
from teak.app import add_request_id_middleware, create_app
from teak.auth.verifier import SharedSecretVerifier
from teak.config import clear_settings_cache
from teak.db.models import CardWorkflowRun, utcnow
from tests.factories import create_test_card, soft_delete
from tests.helpers import TEST_AUDIENCE, TEST_ISSUER, TEST_JWT_SECRET, auth_headers

INTERNAL_SECRET = "internal-test-secret"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"data": {"status": "ok"}}

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_NOT_FOUND"


class TestRequestID:
    @pytest.fixture
    def request_id_client(self):
        app = create_app(skip_auth_middleware=True)
        add_request_id_middleware(app, log_requests=False)
        with TestClient(app) as client:
            yield client

    def test_echoes_safe_id(self, request_id_client):
        response = request_id_client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"

    def test_replaces_unsafe_id(self, request_id_client):
        response = request_id_client.get("/health", headers={"X-Request-ID": "bad id!"})

        UUID(response.headers["X-Request-ID"])

    def test_mints_id_when_missing(self, request_id_client):
        UUID(request_id_client.get("/health").headers["X-Request-ID"])


class TestRegenerateAI:
    def test_owner_regenerates(self, authenticated_client, db_session, test_user_id):
        """Regeneration clears aiModelMeta and reopens only the metadata stage."""
        card = create_test_card(
            db_session,
            user_id=test_user_id,
            content="hello",
            ai_model_meta={"provider": "groq", "model": "m", "generatedAt": 1},
            processing_status={
                "classify": {"status": "completed", "confidence": 0.7, "completedAt": 1},
                "categorize": {"status": "completed", "confidence": 1.0, "completedAt": 1},
                "metadata": {"status": "completed", "confidence": 0.95, "completedAt": 1},
                "renderables": {"status": "completed", "confidence": 1.0, "completedAt": 1},
            },
        )

        response = authenticated_client.post(
            f"/cards/{card.id}/ai/regenerate", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 202
        workflow_id = response.json()["data"]["workflow_id"]
        db_session.expire_all()
        assert str(card.workflow_id) == workflow_id
        assert card.ai_model_meta is None
        assert card.processing_status["metadata"] == {"status": "pending"}
        assert card.processing_status["classify"]["status"] == "completed"

    def test_other_users_card_is_forbidden(self, authenticated_client, db_session):
        card = create_test_card(db_session, user_id=uuid4(), content="hello")

        response = authenticated_client.post(
            f"/cards/{card.id}/ai/regenerate", headers=auth_headers(uuid4())
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_FORBIDDEN"
        assert db_session.query(CardWorkflowRun).count() == 0

    def test_missing_card(self, authenticated_client, test_user_id, db_session):
        response = authenticated_client.post(
            f"/cards/{uuid4()}/ai/regenerate", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_CARD_NOT_FOUND"

    def test_deleted_card_is_not_found(self, authenticated_client, db_session, test_user_id):
        card = create_test_card(db_session, user_id=test_user_id, content="hello")
        soft_delete(db_session, card, utcnow())

        response = authenticated_client.post(
            f"/cards/{card.id}/ai/regenerate", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 404

    def test_requires_token(self, authenticated_client, db_session):
        response = authenticated_client.post(f"/cards/{uuid4()}/ai/regenerate")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"

    def test_rejects_malformed_header(self, authenticated_client, db_session):
        response = authenticated_client.post(
            f"/cards/{uuid4()}/ai/regenerate", headers={"Authorization": "Token abc"}
        )

        assert response.status_code == 401

    def test_rejects_expired_token(self, authenticated_client, db_session, test_user_id):
        response = authenticated_client.post(
            f"/cards/{uuid4()}/ai/regenerate",
            headers=auth_headers(test_user_id, expires_in=-3600),
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Token expired"


class TestProcessingStatus:
    def test_returns_status(self, authenticated_client, db_session, test_user_id):
        card = create_test_card(db_session, user_id=test_user_id, content="hello")

        response = authenticated_client.get(
            f"/cards/{card.id}/processing-status", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data == {"card_id": str(card.id), "workflow_id": None, "processing_status": {}}

    def test_other_users_card(self, authenticated_client, db_session):
        card = create_test_card(db_session, content="hello")

        response = authenticated_client.get(
            f"/cards/{card.id}/processing-status", headers=auth_headers(uuid4())
        )

        assert response.status_code == 403


class TestInternalProcess:
    def test_start_is_idempotent(self, client, db_session):
        card = create_test_card(db_session, content="hello")

        first = client.post(f"/internal/cards/{card.id}/process", json={})
        second = client.post(f"/internal/cards/{card.id}/process", json={})

        assert first.status_code == 202
        assert first.json()["data"]["workflow_id"] is not None
        assert second.json() == first.json()

    def test_reset_starts_new_run(self, client, db_session):
        card = create_test_card(db_session, content="hello")
        first = client.post(f"/internal/cards/{card.id}/process", json={})

        second = client.post(
            f"/internal/cards/{card.id}/process", json={"reset_stages": ["metadata"]}
        )

        assert second.json()["data"]["workflow_id"] != first.json()["data"]["workflow_id"]

    def test_invalid_stage(self, client, db_session):
        card = create_test_card(db_session, content="hello")

        response = client.post(
            f"/internal/cards/{card.id}/process", json={"reset_stages": ["thumbnails"]}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_STAGE"

    def test_malformed_body(self, client, db_session):
        response = client.post(f"/internal/cards/{uuid4()}/process", json={"reset_stages": 5})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_missing_card(self, client, db_session):
        response = client.post(f"/internal/cards/{uuid4()}/process", json={})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_CARD_NOT_FOUND"

    def test_deleted_card(self, client, db_session):
        card = create_test_card(db_session, content="hello")
        soft_delete(db_session, card, utcnow())

        response = client.post(f"/internal/cards/{card.id}/process", json={})

        assert response.status_code == 202
        assert response.json()["data"]["workflow_id"] is None


class TestInternalScreenshot:
    def test_records_and_replaces(self, client, db_session, storage):
        old_path = "cards/x/screenshot-old.png"
        storage.put_object(old_path, b"png")
        card = create_test_card(
            db_session,
            type="link",
            url="https://example.com",
            metadata={"linkPreview": {"status": "success", "screenshotStorageId": old_path}},
        )

        response = client.post(
            f"/internal/cards/{card.id}/screenshot",
            json={"path": "cards/x/screenshot-new.png", "updated_at_ms": 1234},
        )

        assert response.status_code == 200
        preview = response.json()["data"]["link_preview"]
        assert preview["screenshotStorageId"] == "cards/x/screenshot-new.png"
        assert preview["screenshotUpdatedAt"] == 1234
        assert preview["status"] == "success"
        assert not storage.has_object(old_path)
        db_session.expire_all()
        assert card.link_preview["screenshotStorageId"] == "cards/x/screenshot-new.png"

    def test_missing_card(self, client, db_session):
        response = client.post(f"/internal/cards/{uuid4()}/screenshot", json={"path": "a.png"})

        assert response.status_code == 404


class TestInternalAdmission:
    def test_allowed(self, client):
        response = client.post(
            "/internal/admission/check", json={"kind": "card_creation", "identifier": "u1"}
        )

        assert response.status_code == 200
        assert response.json() == {"data": {"ok": True, "retry_at": None}}

    def test_denied_is_data(self, client):
        response = client.post(
            "/internal/admission/check",
            json={"kind": "card_creation", "identifier": "u1", "count": 31},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["ok"] is False
        assert data["retry_at"] > 0

    def test_unknown_kind(self, client):
        response = client.post(
            "/internal/admission/check", json={"kind": "uploads", "identifier": "u1"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_LIMIT_KIND"


class TestInternalHeader:
    @pytest.fixture
    def secured_client(self, monkeypatch, db_session, storage):
        monkeypatch.setenv("TEAK_INTERNAL_SECRET", INTERNAL_SECRET)
        clear_settings_cache()
        app = create_app(
            token_verifier=SharedSecretVerifier(
                TEST_JWT_SECRET, audience=TEST_AUDIENCE, issuer=TEST_ISSUER
            )
        )
        app.dependency_overrides[get_storage] = lambda: storage
        with TestClient(app) as client:
            yield client

    def test_missing_header(self, secured_client):
        response = secured_client.post(
            "/internal/admission/check", json={"kind": "card_creation", "identifier": "u"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_INTERNAL_ONLY"

    def test_wrong_header(self, secured_client):
        response = secured_client.post(
            "/internal/admission/check",
            json={"kind": "card_creation", "identifier": "u"},
            headers={"x-teak-internal": "guess"},
        )

        assert response.status_code == 403

    def test_correct_header(self, secured_client):
        response = secured_client.post(
            "/internal/admission/check",
            json={"kind": "card_creation", "identifier": "u"},
            headers={"x-teak-internal": INTERNAL_SECRET},
        )

        assert response.status_code == 200

    def test_bearer_token_does_not_open_internal_routes(self, secured_client):
        response = secured_client.post(
            "/internal/admission/check",
            json={"kind": "card_creation", "identifier": "u"},
            headers=auth_headers(uuid4()),
        )

        assert response.status_code == 403

    def test_health_is_public(self, secured_client):
        assert secured_client.get("/health").status_code == 200

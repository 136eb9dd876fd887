"""Pytest configuration and fixtures for Teak tests.

Test isolation strategy:
- Every test gets its own in-memory SQLite database (StaticPool, one shared
  connection) created from the ORM metadata
- The global session factory is pointed at that database so API routes and
  tasks see the same rows as the test
- Blobs go to FakeStorageClient; outbound HTTP is mocked with respx
"""

import os

# Settings are read at import time by teak.celery; set the test env first.
os.environ["TEAK_ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Generator
from uuid import UUID, uuid4

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from teak.api.deps import get_storage
from teak.app import create_app
from teak.auth.middleware import AuthMiddleware
from teak.auth.verifier import SharedSecretVerifier
from teak.config import AIConfig, clear_settings_cache, get_settings
from teak.db.models import Base
from teak.db.session import create_session_factory, set_session_factory
from teak.pipeline.context import PipelineContext
from teak.pipeline.link_metadata.fetch import LinkFetcher
from teak.services.admission import set_admission_limiter
from teak.storage import FakeStorageClient
from tests.helpers import AI_BASE_URL, TEST_AUDIENCE, TEST_ISSUER, TEST_JWT_SECRET


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """Session on the test database; also installed as the default factory.

    Commit before calling the API: route sessions share the connection and
    roll back on close.
    """
    factory = create_session_factory(engine)
    set_session_factory(factory)
    session = factory()
    try:
        yield session
    finally:
        session.close()
        set_session_factory(None)


@pytest.fixture
def storage() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def ai_config() -> AIConfig:
    """AI configuration pointing at a mocked OpenAI-compatible endpoint."""
    return AIConfig(
        provider="groq",
        base_url=AI_BASE_URL,
        api_key="test-key",
        text_model="text-model",
        link_model="link-model",
        image_model="vision-model",
        transcription_model="whisper-model",
    )


@pytest.fixture
def http_client() -> Generator[httpx.Client, None, None]:
    client = httpx.Client(follow_redirects=False, trust_env=False, timeout=5.0)
    yield client
    client.close()


@pytest.fixture
def pipeline_ctx(
    storage: FakeStorageClient, ai_config: AIConfig, http_client: httpx.Client
) -> PipelineContext:
    """Pipeline collaborators backed by fakes; HTTP goes through respx mocks."""
    return PipelineContext(
        storage=storage,
        ai_config=ai_config,
        link_fetcher=LinkFetcher(client=http_client, settings=get_settings()),
    )


@pytest.fixture
def client(db_session: Session, storage: FakeStorageClient) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client without authentication.

    Suitable for internal routes and public endpoints.
    """
    app = create_app(skip_auth_middleware=True)
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as client:
        yield client


@pytest.fixture
def authenticated_app(db_session: Session, storage: FakeStorageClient):
    """App with auth middleware verifying tokens signed with the test secret."""
    verifier = SharedSecretVerifier(TEST_JWT_SECRET, audience=TEST_AUDIENCE, issuer=TEST_ISSUER)
    app = create_app(skip_auth_middleware=True)
    app.add_middleware(
        AuthMiddleware,
        verifier=verifier,
        requires_internal_header=False,
        internal_secret=None,
    )
    app.dependency_overrides[get_storage] = lambda: storage
    return app


@pytest.fixture
def authenticated_client(authenticated_app) -> Generator[TestClient, None, None]:
    """Client whose requests need a bearer token from tests.helpers.auth_headers()."""
    with TestClient(authenticated_app) as client:
        yield client


@pytest.fixture
def test_user_id() -> UUID:
    return uuid4()


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_admission_limiter():
    set_admission_limiter(None)
    yield
    set_admission_limiter(None)

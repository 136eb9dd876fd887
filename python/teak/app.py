"""FastAPI application creation and configuration.

Middleware runs in reverse order of registration. AuthMiddleware is added
inside create_app; RequestIDMiddleware is added afterwards by the launcher
(add_request_id_middleware) so it is outermost and every response,
including auth failures, carries X-Request-ID.

Per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (bearer token or internal header)
3. Route handler
"""

from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from teak.api.routes import create_api_router
from teak.auth.middleware import AuthMiddleware
from teak.auth.verifier import SharedSecretVerifier, TokenVerifier
from teak.config import get_settings
from teak.errors import ApiError
from teak.logging import configure_logging, get_logger
from teak.middleware.request_id import RequestIDMiddleware
from teak.responses import (
    api_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from teak.services.admission import build_admission_limiter, set_admission_limiter

configure_logging()

logger = get_logger(__name__)


def create_token_verifier() -> TokenVerifier | None:
    """Shared-secret verifier from settings; None when no secret is set (local)."""
    settings = get_settings()
    if not settings.teak_jwt_secret:
        logger.warning("jwt_secret_not_configured")
        return None
    return SharedSecretVerifier(
        settings.teak_jwt_secret,
        audience=settings.teak_jwt_audience,
        issuer=settings.teak_jwt_issuer,
    )


def _connect_redis(url: str | None) -> redis.Redis | None:
    if not url:
        return None
    try:
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=5)
        client.ping()
    except redis.RedisError as e:
        logger.warning("redis_client_init_failed", error=str(e))
        return None
    logger.info("redis_client_initialized")
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect Redis and install the admission limiter.

    Without Redis the limiter keeps its buckets in process memory.
    """
    settings = get_settings()
    redis_client = _connect_redis(settings.redis_url)
    app.state.redis_client = redis_client
    set_admission_limiter(build_admission_limiter(redis_client, settings))
    logger.info("admission_limiter_initialized", backend="redis" if redis_client else "memory")

    yield

    set_admission_limiter(None)
    if redis_client is not None:
        try:
            redis_client.close()
        except redis.RedisError as e:
            logger.warning("redis_client_close_failed", error=str(e))


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Custom token verifier; built from settings when None.
    """
    settings = get_settings()

    app = FastAPI(
        title="Teak API",
        description="Card enrichment pipeline for Teak",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=token_verifier or create_token_verifier(),
            requires_internal_header=settings.requires_internal_header,
            internal_secret=settings.teak_internal_secret,
        )
        logger.info(
            "auth_middleware_enabled",
            env=settings.teak_env.value,
            internal_header_required=settings.requires_internal_header,
        )

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware; call after every other middleware."""
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)

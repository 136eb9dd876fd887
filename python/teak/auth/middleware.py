"""Authentication middleware.

Two kinds of caller reach the API:
- Users, with a bearer token, on the card routes
- Trusted services, with the internal secret header, on /internal routes

Public paths (health, docs) skip both checks.
"""

import hmac
import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from teak.auth.verifier import TokenVerifier
from teak.errors import ApiError, ApiErrorCode
from teak.responses import error_response

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "authorization"
INTERNAL_HEADER = "x-teak-internal"
INTERNAL_PREFIX = "/internal/"

PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


@dataclass
class Viewer:
    """Authenticated user (JWT sub claim)."""

    user_id: UUID


def _reject(code: ApiErrorCode, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


class AuthMiddleware(BaseHTTPMiddleware):
    """Bearer token auth for user routes, internal header for /internal routes."""

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier | None,
        requires_internal_header: bool = False,
        internal_secret: str | None = None,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            verifier: Bearer token verifier. None rejects every user request.
            requires_internal_header: Enforce the internal header even when no
                secret is configured (staging/prod).
            internal_secret: Expected internal header value. When set, the
                header is checked in every environment.
        """
        super().__init__(app)
        self.verifier = verifier
        self.requires_internal_header = requires_internal_header
        self.internal_secret = internal_secret

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in PUBLIC_PATHS:
            return await call_next(request)

        if path.startswith(INTERNAL_PREFIX):
            if self.requires_internal_header or self.internal_secret:
                failure = self._check_internal_header(request)
                if failure is not None:
                    return failure
            return await call_next(request)

        token = request.headers.get(AUTHORIZATION_HEADER, "")
        if not token:
            logger.warning("auth_failure", extra={"reason": "missing_header", "path": path})
            return _reject(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required", 401)
        if not token.lower().startswith("bearer ") or not token[7:].strip():
            logger.warning("auth_failure", extra={"reason": "invalid_header_format", "path": path})
            return _reject(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format", 401
            )

        if self.verifier is None:
            logger.error("auth_verifier_not_configured")
            return _reject(ApiErrorCode.E_UNAUTHENTICATED, "Authentication unavailable", 401)

        try:
            claims = self.verifier.verify(token[7:].strip())
        except ApiError as e:
            return _reject(e.code, e.message, e.status_code)

        request.state.viewer = Viewer(user_id=UUID(str(claims["sub"])))
        return await call_next(request)

    def _check_internal_header(self, request: Request) -> JSONResponse | None:
        supplied = request.headers.get(INTERNAL_HEADER)
        if supplied is None:
            logger.warning(
                "auth_failure",
                extra={"reason": "internal_header_missing", "path": request.url.path},
            )
            return _reject(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required", 403)

        if not self.internal_secret:
            logger.error("internal_secret_not_configured")
            return _reject(ApiErrorCode.E_INTERNAL, "Internal server error", 500)

        if not hmac.compare_digest(supplied.encode(), self.internal_secret.encode()):
            logger.warning(
                "auth_failure",
                extra={"reason": "internal_header_mismatch", "path": request.url.path},
            )
            return _reject(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required", 403)

        return None


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency returning the authenticated viewer.

    Raises:
        ApiError: If no viewer is attached to the request.
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer

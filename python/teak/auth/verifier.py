"""Bearer token verification.

Tokens are HS256 JWTs signed with a secret shared with the auth provider.
The verifier is a Protocol so tests and alternative providers can plug in
their own implementation.
"""

import logging
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
)

from teak.errors import ApiError, ApiErrorCode

logger = logging.getLogger(__name__)

CLOCK_SKEW_SECONDS = 60
ALGORITHM = "HS256"

# Checked in order: the more specific PyJWT errors subclass InvalidTokenError.
_REJECTIONS: tuple[tuple[type[InvalidTokenError], str, str], ...] = (
    (ExpiredSignatureError, "expired_token", "Token expired"),
    (InvalidSignatureError, "invalid_signature", "Invalid token signature"),
    (InvalidIssuerError, "invalid_issuer", "Invalid token issuer"),
    (InvalidAudienceError, "invalid_audience", "Invalid token audience"),
    (DecodeError, "decode_error", "Invalid token format"),
)


class TokenVerifier(Protocol):
    """Verifies a bearer token and returns its claims."""

    def verify(self, token: str) -> dict[str, Any]:
        """Return decoded claims.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
        """
        ...


def _unauthenticated(reason: str, message: str) -> ApiError:
    logger.warning("auth_failure", extra={"reason": reason})
    return ApiError(ApiErrorCode.E_UNAUTHENTICATED, message)


class SharedSecretVerifier:
    """HS256 verifier.

    Validates the signature, exp (with 60s skew), aud, iss when configured,
    and that sub is a UUID.
    """

    def __init__(self, secret: str, audience: str = "authenticated", issuer: str | None = None):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self.audience = audience
        self.issuer = issuer.rstrip("/") if issuer else None

    def verify(self, token: str) -> dict[str, Any]:
        required = ["exp", "sub"]
        if self.issuer:
            required.append("iss")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": required},
            )
        except InvalidTokenError as e:
            for error_type, reason, message in _REJECTIONS:
                if isinstance(e, error_type):
                    raise _unauthenticated(reason, message) from e
            raise _unauthenticated("invalid_token", "Invalid token") from e

        try:
            UUID(str(payload["sub"]))
        except ValueError as e:
            raise _unauthenticated("invalid_sub", "Invalid token: sub is not a valid UUID") from e

        return payload

"""Test helpers for authentication.

Provides:
- Token minting signed with the test shared secret
- Header generation for test requests
- The mocked AI endpoint root
"""

import time
from uuid import UUID

import jwt

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
TEST_ISSUER = "https://auth.teak.test"
TEST_AUDIENCE = "authenticated"
DEFAULT_EXPIRES_IN = 3600  # 1 hour

# OpenAI-compatible endpoint the ai_config fixture points at; mocked with respx.
AI_BASE_URL = "https://ai.test/v1"


def mint_test_token(
    user_id: UUID | str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = TEST_ISSUER,
    audience: str = TEST_AUDIENCE,
    secret: str = TEST_JWT_SECRET,
    **extra_claims,
) -> str:
    """Mint an HS256 token.

    Args:
        user_id: The `sub` claim.
        expires_in: Validity in seconds from now; negative for an expired token.
        issuer: The `iss` claim value.
        audience: The `aud` claim value.
        secret: Signing secret.
        **extra_claims: Additional claims to include in the token.
    """
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id: UUID | str, **token_kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_test_token(user_id, **token_kwargs)}"}

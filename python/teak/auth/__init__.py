"""Authentication: bearer token verification and the auth middleware."""

from teak.auth.middleware import AuthMiddleware, Viewer, get_viewer
from teak.auth.verifier import SharedSecretVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "SharedSecretVerifier",
    "TokenVerifier",
    "Viewer",
    "get_viewer",
]

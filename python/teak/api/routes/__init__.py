"""API route definitions.

Built by a factory so importing route modules never loads settings.
"""

from fastapi import APIRouter

from teak.api.routes.cards import router as cards_router
from teak.api.routes.health import router as health_router
from teak.api.routes.internal import router as internal_router


def create_api_router() -> APIRouter:
    """Create the API router with every route group registered."""
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(cards_router, tags=["cards"])
    api_router.include_router(internal_router, tags=["internal"])
    return api_router


__all__ = ["create_api_router"]

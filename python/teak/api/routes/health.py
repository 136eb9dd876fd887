"""Health check endpoint."""

from fastapi import APIRouter

from teak.responses import success_response

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Liveness only; dependencies are not probed."""
    return success_response({"status": "ok"})

"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Request

from config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def root() -> str:
    return "Instagram Profile Viewer API"


@router.get("/health")
async def health() -> dict:
    """Liveness check. Makes no upstream calls."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request) -> dict:
    """Readiness: the lifespan has built the upstream client."""
    client = getattr(request.app.state, "imai_client", None)
    return {
        "status": "ok" if client is not None else "starting",
        "service": "ig-profile-viewer-api",
        "commit": settings.git_sha,
    }

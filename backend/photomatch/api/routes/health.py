"""Health check endpoint with a storage connectivity probe.

The storage check has a short timeout so it never blocks the response.
A "disconnected" store does not change the overall status ("ok"); the
endpoint always returns 200 so load balancers keep routing.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter

from photomatch import __version__
from photomatch.config import settings
from photomatch.pipeline.search import build_storage

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

_CHECK_TIMEOUT = 3.0  # seconds


async def _check_storage() -> str:
    """Probe the configured object store (bucket head / auth check)."""
    try:
        storage = build_storage(settings)
        await asyncio.wait_for(storage.check(), timeout=_CHECK_TIMEOUT)
        return "connected"
    except Exception as exc:
        logger.debug("health_storage_failed", backend=settings.storage_backend, error=str(exc))
        return "disconnected"


def _vision_status() -> str:
    """Report whether the selected vision provider has credentials."""
    if settings.vision_provider == "anthropic":
        key = settings.anthropic_api_key
    else:
        key = settings.openrouter_api_key
    return "configured" if key else "not_configured"


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint — confirms the API process is alive."""
    storage = await _check_storage()
    return {
        "status": "ok",
        "version": __version__,
        "environment": settings.environment,
        "storage": storage,
        "vision": _vision_status(),
    }

"""Health and readiness endpoints."""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from gateway.config.loader import get_settings

logger = structlog.get_logger()
router = APIRouter()


async def _check_platform() -> bool:
    """Check if the bare platform origin is reachable with a HEAD request."""
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            resp = await client.head(settings.platform_origin)
            return resp.status_code < 500
    except Exception as exc:
        logger.debug("platform_check_failed", origin=settings.platform_origin, error=str(exc))
        return False


@router.get("/health")
async def health():
    """Liveness: the gateway is up; platform reachability is informational."""
    platform_ok = await _check_platform()
    return {
        "status": "healthy" if platform_ok else "degraded",
        "gateway": "up",
        "platform": "up" if platform_ok else "down",
    }


@router.get("/ready")
async def ready():
    """Readiness: 200 only when the upstream client exists and the platform answers."""
    from gateway import main

    initialized = main._http_client is not None
    platform_ok = await _check_platform()

    if initialized and platform_ok:
        return {"status": "ready"}

    return JSONResponse(
        status_code=503,
        content={
            "status": "not_ready",
            "client": "up" if initialized else "down",
            "platform": "up" if platform_ok else "down",
        },
    )

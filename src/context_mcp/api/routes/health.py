"""Health check endpoints."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Request

log = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _redis_status(req: Request) -> str:
    client = req.app.state.container.redis_client
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except Exception as e:
        log.debug("Redis ping failed: %s", e)
        return "error"
    return "ok"


@router.get("/health")
async def health(req: Request) -> dict[str, Any]:
    """Liveness probe: 200 while the process is up, with Redis status for information."""
    return {
        "status": "ok",
        "version": req.app.version,
        "redis": await _redis_status(req),
        "uptime": round(time.monotonic() - req.app.state.started_at, 3),
    }


@router.get("/ready")
async def ready() -> dict[str, str]:
    """Readiness probe: confirms the app can serve requests."""
    return {"status": "ready"}

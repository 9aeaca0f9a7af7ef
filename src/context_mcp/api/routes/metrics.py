"""Process counters."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def get_metrics(req: Request) -> dict[str, Any]:
    return req.app.state.container.metrics.snapshot()


@router.post("/metrics/reset")
async def reset_metrics(req: Request) -> dict[str, str]:
    # TODO: restrict to operators once API key scopes exist.
    req.app.state.container.metrics.reset()
    return {"message": "Metrics reset successfully"}

"""Token counting endpoint."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request

from context_mcp.core.errors import ApiError, ApiErrorKind

router = APIRouter(tags=["tokens"])


@router.get("/v1/token-count")
async def token_count(req: Request, text: Optional[str] = None, model: Optional[str] = None) -> dict[str, int]:
    """Count the tokens in ``text`` for ``model`` (default: the context model)."""
    if not text:
        raise ApiError(ApiErrorKind.BAD_REQUEST, "Missing required parameter: text", "missing_parameter")
    container = req.app.state.container
    count = container.token_counter.count(text, model or container.settings.context.model)
    container.metrics.increment("tokensCounted")
    return {"count": count}

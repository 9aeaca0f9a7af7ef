"""Optimized completion endpoint."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Request

from context_mcp.services.completion_service import MessagesRequest

log = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


@router.post("/v1/messages")
async def create_message(body: MessagesRequest, req: Request) -> dict[str, Any]:
    """Forward a Messages API request after fitting its history to the budget.

    The response is the downstream completion plus an ``_mcp_metadata``
    block describing what the optimizer did.
    """
    container = req.app.state.container
    started = time.perf_counter()
    result = await container.completion_service.complete(body)
    elapsed_ms = (time.perf_counter() - started) * 1000
    container.metrics.increment("totalProcessingTime", elapsed_ms)

    metadata = result["_mcp_metadata"]
    log.info(
        "Completion served",
        extra={
            "conversation_id": metadata["conversation_id"],
            "original_message_count": metadata["original_message_count"],
            "optimized_message_count": metadata["optimized_message_count"],
            "processing_ms": round(elapsed_ms, 1),
        },
    )
    return result

"""Request id, request logging and request counters."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from starlette.responses import Response

from context_mcp.hooks import bind_request_context, clear_request_context

log = logging.getLogger(__name__)


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    clear_request_context()
    bind_request_context(request_id=request_id)

    container = getattr(request.app.state, "container", None)
    metrics = container.metrics if container is not None else None

    start = time.perf_counter()
    log.info(
        "Received %s %s",
        request.method,
        request.url.path,
        extra={"client": request.client.host if request.client else None},
    )
    try:
        response = await call_next(request)
    except Exception:
        if metrics is not None:
            metrics.increment("requests")
            metrics.increment("failedRequests")
        raise

    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    if metrics is not None:
        metrics.increment("requests")
        metrics.increment("successfulRequests" if 200 <= response.status_code < 300 else "failedRequests")

    log.info(
        "Completed %s %s: %d in %sms",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        extra={"status_code": response.status_code, "duration_ms": duration_ms},
    )
    response.headers["X-Request-ID"] = request_id
    return response

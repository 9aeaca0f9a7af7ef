"""Redis-backed per-client rate limiting.

Each client (``X-API-Key`` when present, otherwise the remote address) gets
a request counter per one-minute window plus a concurrent-request counter.
Redis failures fail open: the request is allowed and the error logged.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from fastapi import Request
from redis.exceptions import RedisError
from starlette.responses import Response

from context_mcp.api.middleware.error_handler import error_response
from context_mcp.core.errors import ApiError, ApiErrorKind

log = logging.getLogger(__name__)

WINDOW_SECONDS = 60

_EXEMPT_PATHS = frozenset({"/health", "/ready"})


@dataclasses.dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one ``acquire`` call."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    reason: str = ""
    concurrent_key: Optional[str] = None

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class RedisRateLimiter:
    """Fixed one-minute window counter plus a concurrency cap, stored in Redis."""

    def __init__(
        self,
        client: Any,
        *,
        requests_per_minute: int = 60,
        max_concurrent: int = 10,
        key_prefix: str = "ratelimit:",
    ) -> None:
        self._client = client
        self._limit = requests_per_minute
        self._max_concurrent = max_concurrent
        self._prefix = key_prefix

    async def acquire(self, client_id: str) -> RateLimitDecision:
        """Count a request for ``client_id``.

        Raises:
            RedisError: When Redis cannot be reached; callers fail open.
        """
        now = int(time.time())
        window = now // WINDOW_SECONDS
        reset_at = (window + 1) * WINDOW_SECONDS
        concurrent_key = f"{self._prefix}{client_id}:concurrent"
        window_key = f"{self._prefix}{client_id}:{window}"

        in_flight = await self._client.incr(concurrent_key)
        await self._client.expire(concurrent_key, WINDOW_SECONDS)
        if in_flight > self._max_concurrent:
            await self._client.decr(concurrent_key)
            return RateLimitDecision(False, self._limit, 0, reset_at, reason="concurrency")

        count = await self._client.incr(window_key)
        await self._client.expire(window_key, WINDOW_SECONDS)
        if count > self._limit:
            await self._client.decr(concurrent_key)
            return RateLimitDecision(False, self._limit, 0, reset_at, reason="rate")

        return RateLimitDecision(
            True,
            self._limit,
            max(0, self._limit - count),
            reset_at,
            concurrent_key=concurrent_key,
        )

    async def release(self, decision: RateLimitDecision) -> None:
        """Give back the concurrency slot held by an allowed request."""
        if decision.concurrent_key is None:
            return
        try:
            await self._client.decr(decision.concurrent_key)
        except (RedisError, OSError) as e:
            log.warning("Could not release concurrency slot: %s", e)


def client_identity(request: Request) -> str:
    """Identify the caller by hashed API key, falling back to the remote address."""
    api_key = request.headers.get("x-api-key")
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode()).hexdigest()[:16]
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


async def rate_limit_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    limiter: Optional[RedisRateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None or request.url.path in _EXEMPT_PATHS:
        return await call_next(request)

    try:
        decision = await limiter.acquire(client_identity(request))
    except (RedisError, OSError) as e:
        log.error("Rate limiter error, allowing request: %s", e)
        return await call_next(request)

    if not decision.allowed:
        message = "Too many concurrent requests" if decision.reason == "concurrency" else "Rate limit exceeded"
        return error_response(ApiError(ApiErrorKind.RATE_LIMITED, message), headers=decision.headers())

    try:
        response = await call_next(request)
    finally:
        await limiter.release(decision)
    response.headers.update(decision.headers())
    return response

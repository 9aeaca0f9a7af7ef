"""Summary caching: factory + backend implementations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from context_mcp.context.cache.memory import LocalCache
from context_mcp.context.cache.tiered import TwoTierCache

if TYPE_CHECKING:
    from context_mcp.core.config import AppSettings

__all__ = [
    "create_summary_cache",
    "LocalCache",
    "TwoTierCache",
]


def create_summary_cache(settings: AppSettings, redis_client: Any | None = None) -> TwoTierCache:
    """Create the two-tier summary cache from settings.

    Args:
        settings: Application settings.
        redis_client: Shared ``redis.asyncio`` client. When None and the
            shared tier is enabled, the cache creates its own lazily.
    """
    config = settings.context

    local = LocalCache(max_entries=config.local_max_entries) if config.enable_local_cache else None

    shared = None
    if config.enable_shared_cache:
        from context_mcp.context.cache.redis import RedisCache

        shared = RedisCache(
            client=redis_client,
            url=settings.redis.url,
            key_prefix=settings.redis.key_prefix,
        )

    return TwoTierCache(local=local, shared=shared)

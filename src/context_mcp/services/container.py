"""Service container: build every collaborator once per process.

Replaces module-level singletons: the Redis client, caches, token counter,
backend and metrics are created here and handed to whoever needs them, and
any of them can be overridden (tests pass fakes).
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

from context_mcp.context import ContextManager, create_context_manager
from context_mcp.context.cache import TwoTierCache, create_summary_cache
from context_mcp.context.protocols import ITokenCounter
from context_mcp.core.config import AppSettings
from context_mcp.core.metrics import IMetrics, InMemoryMetrics
from context_mcp.inference import IInferenceBackend, create_inference_backend
from context_mcp.providers.tokenizer import create_token_counter
from context_mcp.services.completion_service import CompletionService

log = logging.getLogger(__name__)


@dataclasses.dataclass
class ServiceContainer:
    """Everything the API layer and the CLI need."""

    settings: AppSettings
    token_counter: ITokenCounter
    backend: IInferenceBackend
    cache: TwoTierCache
    context_manager: ContextManager
    completion_service: CompletionService
    metrics: IMetrics
    redis_client: Optional[Any] = None

    async def close(self) -> None:
        """Release network resources."""
        if self.redis_client is not None:
            try:
                await self.redis_client.aclose()
                log.info("Redis connection closed")
            except Exception as e:
                log.error("Error closing Redis connection: %s", e)


def build_container(
    settings: Optional[AppSettings] = None,
    *,
    token_counter: Optional[ITokenCounter] = None,
    backend: Optional[IInferenceBackend] = None,
    cache: Optional[TwoTierCache] = None,
    metrics: Optional[IMetrics] = None,
    redis_client: Optional[Any] = None,
) -> ServiceContainer:
    """Wire all services from settings, using any overrides given."""
    settings = settings or AppSettings()

    needs_redis = settings.context.enable_shared_cache or settings.rate_limit.enabled
    if redis_client is None and needs_redis:
        from context_mcp.context.cache.redis import create_redis_client

        redis_client = create_redis_client(settings.redis)

    token_counter = token_counter or create_token_counter(settings.tokenizer)
    backend = backend or create_inference_backend(settings)
    cache = cache or create_summary_cache(settings, redis_client)
    metrics = metrics or InMemoryMetrics()

    context_manager = create_context_manager(
        settings,
        token_counter=token_counter,
        backend=backend,
        cache=cache,
        metrics=metrics,
    )
    completion_service = CompletionService(
        backend,
        context_manager,
        default_model=settings.context.model,
        default_max_tokens=settings.context.max_tokens,
        optimization_enabled=settings.context.enabled,
        metrics=metrics,
    )
    return ServiceContainer(
        settings=settings,
        token_counter=token_counter,
        backend=backend,
        cache=cache,
        context_manager=context_manager,
        completion_service=completion_service,
        metrics=metrics,
        redis_client=redis_client,
    )

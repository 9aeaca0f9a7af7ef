"""Context optimization engine: budget planning, fingerprinting, two-tier
summary caching, singleflight deduplication and summarization.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from context_mcp.context.budget import BudgetPlanner
from context_mcp.context.fingerprint import compute_fingerprint
from context_mcp.context.manager import ContextManager, generate_conversation_id, validate_messages
from context_mcp.context.models import (
    CacheEntry,
    Message,
    OptimizationResult,
    OptimizationState,
    SplitPlan,
    SummarySource,
)
from context_mcp.context.protocols import ISummaryCache, ITokenCounter
from context_mcp.context.singleflight import SingleFlight
from context_mcp.context.summarizer import Summarizer

if TYPE_CHECKING:
    from context_mcp.context.cache.tiered import TwoTierCache
    from context_mcp.core.config import AppSettings
    from context_mcp.core.metrics import IMetrics
    from context_mcp.inference.protocols import IInferenceBackend

__all__ = [
    "BudgetPlanner",
    "CacheEntry",
    "ContextManager",
    "ISummaryCache",
    "ITokenCounter",
    "Message",
    "OptimizationResult",
    "OptimizationState",
    "SingleFlight",
    "SplitPlan",
    "SummarySource",
    "Summarizer",
    "compute_fingerprint",
    "create_context_manager",
    "generate_conversation_id",
    "validate_messages",
]


def create_context_manager(
    settings: AppSettings,
    *,
    token_counter: ITokenCounter,
    backend: IInferenceBackend,
    cache: TwoTierCache,
    metrics: Optional[IMetrics] = None,
) -> ContextManager:
    """Factory: wire a ``ContextManager`` from settings and injected collaborators."""
    config = settings.context
    summarizer = Summarizer(
        backend,
        token_counter,
        model=settings.llm.summary_model or None,
        truncation_keep_messages=config.truncation_keep_messages,
        truncation_max_chars=config.truncation_max_chars,
        timeout_seconds=config.summarizer_timeout_seconds,
    )
    return ContextManager(config, token_counter, cache, summarizer, metrics=metrics)

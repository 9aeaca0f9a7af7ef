"""context-mcp: context-optimizing proxy for conversational completion APIs.

Keeps each request's message history within its token budget by replacing
older messages with a cached summary::

    from context_mcp import AppSettings, build_container

    container = build_container(AppSettings())
    result = await container.context_manager.optimize_context(messages, "conv_1")
"""

from __future__ import annotations

from context_mcp.context import (
    CacheEntry,
    ContextManager,
    OptimizationResult,
    SingleFlight,
    Summarizer,
    compute_fingerprint,
)
from context_mcp.core.config import AppSettings, ContextConfig
from context_mcp.services import CompletionService, MessagesRequest, ServiceContainer, build_container

__all__ = [
    "AppSettings",
    "CacheEntry",
    "CompletionService",
    "ContextConfig",
    "ContextManager",
    "MessagesRequest",
    "OptimizationResult",
    "ServiceContainer",
    "SingleFlight",
    "Summarizer",
    "build_container",
    "compute_fingerprint",
]

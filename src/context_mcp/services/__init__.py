"""Application services: completion handling and dependency wiring."""

from __future__ import annotations

from context_mcp.services.completion_service import CompletionService, MessageParam, MessagesRequest
from context_mcp.services.container import ServiceContainer, build_container

__all__ = [
    "CompletionService",
    "MessageParam",
    "MessagesRequest",
    "ServiceContainer",
    "build_container",
]

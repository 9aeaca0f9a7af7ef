"""Process-level hooks: logging setup and request log context."""

from __future__ import annotations

from context_mcp.hooks.logging_config import bind_request_context, clear_request_context, setup_logging

__all__ = [
    "bind_request_context",
    "clear_request_context",
    "setup_logging",
]

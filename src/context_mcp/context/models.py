"""Data models for the context optimizer."""

from __future__ import annotations

import dataclasses
import enum
import json
import time
from typing import Any, Optional

# Messages are kept as plain ``{"role": ..., "content": ...}`` dicts so they
# pass through to the completion backend untouched.
Message = dict[str, Any]


def message_text(message: Message) -> str:
    """Return the countable text of a message.

    String content is returned as-is.  Content block lists contribute the
    canonical text of every block, see ``block_text``.
    """
    content = message.get("content", "")
    if isinstance(content, str):
        return content
    return "\n".join(block_text(block) for block in content)


def block_text(block: Any) -> str:
    """Canonical text for one content block.

    ``text`` blocks give their text and ``tool_result`` blocks their nested
    content, tagged with the tool use id.  Any other block (``tool_use``,
    ``image``, ``document``) is rendered as sorted-key JSON so its payload
    is counted and fingerprinted.
    """
    if isinstance(block, str):
        return block
    if not isinstance(block, dict):
        return json.dumps(block, sort_keys=True, default=str)
    kind = block.get("type")
    if kind == "text":
        return str(block.get("text", ""))
    if kind == "tool_result":
        nested = block.get("content") or ""
        if isinstance(nested, list):
            nested = "\n".join(block_text(b) for b in nested)
        return f"[tool_result {block.get('tool_use_id', '')}] {nested}"
    return json.dumps(block, sort_keys=True, ensure_ascii=False, default=str)


class OptimizationState(str, enum.Enum):
    """States of one ``optimize_context`` pass."""

    PLANNING = "planning"
    NOT_NEEDED = "not_needed"
    CACHE_LOOKUP = "cache_lookup"
    COMPUTING = "computing"
    COMBINING = "combining"
    DEGRADED_FALLBACK = "degraded_fallback"
    DONE = "done"


class SummarySource(str, enum.Enum):
    """Where a summary came from."""

    LOCAL = "local"
    SHARED = "shared"
    COMPUTED = "computed"


@dataclasses.dataclass
class CacheEntry:
    """A cached summary for one fingerprint, with TTL tracking."""

    fingerprint: str
    summary_text: str
    token_count: int
    created_at: float = dataclasses.field(default_factory=time.time)
    ttl_seconds: int = 0
    method: str = "llm"

    @property
    def is_expired(self) -> bool:
        """Check if this entry has exceeded its TTL."""
        if self.ttl_seconds <= 0:
            return False
        return (time.time() - self.created_at) >= self.ttl_seconds

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            fingerprint=str(data["fingerprint"]),
            summary_text=str(data["summary_text"]),
            token_count=int(data["token_count"]),
            created_at=float(data.get("created_at", time.time())),
            ttl_seconds=int(data.get("ttl_seconds", 0)),
            method=str(data.get("method", "llm")),
        )


@dataclasses.dataclass(frozen=True)
class SplitPlan:
    """Keep/compress decision for one message history.

    The newest ``keep_count`` messages stay verbatim; the oldest
    ``compress_count`` messages form the segment to summarize.
    """

    keep_count: int
    compress_count: int
    reserved_tokens: int
    available_tokens: int
    total_tokens: int
    kept_tokens: int
    token_counts: tuple[int, ...] = ()
    over_budget: bool = False

    @property
    def needs_compression(self) -> bool:
        return self.compress_count > 0


@dataclasses.dataclass
class OptimizationResult:
    """Outcome of ``ContextManager.optimize_context``.

    ``cache_hit`` is ``None`` when no summary was needed.
    """

    messages: list[Message]
    original_count: int
    optimized_count: int
    conversation_id: str
    cache_hit: Optional[bool] = None
    degraded: bool = False
    over_budget: bool = False
    total_tokens: int = 0
    fingerprint: str = ""
    state: OptimizationState = OptimizationState.DONE
    summary_source: Optional[SummarySource] = None
    summarized: bool = False

    def metadata(self) -> dict[str, Any]:
        """Metadata fields surfaced to the API layer."""
        return {
            "context_optimized": True,
            "original_message_count": self.original_count,
            "optimized_message_count": self.optimized_count,
            "conversation_id": self.conversation_id,
        }

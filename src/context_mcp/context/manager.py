"""Context manager: fit a message history into a token budget.

One ``optimize_context`` pass walks these states::

    PLANNING ─┬─> NOT_NEEDED                         (history already fits)
              └─> CACHE_LOOKUP ─┬─> COMBINING ─> DONE  (local/shared hit)
                                └─> COMPUTING ─┬─> COMBINING ─> DONE
                                               └─> DEGRADED_FALLBACK

Only malformed input raises; everything else degrades and is flagged on
the returned ``OptimizationResult``.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any, Optional, Sequence

from context_mcp.context.budget import BudgetPlanner
from context_mcp.context.cache.tiered import TwoTierCache
from context_mcp.context.fingerprint import compute_fingerprint
from context_mcp.context.models import (
    CacheEntry,
    Message,
    OptimizationResult,
    OptimizationState,
    SplitPlan,
    SummarySource,
)
from context_mcp.context.protocols import ITokenCounter
from context_mcp.context.singleflight import SingleFlight
from context_mcp.context.summarizer import Summarizer
from context_mcp.core.metrics import IMetrics, NullMetrics
from context_mcp.exceptions import InvalidRequestError, SummarizationError
from context_mcp.providers.tokenizer import with_fallback

if TYPE_CHECKING:
    from context_mcp.core.config import ContextConfig

log = logging.getLogger(__name__)

SUMMARY_PREFIX = "[Summary of earlier conversation]\n"


def generate_conversation_id() -> str:
    return f"conv_{uuid.uuid4()}"


def validate_messages(messages: Any) -> None:
    """Reject histories the optimizer cannot reason about.

    Raises:
        InvalidRequestError: ``messages`` is not a list, or an item lacks a
            string ``role`` or a string/list ``content``.
    """
    if not isinstance(messages, (list, tuple)):
        raise InvalidRequestError("messages must be an array")
    for i, message in enumerate(messages):
        if not isinstance(message, dict):
            raise InvalidRequestError(f"messages[{i}] must be an object")
        role = message.get("role")
        if not isinstance(role, str) or not role:
            raise InvalidRequestError(f"messages[{i}].role is required")
        if "content" not in message:
            raise InvalidRequestError(f"messages[{i}].content is required")
        if not isinstance(message["content"], (str, list)):
            raise InvalidRequestError(f"messages[{i}].content must be a string or an array")


class ContextManager:
    """Orchestrate planning, fingerprinting, caching and summarization.

    All collaborators are injected; one instance is shared by every request
    in the process so the local cache and the singleflight map are shared.
    """

    def __init__(
        self,
        config: ContextConfig,
        token_counter: ITokenCounter,
        cache: TwoTierCache,
        summarizer: Summarizer,
        *,
        singleflight: Optional[SingleFlight[tuple[CacheEntry, SummarySource]]] = None,
        metrics: Optional[IMetrics] = None,
    ) -> None:
        self._config = config
        self._counter = with_fallback(token_counter)
        self._cache = cache
        self._summarizer = summarizer
        self._flight: SingleFlight[tuple[CacheEntry, SummarySource]] = singleflight or SingleFlight()
        self._metrics = metrics or NullMetrics()
        self._planner = BudgetPlanner(self._counter, config.reserve_fraction)

    @property
    def planner(self) -> BudgetPlanner:
        return self._planner

    def fingerprint(self, segment: Sequence[Message], model: str, max_tokens: int) -> str:
        return compute_fingerprint(segment, model, max_tokens, self._config.reserve_fraction)

    def count_tokens(self, text: str, model: Optional[str] = None) -> int:
        """Count ``text`` with the same counter the planner uses."""
        return self._counter.count(text, model or self._config.model)

    async def optimize_context(
        self,
        messages: Sequence[Message],
        conversation_id: Optional[str] = None,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> OptimizationResult:
        """Return ``messages`` fitted into ``max_tokens``.

        Raises:
            InvalidRequestError: For malformed input only.
        """
        validate_messages(messages)
        conversation_id = conversation_id or generate_conversation_id()
        model = model or self._config.model
        max_tokens = max_tokens or self._config.max_tokens
        original = list(messages)
        count = len(original)

        log.debug("Planning context split", extra={"conversation_id": conversation_id, "messages": count})
        plan = self._planner.plan(original, max_tokens, model)

        if not plan.needs_compression:
            degraded = plan.total_tokens > max_tokens
            if degraded:
                self._metrics.increment("degradedContexts")
            return OptimizationResult(
                messages=original,
                original_count=count,
                optimized_count=count,
                conversation_id=conversation_id,
                cache_hit=None,
                degraded=degraded,
                over_budget=plan.over_budget,
                total_tokens=plan.total_tokens,
                state=OptimizationState.NOT_NEEDED,
            )

        segment = original[: plan.compress_count]
        kept = original[plan.compress_count :]
        fingerprint = self.fingerprint(segment, model, max_tokens)

        try:
            entry, source = await self._resolve_summary(fingerprint, segment, model, plan)
        except SummarizationError as e:
            log.error(
                "Summarization and truncation failed, returning original history",
                extra={"conversation_id": conversation_id, "fingerprint": fingerprint, "error": str(e)},
            )
            self._metrics.increment("degradedContexts")
            return OptimizationResult(
                messages=original,
                original_count=count,
                optimized_count=count,
                conversation_id=conversation_id,
                cache_hit=False,
                degraded=True,
                over_budget=plan.over_budget,
                total_tokens=plan.total_tokens,
                fingerprint=fingerprint,
                state=OptimizationState.DEGRADED_FALLBACK,
            )

        cache_hit = source in (SummarySource.LOCAL, SummarySource.SHARED)
        if cache_hit:
            self._metrics.increment("cachedSummariesUsed")

        result = self._combine(entry, kept, plan, model, max_tokens)
        result.original_count = count
        result.conversation_id = conversation_id
        result.cache_hit = cache_hit
        result.fingerprint = fingerprint
        result.summary_source = source
        if result.degraded:
            self._metrics.increment("degradedContexts")

        log.info(
            "Context optimized",
            extra={
                "conversation_id": conversation_id,
                "original_count": count,
                "optimized_count": result.optimized_count,
                "cache_hit": cache_hit,
                "summary_source": source.value,
                "total_tokens": result.total_tokens,
                "degraded": result.degraded,
            },
        )
        return result

    # ── Cache lookup / computation ──────────────────────────────────

    async def _resolve_summary(
        self,
        fingerprint: str,
        segment: Sequence[Message],
        model: str,
        plan: SplitPlan,
    ) -> tuple[CacheEntry, SummarySource]:
        entry = await self._cache.get_local(fingerprint)
        if entry is not None:
            return entry, SummarySource.LOCAL

        async def load_or_compute() -> tuple[CacheEntry, SummarySource]:
            shared_entry = await self._cache.get_shared(fingerprint)
            if shared_entry is not None:
                return shared_entry, SummarySource.SHARED
            return await self._compute(fingerprint, segment, model, plan.reserved_tokens), SummarySource.COMPUTED

        (entry, source), joined = await self._flight.do(fingerprint, load_or_compute)
        if joined and source is SummarySource.COMPUTED:
            log.debug("Reused in-flight summary", extra={"fingerprint": fingerprint})
        return entry, source

    async def _compute(
        self,
        fingerprint: str,
        segment: Sequence[Message],
        model: str,
        target_tokens: int,
    ) -> CacheEntry:
        outcome = await self._summarizer.summarize(segment, model=model, target_tokens=target_tokens)
        ttl = self._config.summary_ttl_seconds
        entry = CacheEntry(
            fingerprint=fingerprint,
            summary_text=outcome.text,
            token_count=outcome.token_count,
            ttl_seconds=ttl,
            method=outcome.method,
        )
        # Only model summaries are cached.
        if outcome.method == "llm":
            await self._cache.store(entry, ttl_seconds=ttl)
            self._metrics.increment("newSummariesCreated")
        return entry

    # ── Combining ────────────────────────────────────────────────────

    def _summary_message(self, text: str) -> Message:
        return {"role": self._config.summary_role, "content": f"{SUMMARY_PREFIX}{text}"}

    def _combine(
        self,
        entry: CacheEntry,
        kept: list[Message],
        plan: SplitPlan,
        model: str,
        max_tokens: int,
    ) -> OptimizationResult:
        kept = list(kept)
        kept_counts = list(plan.token_counts[plan.compress_count :])
        summary_text = entry.summary_text
        summary_message = self._summary_message(summary_text)
        summary_tokens = self._counter.count(summary_message["content"], model)
        prefix_tokens = self._counter.count(SUMMARY_PREFIX, model)

        attempts = 0
        while summary_tokens + sum(kept_counts) > max_tokens and attempts < self._config.max_shrink_attempts:
            attempts += 1
            allowance = max_tokens - sum(kept_counts) - prefix_tokens
            if allowance > 0:
                clipped = self._summarizer.clip_to_tokens(summary_text, allowance, model)
                if clipped and clipped != summary_text:
                    summary_text = clipped
                    summary_message = self._summary_message(summary_text)
                    summary_tokens = self._counter.count(summary_message["content"], model)
                    continue
            if len(kept) > 1:
                # Drop the oldest kept message; the newest always stays.
                kept.pop(0)
                kept_counts.pop(0)
                continue
            break

        optimized = [summary_message, *kept]
        total = summary_tokens + sum(kept_counts)
        degraded = total > max_tokens
        if degraded:
            log.warning(
                "Optimized context still exceeds budget, returning best effort",
                extra={"total_tokens": total, "max_tokens": max_tokens, "shrink_attempts": attempts},
            )

        return OptimizationResult(
            messages=optimized,
            original_count=0,
            optimized_count=len(optimized),
            conversation_id="",
            degraded=degraded,
            over_budget=plan.over_budget,
            total_tokens=total,
            state=OptimizationState.DONE,
            summarized=True,
        )

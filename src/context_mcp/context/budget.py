"""Budget planning: decide which suffix of a history stays verbatim."""

from __future__ import annotations

import logging
from typing import Sequence

from context_mcp.context.models import Message, SplitPlan, message_text
from context_mcp.context.protocols import ITokenCounter

log = logging.getLogger(__name__)


class BudgetPlanner:
    """Split a history into a to-compress prefix and a verbatim suffix.

    When the whole history fits in ``max_tokens`` nothing is compressed.
    Otherwise ``int(max_tokens * reserve_fraction)`` tokens are reserved for
    the summary and the newest messages are kept while their running total
    stays within the remaining allowance.  The newest message is always
    kept, even when it alone is over budget (the plan is then flagged).
    """

    def __init__(self, token_counter: ITokenCounter, reserve_fraction: float = 0.2) -> None:
        if not 0.0 < reserve_fraction < 1.0:
            raise ValueError(f"reserve_fraction must be in (0, 1), got {reserve_fraction}")
        self._counter = token_counter
        self.reserve_fraction = reserve_fraction

    def count_messages(self, messages: Sequence[Message], model: str) -> list[int]:
        """Token count per message, computed once for this pass."""
        return [self._counter.count(message_text(m), model) for m in messages]

    def reserved_tokens(self, max_tokens: int) -> int:
        return int(max_tokens * self.reserve_fraction)

    def plan(self, messages: Sequence[Message], max_tokens: int, model: str) -> SplitPlan:
        counts = self.count_messages(messages, model)
        total = sum(counts)

        if total <= max_tokens:
            return SplitPlan(
                keep_count=len(messages),
                compress_count=0,
                reserved_tokens=0,
                available_tokens=max_tokens,
                total_tokens=total,
                kept_tokens=total,
                token_counts=tuple(counts),
            )

        reserved = self.reserved_tokens(max_tokens)
        available = max_tokens - reserved

        keep = 0
        kept_tokens = 0
        for count in reversed(counts):
            if kept_tokens + count > available:
                break
            kept_tokens += count
            keep += 1

        over_budget = False
        if keep == 0:
            # Newest message alone exceeds the allowance: keep it unmodified.
            keep = 1
            kept_tokens = counts[-1]
            over_budget = True
            log.warning(
                "Latest message exceeds token budget on its own",
                extra={"message_tokens": kept_tokens, "available_tokens": available},
            )

        return SplitPlan(
            keep_count=keep,
            compress_count=len(messages) - keep,
            reserved_tokens=reserved,
            available_tokens=available,
            total_tokens=total,
            kept_tokens=kept_tokens,
            token_counts=tuple(counts),
            over_budget=over_budget,
        )

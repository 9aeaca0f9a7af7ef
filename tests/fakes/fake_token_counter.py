"""Deterministic token counter fake: one token per whitespace-separated word."""

from __future__ import annotations

from typing import Optional


class FakeTokenCounter:
    """Word-count ITokenCounter for tests, so budgets are easy to reason about."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls = 0

    def count(self, text: str, model: Optional[str] = None) -> int:
        self.calls += 1
        if self.fail:
            raise RuntimeError("tokenizer offline")
        return len(text.split())


def words(n: int, word: str = "word") -> str:
    """Text that counts as exactly ``n`` tokens."""
    return " ".join([word] * n)

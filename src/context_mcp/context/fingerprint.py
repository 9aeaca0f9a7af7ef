"""Fingerprints: deterministic, collision-resistant summary cache keys."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Sequence

from context_mcp.context.models import Message, message_text

# Bumped whenever the canonical form changes so old cache entries stop matching.
FINGERPRINT_VERSION = 2


def canonicalize_segment(segment: Sequence[Message]) -> list[list[str]]:
    """Reduce a message segment to an ordered list of ``[role, text]`` pairs."""
    return [[str(m.get("role", "")), message_text(m)] for m in segment]


def compute_fingerprint(
    segment: Sequence[Message],
    model: str,
    max_tokens: int,
    reserve_fraction: float,
) -> str:
    """Compute a deterministic SHA-256 fingerprint for a to-compress segment.

    The key covers the segment content in order, the model id and both
    budget parameters, so the same inputs map to the same key in every
    process while any change to them yields a different one.
    """
    data: dict[str, Any] = {
        "v": FINGERPRINT_VERSION,
        "segment": canonicalize_segment(segment),
        "model": model,
        "max_tokens": int(max_tokens),
        "reserve_fraction": round(float(reserve_fraction), 6),
    }
    raw = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()

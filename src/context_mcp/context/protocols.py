"""Context optimizer protocols: contracts for the injected collaborators."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from context_mcp.context.models import CacheEntry


@runtime_checkable
class ITokenCounter(Protocol):
    """Token-count oracle.

    Counting is synchronous.
    """

    def count(self, text: str, model: Optional[str] = None) -> int:
        """Return an approximate, non-negative token count for ``text``."""
        ...


@runtime_checkable
class ISummaryCache(Protocol):
    """Protocol for one tier of the summary cache."""

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve an entry by fingerprint. Returns None on miss or expiry."""
        ...

    async def set(self, key: str, entry: CacheEntry, *, ttl_seconds: int = 0) -> None:
        """Store a fully-formed entry under ``key``.

        Args:
            key: Fingerprint.
            entry: Entry to store.
            ttl_seconds: Time-to-live in seconds. 0 = no expiry.
        """
        ...

    async def invalidate(self, key: str) -> None:
        """Remove a specific key from the cache."""
        ...

    async def clear(self) -> None:
        """Remove all entries from the cache."""
        ...

"""In-memory LRU summary cache with TTL support and async safety."""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections import OrderedDict

from context_mcp.context.models import CacheEntry


class LocalCache:
    """OrderedDict-based LRU cache with per-entry TTL expiry.

    Safe for concurrent coroutine access via ``asyncio.Lock``.  The local
    tier never fails; capacity pressure only evicts the least recently used
    entry.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self._max_entries = max_entries
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve an entry by key. Returns None on miss or TTL expiry."""
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired:
                del self._store[key]
                return None
            # Move to end (most recently used)
            self._store.move_to_end(key)
            return entry

    async def set(self, key: str, entry: CacheEntry, *, ttl_seconds: int = 0) -> None:
        """Store an entry with optional TTL. Evicts LRU entries if at capacity.

        A copy is stored so the local TTL clock starts now, independent of
        when a shared-tier entry was originally created.
        """
        stored = dataclasses.replace(entry, created_at=time.time(), ttl_seconds=ttl_seconds)
        async with self._lock:
            if key in self._store:
                del self._store[key]

            self._store[key] = stored
            self._store.move_to_end(key)

            while len(self._store) > self._max_entries:
                self._store.popitem(last=False)

    async def invalidate(self, key: str) -> None:
        """Remove a specific key from the cache."""
        async with self._lock:
            self._store.pop(key, None)

    async def clear(self) -> None:
        """Remove all entries."""
        async with self._lock:
            self._store.clear()

"""Two-tier summary cache: process-local LRU in front of a shared store.

Reads go Local → Shared; a Shared hit is copied into Local (read-through).
Writes go Shared → Local (write-through).  The shared tier is best-effort:
any ``SharedCacheError`` degrades that call to local-only and is logged,
never raised.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from context_mcp.context.models import CacheEntry
from context_mcp.context.protocols import ISummaryCache
from context_mcp.exceptions import SharedCacheError

log = logging.getLogger(__name__)


class TwoTierCache:
    """Compose a local and an optional shared ``ISummaryCache``."""

    def __init__(
        self,
        local: Optional[ISummaryCache],
        shared: Optional[ISummaryCache] = None,
    ) -> None:
        self._local = local
        self._shared = shared
        self._shared_available = True

    @property
    def local(self) -> Optional[ISummaryCache]:
        return self._local

    @property
    def shared(self) -> Optional[ISummaryCache]:
        return self._shared

    @property
    def shared_available(self) -> bool:
        """False after the last shared-tier call failed."""
        return self._shared is not None and self._shared_available

    def _mark_shared_failure(self, operation: str, error: SharedCacheError) -> None:
        if self._shared_available:
            log.warning(
                "Shared cache unavailable, continuing with local cache only",
                extra={"operation": operation, "error": str(error)},
            )
        else:
            log.debug("Shared cache still unavailable: %s", error)
        self._shared_available = False

    def _mark_shared_success(self) -> None:
        if not self._shared_available:
            log.info("Shared cache available again")
        self._shared_available = True

    async def get_local(self, key: str) -> CacheEntry | None:
        if self._local is None:
            return None
        return await self._local.get(key)

    async def get_shared(self, key: str) -> CacheEntry | None:
        """Look up the shared tier; a hit is copied into the local tier."""
        if self._shared is None:
            return None
        try:
            entry = await self._shared.get(key)
        except SharedCacheError as e:
            self._mark_shared_failure("get", e)
            return None
        self._mark_shared_success()

        if entry is None:
            return None
        if entry.is_expired:
            return None
        if self._local is not None:
            await self._local.set(key, entry, ttl_seconds=_remaining_ttl(entry))
        return entry

    async def store(self, entry: CacheEntry, *, ttl_seconds: int) -> None:
        """Write a fully-formed entry to the shared tier, then the local tier."""
        key = entry.fingerprint
        if self._shared is not None:
            try:
                await self._shared.set(key, entry, ttl_seconds=ttl_seconds)
            except SharedCacheError as e:
                self._mark_shared_failure("set", e)
            else:
                self._mark_shared_success()
        if self._local is not None:
            await self._local.set(key, entry, ttl_seconds=ttl_seconds)

    async def invalidate(self, key: str) -> None:
        if self._shared is not None:
            try:
                await self._shared.invalidate(key)
            except SharedCacheError as e:
                self._mark_shared_failure("invalidate", e)
        if self._local is not None:
            await self._local.invalidate(key)


def _remaining_ttl(entry: CacheEntry) -> int:
    """TTL left on a shared entry, so the local copy never outlives it."""
    if entry.ttl_seconds <= 0:
        return 0
    elapsed = time.time() - entry.created_at
    return max(1, int(entry.ttl_seconds - elapsed))

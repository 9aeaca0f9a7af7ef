"""Process-wide request and optimizer counters.

Counters live on an injectable ``IMetrics`` instance created once per
process (see ``services.container``) rather than in module globals, with an
explicit ``reset()`` lifecycle.  Increments are guarded by a lock so worker
threads and the event loop can share one instance.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Protocol, runtime_checkable

COUNTER_NAMES: tuple[str, ...] = (
    "requests",
    "successfulRequests",
    "failedRequests",
    "totalProcessingTime",
    "tokensCounted",
    "optimizedContexts",
    "cachedSummariesUsed",
    "newSummariesCreated",
    "degradedContexts",
)


@runtime_checkable
class IMetrics(Protocol):
    """Protocol for metric sinks."""

    def increment(self, name: str, value: float = 1) -> None:
        """Add ``value`` to the named counter. Unknown names are ignored."""
        ...

    def snapshot(self) -> dict[str, Any]:
        """Return current counters plus derived rates."""
        ...

    def reset(self) -> None:
        """Zero all counters and restart the uptime clock."""
        ...


class InMemoryMetrics:
    """Lock-guarded counter set mirroring the service's ``/metrics`` payload."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, float] = {}
        self._last_reset = time.time()
        self.reset()

    def increment(self, name: str, value: float = 1) -> None:
        with self._lock:
            if name in self._counters:
                self._counters[name] += value

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            last_reset = self._last_reset

        uptime_ms = (time.time() - last_reset) * 1000
        requests = counters["requests"]
        minutes = uptime_ms / 1000 / 60
        return {
            **counters,
            "lastResetTime": int(last_reset * 1000),
            "uptime": int(uptime_ms),
            "averageProcessingTime": counters["totalProcessingTime"] / requests if requests > 0 else 0,
            "requestsPerMinute": round(requests / minutes, 2) if requests > 0 and minutes > 0 else 0,
        }

    def reset(self) -> None:
        with self._lock:
            self._counters = {name: 0 for name in COUNTER_NAMES}
            self._last_reset = time.time()


class NullMetrics:
    """Metric sink that discards everything."""

    def increment(self, name: str, value: float = 1) -> None:
        return None

    def snapshot(self) -> dict[str, Any]:
        return {}

    def reset(self) -> None:
        return None

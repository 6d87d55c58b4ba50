"""Bounded FIFO cache for routing decisions.

Eviction:
- Insertion order, not access order. Once `capacity` is exceeded the oldest
  inserted key is dropped; reads never refresh an entry.

Concurrency:
- Reads are plain dict lookups and take no lock.
- Insert, evict, delete and clear hold one `threading.Lock`.
"""

import threading

from routewise.core.types import RoutingDecision


class DecisionCache:
    def __init__(self, capacity: int = 1000):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: dict[str, RoutingDecision] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> RoutingDecision | None:
        return self._entries.get(key)

    def put(self, key: str, decision: RoutingDecision) -> None:
        with self._lock:
            if key in self._entries:
                self._entries[key] = decision
                return
            self._entries[key] = decision
            while len(self._entries) > self.capacity:
                oldest = next(iter(self._entries))
                del self._entries[oldest]

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

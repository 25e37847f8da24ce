# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Bounded TTL cache for origin decisions.

Entries are kept in insertion order. When the cache is full the oldest
inserted entry is evicted; overwriting a key keeps its position. Expired
entries are dropped lazily when looked up.
"""

import time
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from models.entities import CacheEntry
from models.enums import CacheAction

DEFAULT_CAPACITY = 1000
DEFAULT_TTL_SECONDS = 3600


class _Missing:
    """Marker for a key that is not cached (as opposed to a cached no-match)."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class OriginCache:
    """Thread-safe FIFO/TTL map from lower-cased origin to matched origin."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        diagnostics=None
    ):
        """
        Initialize the cache.

        Args:
            capacity: Maximum number of entries
            ttl: Entry lifetime in seconds
            clock: Monotonic time source in seconds
            diagnostics: Optional DiagnosticLog for CACHE events
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._diagnostics = diagnostics
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _report(self, action: CacheAction, data: Dict[str, Any]) -> None:
        if self._diagnostics is not None:
            self._diagnostics.cache(action, data)

    def lookup(self, key: str) -> Any:
        """
        Get a cached decision.

        Args:
            key: Lower-cased origin

        Returns:
            The cached decision (a matched origin or None for a cached
            no-match), or MISSING when absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                action = CacheAction.MISS
            elif self._clock() - entry.inserted_at > self.ttl:
                del self._entries[key]
                action = CacheAction.EXPIRED
            else:
                action = CacheAction.HIT

        self._report(action, {"origin": key})
        return entry.decision if action == CacheAction.HIT else MISSING

    def store(self, key: str, decision: Optional[str]) -> None:
        """
        Cache a decision, evicting the oldest entry if the cache is full.

        Args:
            key: Lower-cased origin
            decision: Matched origin, or None for no match
        """
        evicted = None
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.capacity:
                evicted, _ = self._entries.popitem(last=False)
            self._entries[key] = CacheEntry(key=key, decision=decision, inserted_at=self._clock())

        if evicted is not None:
            self._report(CacheAction.EVICT, {"evictedOrigin": evicted, "reason": "MAX_SIZE_REACHED"})
        self._report(CacheAction.SET, {"origin": key, "result": decision})

    def clear(self) -> int:
        """Drop every entry; returns how many were removed."""
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()

        self._report(CacheAction.CLEAR, {"clearedCount": cleared})
        return cleared

    def keys(self):
        """Snapshot of cached keys in insertion order."""
        with self._lock:
            return list(self._entries.keys())

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "ttl": self.ttl,
        }

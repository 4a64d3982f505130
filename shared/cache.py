"""Cache utilities: normalized cache keys plus a bounded LRU point cache.

This module provides:
- Topic normalization and the deterministic cache key used for every
    generation request (one normalization for all pipeline variants).
- ``PointCache``, an in-process, process-lifetime store of generated point
    sets bounded by ``Settings.max_cache_size``. Eviction happens on insert
    and removes the least recently used entry by ``last_used_at``.

Nothing is persisted; a restart starts with an empty cache.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional

from shared.models import CacheEntry


def normalize_topic(topic: str) -> str:
    """Case-fold, trim and collapse internal whitespace."""
    return " ".join((topic or "").strip().lower().split())


def cache_key(topic: str, count: int) -> str:
    """Build the cache key for a (topic, count) pair.

    Equivalent topics ("Solar  Energy " and "solar energy") map to the same
    key, e.g. ``solar_energy_3``.
    """
    return f"{normalize_topic(topic).replace(' ', '_')}_{int(count)}"


class PointCache:
    """Bounded in-memory LRU cache of generated point sets.

    Ties on ``last_used_at`` are broken by insertion order: the entry
    encountered first while scanning (the oldest insert) is evicted.
    """

    def __init__(
        self, max_size: int = 200, clock: Callable[[], float] = time.time
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            entry.last_used_at = self._clock()
            self._hits += 1
            return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_lru()
            self._entries[key] = entry

    def new_entry(self, points: list[str], generation_time_ms: int) -> CacheEntry:
        """Build an entry stamped with the cache clock."""
        now = self._clock()
        return CacheEntry(
            points=list(points),
            generation_time_ms=generation_time_ms,
            last_used_at=now,
            created_at=now,
        )

    def _evict_lru(self) -> Optional[str]:
        oldest_key = None
        oldest_time = None
        for key, entry in self._entries.items():
            if oldest_time is None or entry.last_used_at < oldest_time:
                oldest_time = entry.last_used_at
                oldest_key = key
        if oldest_key is not None:
            del self._entries[oldest_key]
        return oldest_key

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    @property
    def hit_rate(self) -> float:
        """Percentage of lookups served from the cache, one decimal place."""
        total = self._hits + self._misses
        if total == 0:
            return 0.0
        return round(100.0 * self._hits / total, 1)

    def stats(self) -> dict:
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
        }

"""In-memory LRU cache store."""

import logging
from collections import OrderedDict
from typing import Callable, Optional

from pondus.cache.base import DEFAULT_MAX_ENTRIES, DEFAULT_TTL, CacheEntry, CacheStats, CacheStore

logger = logging.getLogger(__name__)


class MemoryCache(CacheStore):
    """Process-lifetime cache bounded by ``max_entries``.

    The ``OrderedDict`` doubles as the access-order list: the first key is
    always the least recently used one, so eviction and promotion are O(1).
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        stale_while_revalidate: float = 0.0,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__(ttl, stale_while_revalidate, max_entries, clock)
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    async def peek(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        if self.is_dead(entry):
            del self._entries[key]
            self._stats.misses += 1
            self._stats.entries = len(self._entries)
            logger.debug("cache expired: %s", key)
            return None

        self._entries.move_to_end(key)
        self._stats.hits += 1
        return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        if key not in self._entries and len(self._entries) >= self.options.max_entries:
            lru_key, _ = self._entries.popitem(last=False)
            logger.debug("cache evicted: %s", lru_key)

        self._entries[key] = entry
        self._entries.move_to_end(key)
        self._stats.entries = len(self._entries)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)
        self._stats.entries = len(self._entries)

    async def clear(self) -> None:
        self._entries.clear()
        self._stats = CacheStats()

    async def stats(self) -> CacheStats:
        return self._stats.model_copy()

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        return list(self._entries)

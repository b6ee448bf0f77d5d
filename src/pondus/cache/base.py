"""Cache entry model and the store contract shared by all backends."""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, model_validator

DEFAULT_TTL = 5 * 60.0
DEFAULT_MAX_ENTRIES = 1000


class CacheOptions(BaseModel):
    """Store-level configuration (seconds)."""

    ttl: float = DEFAULT_TTL
    stale_while_revalidate: float = 0.0
    max_entries: int = DEFAULT_MAX_ENTRIES


class CacheEntry(BaseModel):
    """A cached value with its freshness metadata."""

    model_config = ConfigDict(frozen=True)

    data: Any = None
    timestamp: float
    etag: Optional[str] = None
    expires_at: float

    @model_validator(mode="after")
    def _check_expiry(self) -> "CacheEntry":
        if self.expires_at < self.timestamp:
            raise ValueError("expires_at must not precede timestamp")
        return self

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def refreshed(self, expires_at: float) -> "CacheEntry":
        """Copy with a new expiry, used when the remote answers 304."""
        return self.model_copy(update={"expires_at": max(expires_at, self.timestamp)})


class CacheStats(BaseModel):
    """Hit/miss counters for a store."""

    hits: int = 0
    misses: int = 0
    entries: int = 0
    size: Optional[int] = None  # bytes, if available


class CacheStore(ABC):
    """Async key/value store of :class:`CacheEntry` objects.

    Any backend implementing these operations can be handed to the
    orchestrator. ``clock`` returns epoch seconds and is shared with the
    orchestrator so freshness checks agree with the store's own expiry.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        stale_while_revalidate: float = 0.0,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.options = CacheOptions(
            ttl=ttl,
            stale_while_revalidate=stale_while_revalidate,
            max_entries=max_entries,
        )
        self.clock: Callable[[], float] = clock or time.time

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry, or None if absent or past its grace window."""

    @abstractmethod
    async def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the entry even past its grace window; no stats, no LRU touch."""

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        """Store an entry, evicting if the store is full."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    @abstractmethod
    async def stats(self) -> CacheStats:
        ...

    async def has(self, key: str) -> bool:
        """Check if an entry exists and is within its grace window."""
        return await self.get(key) is not None

    def is_stale(self, entry: CacheEntry) -> bool:
        """Expired, but possibly still inside the stale-while-revalidate window."""
        return entry.is_expired(self.clock())

    def is_dead(self, entry: CacheEntry) -> bool:
        return self.clock() > entry.expires_at + self.options.stale_while_revalidate

    def create_entry(self, data: Any, etag: Optional[str] = None, ttl: Optional[float] = None) -> CacheEntry:
        """Build an entry stamped now, expiring after ``ttl`` (store default)."""
        now = self.clock()
        return CacheEntry(
            data=data,
            timestamp=now,
            etag=etag,
            expires_at=now + (self.options.ttl if ttl is None else ttl),
        )

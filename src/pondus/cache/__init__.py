"""Request cache: stores, in-flight deduplication and cached fetch."""

from pathlib import Path
from typing import Literal, Optional, Union

from pondus.cache.base import CacheEntry, CacheOptions, CacheStats, CacheStore
from pondus.cache.dedup import InFlightRegistry, deduplicated_fetch, get_default_registry
from pondus.cache.disk import DiskCache
from pondus.cache.memory import MemoryCache
from pondus.cache.orchestrator import (
    CachedFetcher,
    CachedFetchOptions,
    CachedFetchResult,
    cached_fetch,
    wait_for_revalidations,
)

CacheType = Literal["memory", "disk"]

__all__ = [
    "CacheEntry",
    "CacheOptions",
    "CacheStats",
    "CacheStore",
    "CacheType",
    "CachedFetchOptions",
    "CachedFetchResult",
    "CachedFetcher",
    "DiskCache",
    "InFlightRegistry",
    "MemoryCache",
    "cached_fetch",
    "create_cache",
    "deduplicated_fetch",
    "get_default_cache",
    "get_default_registry",
    "wait_for_revalidations",
]


def create_cache(
    type: CacheType = "memory",
    cache_dir: Union[str, Path, None] = None,
    **options,  # type: ignore[no-untyped-def]
) -> CacheStore:
    """Build a cache store of the given backend type."""
    if type == "disk":
        return DiskCache(cache_dir=cache_dir, **options)
    if type == "memory":
        return MemoryCache(**options)
    raise ValueError(f"Unknown cache type: {type}")


_default_cache: Optional[MemoryCache] = None


def get_default_cache() -> MemoryCache:
    """Process-wide memory cache for callers that do not inject one."""
    global _default_cache
    if _default_cache is None:
        _default_cache = MemoryCache()
    return _default_cache

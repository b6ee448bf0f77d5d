"""Cached fetch: TTL freshness, deduplication and stale-while-revalidate."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel

from pondus.cache.base import DEFAULT_TTL, CacheStore
from pondus.cache.dedup import InFlightRegistry, get_default_registry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references to fire-and-forget revalidation tasks.
_background: set[asyncio.Task] = set()


class CachedFetchOptions(BaseModel):
    """Per-call caching behaviour (seconds)."""

    ttl: float = DEFAULT_TTL
    stale_while_revalidate: float = 0.0
    skip_cache: bool = False
    force_revalidate: bool = False


class CachedFetchResult(BaseModel, Generic[T]):
    """Data plus where it came from."""

    data: T
    from_cache: bool
    stale: bool
    not_modified: bool = False
    etag: Optional[str] = None


async def cached_fetch(
    store: CacheStore,
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    options: Optional[CachedFetchOptions] = None,
    registry: Optional[InFlightRegistry] = None,
) -> CachedFetchResult[Any]:
    """Serve ``key`` from ``store`` when fresh, otherwise fetch it once.

    An expired entry still inside its stale-while-revalidate window is
    returned immediately while a deduplicated refresh runs in the
    background; that refresh never raises into the caller.
    """
    options = options or CachedFetchOptions()
    if registry is None:
        registry = get_default_registry()

    if options.skip_cache:
        data = await registry.fetch(key, fetcher)
        return CachedFetchResult(data=data, from_cache=False, stale=False)

    cached = await store.get(key)
    if cached is not None:
        expired = cached.is_expired(store.clock())

        if not expired and not options.force_revalidate:
            logger.debug("cache hit: %s", key)
            return CachedFetchResult(data=cached.data, from_cache=True, stale=False, etag=cached.etag)

        if expired and options.stale_while_revalidate > 0:
            logger.debug("serving stale, revalidating: %s", key)
            _revalidate_in_background(store, key, fetcher, options.ttl, registry)
            return CachedFetchResult(data=cached.data, from_cache=True, stale=True, etag=cached.etag)

    logger.debug("cache miss: %s", key)
    data = await registry.fetch(key, fetcher)
    await store.set(key, store.create_entry(data, ttl=options.ttl))
    return CachedFetchResult(data=data, from_cache=False, stale=False)


def _revalidate_in_background(
    store: CacheStore,
    key: str,
    fetcher: Callable[[], Awaitable[Any]],
    ttl: float,
    registry: InFlightRegistry,
) -> None:
    async def refresh() -> None:
        data = await fetcher()
        await store.set(key, store.create_entry(data, ttl=ttl))

    async def run() -> None:
        try:
            await registry.fetch(f"{key}:revalidate", refresh)
        except Exception as e:
            logger.debug("background revalidation of %s failed: %s", key, e)

    task = asyncio.ensure_future(run())
    _background.add(task)
    task.add_done_callback(_background.discard)


async def wait_for_revalidations() -> None:
    """Wait until every background revalidation started so far has settled."""
    while _background:
        await asyncio.gather(*list(_background), return_exceptions=True)


class CachedFetcher:
    """A store and registry bound together for repeated cached fetches."""

    def __init__(
        self,
        store: CacheStore,
        registry: Optional[InFlightRegistry] = None,
        options: Optional[CachedFetchOptions] = None,
    ) -> None:
        self.store = store
        self.registry = registry if registry is not None else InFlightRegistry()
        self.options = options or CachedFetchOptions(
            ttl=store.options.ttl,
            stale_while_revalidate=store.options.stale_while_revalidate,
        )

    async def fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        **overrides: Any,
    ) -> CachedFetchResult[Any]:
        options = self.options.model_copy(update=overrides) if overrides else self.options
        return await cached_fetch(self.store, key, fetcher, options, self.registry)

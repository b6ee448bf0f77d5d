"""In-flight request deduplication."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlightRegistry:
    """Collapses concurrent fetches for the same key into one task.

    The first caller for a key starts ``fetcher()`` as a task; later callers
    await that same task until it settles. The registration is dropped as
    soon as the task finishes, whatever the outcome, so the next call after
    settlement starts a fresh fetch.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def pending(self, key: str) -> bool:
        return key in self._tasks

    async def fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = self._start(key, fetcher)
        else:
            logger.debug("joining in-flight request: %s", key)
        # Shielded so one cancelled waiter does not cancel the shared fetch.
        return await asyncio.shield(task)

    def _start(self, key: str, fetcher: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        task: Optional[asyncio.Task] = None

        async def run() -> Any:
            try:
                return await fetcher()
            finally:
                self._release(key, task)

        task = asyncio.ensure_future(run())
        self._tasks[key] = task
        task.add_done_callback(lambda t: self._settled(key, t))
        return task

    def _release(self, key: str, task: Optional[asyncio.Task]) -> None:
        if task is not None and self._tasks.get(key) is task:
            del self._tasks[key]

    def _settled(self, key: str, task: asyncio.Task) -> None:
        self._release(key, task)
        # Mark the exception retrieved; waiters that are still around get it
        # through the shield.
        if not task.cancelled():
            task.exception()

    def clear(self) -> None:
        """Forget every registration (running tasks are left alone)."""
        self._tasks.clear()


_default_registry: Optional[InFlightRegistry] = None


def get_default_registry() -> InFlightRegistry:
    """Process-wide registry for callers that do not inject their own."""
    global _default_registry
    if _default_registry is None:
        _default_registry = InFlightRegistry()
    return _default_registry


async def deduplicated_fetch(
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    registry: Optional[InFlightRegistry] = None,
) -> T:
    """Run ``fetcher`` unless a fetch for ``key`` is already in flight."""
    if registry is None:
        registry = get_default_registry()
    return await registry.fetch(key, fetcher)

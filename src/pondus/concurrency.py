"""Bounded fan-out and retry helpers for rate-limited API work."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Iterable, Optional, Protocol, TypeVar

from pondus.errors import AbortedError, AuthError, GitHubError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Signal(Protocol):
    """Anything with ``is_set()`` (``asyncio.Event``, ``threading.Event``)."""

    def is_set(self) -> bool:
        ...


# ── Batch processing ──────────────────────────────────────────────────────

async def batch_process(
    items: Iterable[T],
    processor: Callable[[T], Awaitable[R]],
    concurrency: int = 10,
    on_progress: Optional[Callable[[int, int], None]] = None,
    signal: Optional[Signal] = None,
) -> list[R]:
    """Run ``processor`` over ``items`` with at most ``concurrency`` in flight.

    Items are processed in consecutive chunks; a chunk must finish before
    the next one starts. The signal is checked before each chunk only, so
    work already started is never interrupted. Results keep input order.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    items = list(items)
    total = len(items)
    results: list[R] = []
    completed = 0

    async def run(item: T) -> R:
        nonlocal completed
        result = await processor(item)
        completed += 1
        if on_progress:
            on_progress(completed, total)
        return result

    for start in range(0, total, concurrency):
        if signal is not None and signal.is_set():
            raise AbortedError()
        chunk = items[start:start + concurrency]
        results.extend(await asyncio.gather(*(run(item) for item in chunk)))

    return results


# ── Retry ─────────────────────────────────────────────────────────────────

def is_retryable(error: BaseException) -> bool:
    """Client errors (except 429 and rate limits) and auth/abort are final."""
    if isinstance(error, (AuthError, AbortedError)):
        return False
    if isinstance(error, GitHubError):
        return error.is_retryable
    return True


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay with up to one second of jitter, capped."""
    return min(base_delay * 2 ** attempt + random.uniform(0, 1), max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> T:
    """Call ``fn`` up to ``max_retries + 1`` times with exponential backoff."""
    last_error: Optional[Exception] = None
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except Exception as e:
            last_error = e
            if not is_retryable(e):
                raise
            if attempt < max_retries:
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt + 1, max_retries + 1, e, delay,
                )
                if on_retry:
                    on_retry(e, attempt + 1)
                await asyncio.sleep(delay)

    assert last_error is not None
    raise last_error

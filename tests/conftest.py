"""Pytest configuration and fixtures."""

import pytest

from pondus.cache import InFlightRegistry, MemoryCache
from pondus.client import GitHubClient
from pondus.config import Settings
from pondus.fetcher import GitHubFetcher


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return MemoryCache(ttl=60.0, stale_while_revalidate=0.0, max_entries=100, clock=clock)


@pytest.fixture
def registry():
    return InFlightRegistry()


@pytest.fixture
def settings():
    return Settings(github_token="test-token", max_retries=0)


@pytest.fixture
def github_client(settings, memory_cache, registry):
    return GitHubClient(
        settings=settings,
        fetcher=GitHubFetcher(token="test-token"),
        cache=memory_cache,
        registry=registry,
    )

"""Tests for in-flight request deduplication."""

import asyncio

import pytest

from pondus.cache import InFlightRegistry, deduplicated_fetch, get_default_registry


class TestInFlightRegistry:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, registry):
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"value": calls}

        results = await asyncio.gather(*(registry.fetch("k", fetcher) for _ in range(10)))

        assert calls == 1
        assert all(r is results[0] for r in results)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_errors_are_shared_and_registration_dropped(self, registry):
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            registry.fetch("k", fetcher),
            registry.fetch("k", fetcher),
            return_exceptions=True,
        )
        assert calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)
        assert results[0] is results[1]
        assert not registry.pending("k")

    @pytest.mark.asyncio
    async def test_call_after_settlement_fetches_again(self, registry):
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            return calls

        assert await registry.fetch("k", fetcher) == 1
        assert await registry.fetch("k", fetcher) == 2

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_collapse(self, registry):
        async def fetcher():
            await asyncio.sleep(0)
            return object()

        a, b = await asyncio.gather(registry.fetch("a", fetcher), registry.fetch("b", fetcher))
        assert a is not b

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_fetch(self, registry):
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return "done"

        first = asyncio.ensure_future(registry.fetch("k", fetcher))
        second = asyncio.ensure_future(registry.fetch("k", fetcher))
        await asyncio.sleep(0)
        first.cancel()
        release.set()

        assert await second == "done"
        with pytest.raises(asyncio.CancelledError):
            await first

    @pytest.mark.asyncio
    async def test_pending_while_in_flight(self, registry):
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return 1

        task = asyncio.ensure_future(registry.fetch("k", fetcher))
        await asyncio.sleep(0)
        assert registry.pending("k")
        release.set()
        await task
        assert not registry.pending("k")


class TestDefaultRegistry:
    @pytest.mark.asyncio
    async def test_module_level_helper(self):
        async def fetcher():
            return 42

        assert await deduplicated_fetch("default-k", fetcher) == 42
        assert isinstance(get_default_registry(), InFlightRegistry)

    @pytest.mark.asyncio
    async def test_explicit_empty_registry_is_used(self):
        registry = InFlightRegistry()
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return 1

        task = asyncio.ensure_future(deduplicated_fetch("x", fetcher, registry))
        await asyncio.sleep(0)
        assert registry.pending("x")
        release.set()
        assert await task == 1

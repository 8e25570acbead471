"""Tests for the TTL cache: expiry, invalidation, stampede coalescing."""

import asyncio

import pytest

from src.store.cache import MISS, TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(30, clock=clock)


class TestExpiry:
    def test_miss_on_empty(self, cache: TTLCache) -> None:
        assert cache.get("GET:/tbl") is MISS

    def test_hit_within_ttl(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.put("GET:/tbl", {"list": []})
        clock.now += 29.9
        assert cache.get("GET:/tbl") == {"list": []}

    def test_expired_entry_never_returned(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.put("GET:/tbl", {"list": []})
        clock.now += 30
        assert cache.get("GET:/tbl") is MISS
        assert len(cache) == 0

    def test_ttl_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            TTLCache(0)


class TestInvalidation:
    def test_prefix_invalidation(self, cache: TTLCache) -> None:
        cache.put("GET:https://s/tbl?where=(a,eq,1)", 1)
        cache.put("GET:https://s/tbl?where=(a,eq,2)", 2)
        cache.put("GET:https://s/other", 3)
        assert cache.invalidate("GET:https://s/tbl?") == 2
        assert cache.get("GET:https://s/other") == 3

    def test_discard_single_key(self, cache: TTLCache) -> None:
        cache.put("k", 1)
        assert cache.discard("k") is True
        assert cache.discard("k") is False

    def test_invalidate_all(self, cache: TTLCache) -> None:
        cache.put("a", 1)
        cache.put("b", 2)
        cache.invalidate_all()
        assert len(cache) == 0


class TestGetOrLoad:
    @pytest.mark.anyio
    async def test_concurrent_misses_share_one_load(self, cache: TTLCache) -> None:
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"list": [1]}, True

        results = await asyncio.gather(*(cache.get_or_load("k", loader) for _ in range(5)))
        assert calls == 1
        assert all(r == {"list": [1]} for r in results)

    @pytest.mark.anyio
    async def test_second_call_served_from_cache(self, cache: TTLCache) -> None:
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            return "payload", True

        await cache.get_or_load("k", loader)
        await cache.get_or_load("k", loader)
        assert calls == 1

    @pytest.mark.anyio
    async def test_uncacheable_result_not_stored(self, cache: TTLCache) -> None:
        async def loader():
            return "degraded", False

        assert await cache.get_or_load("k", loader) == "degraded"
        assert cache.get("k") is MISS

    @pytest.mark.anyio
    async def test_loader_error_reaches_every_waiter(self, cache: TTLCache) -> None:
        async def loader():
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            cache.get_or_load("k", loader),
            cache.get_or_load("k", loader),
            return_exceptions=True,
        )
        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.get("k") is MISS


class TestInFlightLoads:
    @pytest.mark.anyio
    async def test_cancelled_leader_does_not_fail_follower(self, cache: TTLCache) -> None:
        release = asyncio.Event()
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            await release.wait()
            return "payload", True

        leader = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)
        follower = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)

        leader.cancel()
        release.set()

        assert await follower == "payload"
        with pytest.raises(asyncio.CancelledError):
            await leader
        assert calls == 1
        assert cache.get("k") == "payload"

    @pytest.mark.anyio
    async def test_invalidation_during_load_discards_its_result(self, cache: TTLCache) -> None:
        release = asyncio.Event()
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            version = calls
            await release.wait()
            return f"v{version}", True

        before = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)
        cache.invalidate("k")
        after = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)
        release.set()

        assert await before == "v1"
        assert await after == "v2"
        assert calls == 2
        assert cache.get("k") == "v2"

    @pytest.mark.anyio
    async def test_invalidate_all_marks_loads_stale(self, cache: TTLCache) -> None:
        release = asyncio.Event()

        async def loader():
            await release.wait()
            return "old", True

        pending = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)
        cache.invalidate_all()
        release.set()

        assert await pending == "old"
        assert cache.get("k") is MISS

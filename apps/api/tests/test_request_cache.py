"""
Tests for the client RequestCache: TTL, coalescing of concurrent reads and
write/invalidate precedence over in-flight fetches.
"""
import asyncio

import pytest

from storage_client.cache import RequestCache

KEY = ("u1", "assessment", "2024-03-01")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class SlowFetcher:
    """Counts calls; each call waits until released."""

    def __init__(self, value="fresh"):
        self.value = value
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        await self.release.wait()
        return self.value


@pytest.mark.asyncio
async def test_concurrent_reads_share_one_fetch():
    cache = RequestCache()
    fetcher = SlowFetcher()

    waiters = [asyncio.ensure_future(cache.get_or_fetch(KEY, 60, fetcher)) for _ in range(5)]
    await asyncio.sleep(0)
    fetcher.release.set()
    results = await asyncio.gather(*waiters)

    assert results == ["fresh"] * 5
    assert fetcher.calls == 1
    assert cache.in_flight() == 0


@pytest.mark.asyncio
async def test_fresh_entry_served_without_fetch():
    clock = FakeClock()
    cache = RequestCache(clock=clock)
    cache.put(KEY, "cached", 600)

    fetcher = SlowFetcher()
    assert await cache.get_or_fetch(KEY, 600, fetcher) == "cached"
    assert fetcher.calls == 0


@pytest.mark.asyncio
async def test_expired_entry_refetched():
    clock = FakeClock()
    cache = RequestCache(clock=clock)
    cache.put(KEY, "old", 600)
    clock.now = 601

    fetcher = SlowFetcher("new")
    fetcher.release.set()
    assert await cache.get_or_fetch(KEY, 600, fetcher) == "new"
    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_force_refresh_bypasses_fresh_entry():
    cache = RequestCache()
    cache.put(KEY, "cached", 600)

    fetcher = SlowFetcher("new")
    fetcher.release.set()
    assert await cache.get_or_fetch(KEY, 600, fetcher, force_refresh=True) == "new"
    assert cache.peek(KEY) == "new"


@pytest.mark.asyncio
async def test_forced_read_does_not_join_unforced_flight():
    cache = RequestCache()
    fetcher = SlowFetcher()

    plain = asyncio.ensure_future(cache.get_or_fetch(KEY, 60, fetcher))
    forced = asyncio.ensure_future(cache.get_or_fetch(KEY, 60, fetcher, force_refresh=True))
    await asyncio.sleep(0)
    fetcher.release.set()
    await asyncio.gather(plain, forced)

    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_none_is_not_cached():
    cache = RequestCache()
    calls = []

    async def missing():
        calls.append(1)
        return None

    assert await cache.get_or_fetch(KEY, 600, missing) is None
    assert await cache.get_or_fetch(KEY, 600, missing) is None
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_empty_list_is_cached():
    cache = RequestCache()
    calls = []

    async def empty():
        calls.append(1)
        return []

    assert await cache.get_or_fetch(KEY, 600, empty) == []
    assert await cache.get_or_fetch(KEY, 600, empty) == []
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_failed_fetch_clears_flight_and_propagates():
    cache = RequestCache()

    async def boom():
        raise RuntimeError("network down")

    with pytest.raises(RuntimeError):
        await cache.get_or_fetch(KEY, 600, boom)
    assert cache.in_flight() == 0
    assert cache.peek(KEY) is None


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_fetch():
    cache = RequestCache()
    fetcher = SlowFetcher()

    first = asyncio.ensure_future(cache.get_or_fetch(KEY, 60, fetcher))
    second = asyncio.ensure_future(cache.get_or_fetch(KEY, 60, fetcher))
    await asyncio.sleep(0)

    first.cancel()
    fetcher.release.set()

    assert await second == "fresh"
    assert fetcher.calls == 1
    assert cache.peek(KEY) == "fresh"


@pytest.mark.asyncio
async def test_write_during_fetch_wins():
    cache = RequestCache()
    fetcher = SlowFetcher("stale")

    pending = asyncio.ensure_future(cache.get_or_fetch(KEY, 60, fetcher))
    await asyncio.sleep(0)
    cache.put(KEY, "written", 60)
    fetcher.release.set()

    assert await pending == "stale"
    assert cache.peek(KEY) == "written"


def test_invalidate_user_only_drops_that_user():
    cache = RequestCache()
    cache.put(("u1", "assessment", "a"), 1, 60)
    cache.put(("u1", "fatigue_scales", "all"), [1], 60)
    cache.put(("u2", "assessment", "a"), 2, 60)

    cache.invalidate_user("u1")

    assert cache.peek(("u1", "assessment", "a")) is None
    assert cache.peek(("u1", "fatigue_scales", "all")) is None
    assert cache.peek(("u2", "assessment", "a")) == 2

"""
Entity cache tests
实体缓存测试
"""

import asyncio

import pytest

from undercover_client.core.exceptions import NetworkError, NotFoundError
from undercover_client.services.cache import EntityCache


class Counter:
    """Fetcher returning an increasing value per call"""

    def __init__(self, fail_after=None, error=None):
        self.calls = 0
        self.fail_after = fail_after
        self.error = error or NetworkError("offline")

    async def __call__(self):
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise self.error
        return f"value-{self.calls}"


class TestEntityCache:
    """测试缓存读取与失效"""

    async def test_fresh_value_served_from_cache(self):
        cache = EntityCache(stale_after=300)
        fetch = Counter()

        assert await cache.get(("groups",), fetch) == "value-1"
        assert await cache.get(("groups",), fetch) == "value-1"
        assert fetch.calls == 1

    async def test_force_refetches(self):
        cache = EntityCache(stale_after=300)
        fetch = Counter()
        await cache.get(("groups",), fetch)
        assert await cache.get(("groups",), fetch, force=True) == "value-2"

    async def test_zero_stale_time_always_refetches(self):
        cache = EntityCache(stale_after=0)
        fetch = Counter()
        await cache.get(("words",), fetch)
        await cache.get(("words",), fetch)
        assert fetch.calls == 2

    async def test_concurrent_reads_share_one_fetch(self):
        cache = EntityCache(stale_after=300)
        release = asyncio.Event()
        calls = []

        async def slow_fetch():
            calls.append(1)
            await release.wait()
            return "shared"

        first = asyncio.create_task(cache.get(("rooms",), slow_fetch))
        second = asyncio.create_task(cache.get(("rooms",), slow_fetch))
        await asyncio.sleep(0)
        release.set()

        assert await first == "shared"
        assert await second == "shared"
        assert len(calls) == 1

    async def test_failed_refetch_keeps_last_good_value(self):
        """刷新失败时保留旧值并记录错误"""
        cache = EntityCache(stale_after=300)
        fetch = Counter(fail_after=1)
        await cache.get(("games", "g1"), fetch)

        value = await cache.get(("games", "g1"), fetch, force=True)
        entry = cache.entry(("games", "g1"))

        assert value == "value-1"
        assert entry.is_error
        assert entry.stale
        assert isinstance(entry.error, NetworkError)

    async def test_failure_without_value_raises(self):
        cache = EntityCache(stale_after=300)
        fetch = Counter(fail_after=0, error=NotFoundError("gone", status_code=404))

        with pytest.raises(NotFoundError):
            await cache.get(("games", "missing"), fetch)

    async def test_refresh_without_fetcher(self):
        cache = EntityCache()
        with pytest.raises(KeyError):
            await cache.refresh(("nothing",))

    async def test_invalidate_marks_prefix_stale(self):
        cache = EntityCache(stale_after=300)
        cache.set(("games", "g1"), "game")
        cache.set(("games", "g1", "round"), "round")
        cache.set(("games", "g2"), "other")

        refetched = await cache.invalidate(("games", "g1"))

        assert refetched == []
        assert cache.entry(("games", "g1")).stale
        assert cache.entry(("games", "g1", "round")).stale
        assert not cache.entry(("games", "g2")).stale
        # values stay readable while stale
        assert cache.peek(("games", "g1")) == "game"

    async def test_invalidate_refetches_subscribed_keys(self):
        cache = EntityCache(stale_after=300)
        fetch = Counter()
        seen = []
        unsubscribe = cache.subscribe(("groups",), lambda entry: seen.append(entry.value), fetcher=fetch)
        await cache.get(("groups",))

        refetched = await cache.invalidate(("groups",))

        assert refetched == [("groups",)]
        assert seen == ["value-1", "value-2"]

        unsubscribe()
        await cache.invalidate(("groups",))
        assert fetch.calls == 2

    async def test_subscriber_error_does_not_break_store(self):
        cache = EntityCache()

        def broken(entry):
            raise RuntimeError("listener bug")

        cache.subscribe(("words",), broken)
        cache.set(("words",), ["pair"])
        assert cache.peek(("words",)) == ["pair"]

    async def test_clear_drops_values(self):
        cache = EntityCache()
        cache.set(("auth", "profile"), "me")
        cache.clear()
        assert cache.peek(("auth", "profile")) is None
        assert not cache.entry(("auth", "profile")).has_value

    async def test_invalidate_during_fetch_rereads(self):
        """失效时正在进行的请求结果作废，重新获取"""
        cache = EntityCache(stale_after=300)
        server = {"value": "before"}
        release = asyncio.Event()
        seen = []

        async def fetch():
            value = server["value"]
            await release.wait()
            return value

        cache.subscribe(("games", "g1"), lambda entry: seen.append(entry.value), fetcher=fetch)
        reader = asyncio.create_task(cache.get(("games", "g1"), force=True))
        await asyncio.sleep(0)

        server["value"] = "after"
        invalidation = asyncio.create_task(cache.invalidate(("games", "g1")))
        await asyncio.sleep(0)
        release.set()

        assert await invalidation == [("games", "g1")]
        assert await reader == "after"
        assert cache.peek(("games", "g1")) == "after"
        assert not cache.entry(("games", "g1")).stale
        assert "before" not in seen

    async def test_invalidate_during_first_fetch(self):
        cache = EntityCache(stale_after=300)
        server = {"value": "before"}
        release = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(1)
            value = server["value"]
            await release.wait()
            return value

        reader = asyncio.create_task(cache.get(("rooms",), fetch))
        await asyncio.sleep(0)
        server["value"] = "after"
        await cache.invalidate(("rooms",))
        release.set()

        assert await reader == "after"
        assert len(calls) == 2

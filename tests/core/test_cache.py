import asyncio
import unittest

from vulntree.core.cache import CacheEntry, MemoryStore, SWRCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class Fetcher:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0)
        value = self.values.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


class TestSWRCache(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.store = MemoryStore()
        self.cache = SWRCache("packument", ttl=300, stale_ttl=3600, store=self.store, clock=self.clock)

    async def test_fresh_entry_is_served_without_fetching(self):
        fetch = Fetcher("v1", "v2")

        self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v1")
        self.clock.now += 299
        self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v1")
        self.assertEqual(fetch.calls, 1)

    async def test_keys_are_namespaced(self):
        await self.cache.get_or_fetch("react", Fetcher("v1"))

        self.assertIsNotNone(await self.store.get("packument:react"))

    async def test_stale_entry_is_served_while_refreshing(self):
        fetch = Fetcher("v1", "v2")
        await self.cache.get_or_fetch("react", fetch)

        self.clock.now += 301
        self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v1")

        await self.cache.drain()
        self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v2")
        self.assertEqual(fetch.calls, 2)

    async def test_only_one_refresh_per_key(self):
        fetch = Fetcher("v1", "v2", "v3")
        await self.cache.get_or_fetch("react", fetch)

        self.clock.now += 301
        stale = await asyncio.gather(*(self.cache.get_or_fetch("react", fetch) for _ in range(5)))
        await self.cache.drain()

        self.assertEqual(stale, ["v1"] * 5)
        self.assertEqual(fetch.calls, 2)

    async def test_expired_entry_waits_for_fetch(self):
        fetch = Fetcher("v1", "v2")
        await self.cache.get_or_fetch("react", fetch)

        self.clock.now += 300 + 3600
        self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v2")

    async def test_expired_entry_is_dropped(self):
        fetch = Fetcher("v1", ConnectionError("down"))
        await self.cache.get_or_fetch("react", fetch)

        self.clock.now += 300 + 3600
        with self.assertRaises(ConnectionError):
            await self.cache.get_or_fetch("react", fetch)

        self.assertEqual(len(self.store), 0)

    async def test_concurrent_misses_share_one_fetch(self):
        fetch = Fetcher("v1")

        values = await asyncio.gather(*(self.cache.get_or_fetch("lodash", fetch) for _ in range(4)))

        self.assertEqual(values, ["v1"] * 4)
        self.assertEqual(fetch.calls, 1)

    async def test_failures_are_not_cached(self):
        fetch = Fetcher(ConnectionError("down"), "v1")

        with self.assertRaises(ConnectionError):
            await self.cache.get_or_fetch("react", fetch)

        self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v1")
        self.assertEqual(fetch.calls, 2)

    async def test_failed_refresh_keeps_stale_entry(self):
        fetch = Fetcher("v1", ConnectionError("down"))
        await self.cache.get_or_fetch("react", fetch)

        self.clock.now += 301
        with self.assertLogs(level="WARNING") as logs:
            self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v1")
            await self.cache.drain()

        self.assertIn("Background refresh failed", logs.output[0])
        entry = await self.store.get("packument:react")
        self.assertEqual(entry, CacheEntry(value="v1", stored_at=1000.0))

    async def test_invalidate(self):
        fetch = Fetcher("v1", "v2")
        await self.cache.get_or_fetch("react", fetch)

        await self.cache.invalidate("react")

        self.assertEqual(await self.cache.get_or_fetch("react", fetch), "v2")

    async def test_unbounded_stale_window(self):
        cache = SWRCache("analysis", ttl=10, clock=self.clock)
        fetch = Fetcher("v1", "v2")
        await cache.get_or_fetch("k", fetch)

        self.clock.now += 10 ** 6
        self.assertEqual(await cache.get_or_fetch("k", fetch), "v1")
        await cache.drain()

    def test_rejects_non_positive_ttl(self):
        with self.assertRaises(ValueError):
            SWRCache("x", ttl=0)


if __name__ == "__main__":
    unittest.main()

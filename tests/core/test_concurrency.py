import asyncio
import unittest

from vulntree.core.concurrency import map_with_concurrency


class TestMapWithConcurrency(unittest.IsolatedAsyncioTestCase):

    async def test_never_exceeds_limit(self):
        active = 0
        peak = 0

        async def work(item, index):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01 * (item % 3))
            active -= 1
            return item * 2

        results = await map_with_concurrency(list(range(10)), work, limit=3)

        self.assertEqual(results, [i * 2 for i in range(10)])
        self.assertLessEqual(peak, 3)
        self.assertEqual(peak, 3)

    async def test_results_keep_input_order(self):
        delays = {"a": 0.03, "b": 0.0, "c": 0.01}

        async def work(item, index):
            await asyncio.sleep(delays[item])
            return f"{index}:{item}"

        results = await map_with_concurrency(["a", "b", "c"], work, limit=10)

        self.assertEqual(results, ["0:a", "1:b", "2:c"])

    async def test_error_rejects_whole_call(self):
        async def work(item, index):
            if item == 2:
                raise KeyError("boom")
            await asyncio.sleep(0)
            return item

        with self.assertRaises(KeyError):
            await map_with_concurrency([0, 1, 2, 3, 4], work, limit=2)

    async def test_no_new_items_after_failure(self):
        started = []

        async def work(item, index):
            started.append(item)
            if item == 0:
                raise RuntimeError("first item failed")
            await asyncio.sleep(0.01)
            return item

        with self.assertRaises(RuntimeError):
            await map_with_concurrency(list(range(20)), work, limit=1)

        self.assertEqual(started, [0])

    async def test_empty_input(self):
        async def work(item, index):
            raise AssertionError("should not be called")

        self.assertEqual(await map_with_concurrency([], work), [])

    async def test_invalid_limit(self):
        async def work(item, index):
            return item

        with self.assertRaises(ValueError):
            await map_with_concurrency([1], work, limit=0)


if __name__ == "__main__":
    unittest.main()

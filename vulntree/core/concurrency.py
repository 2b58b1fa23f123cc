import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_CONCURRENCY = 10


async def map_with_concurrency(
    items: Sequence[T],
    fn: Callable[[T, int], Awaitable[U]],
    limit: int = DEFAULT_CONCURRENCY,
) -> List[U]:
    """
    Apply ``fn(item, index)`` to every item with at most ``limit`` calls in flight.

    Results come back in input order. The first exception raised by ``fn`` is
    re-raised; calls already running are left to finish and their results are
    dropped, and no further items are started.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    results: List[Optional[U]] = [None] * len(items)
    next_index = 0
    failed = False

    async def worker() -> None:
        nonlocal next_index, failed
        while not failed and next_index < len(items):
            index = next_index
            next_index += 1
            try:
                results[index] = await fn(items[index], index)
            except Exception:
                failed = True
                raise

    workers = [asyncio.ensure_future(worker()) for _ in range(min(limit, len(items)))]
    for task in workers:
        task.add_done_callback(_retrieve)

    await asyncio.gather(*workers)
    return results  # type: ignore[return-value]


def _retrieve(task: "asyncio.Future") -> None:
    # Late failures after the first one would otherwise be reported as never retrieved
    if not task.cancelled():
        task.exception()

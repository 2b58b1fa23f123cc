"""Async TTL cache with stale-while-revalidate reads over a swappable store."""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    stored_at: float


class CacheStore(ABC):
    """Backing store for cache entries (in-process dict, external KV, ...)."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class MemoryStore(CacheStore):
    def __init__(self) -> None:
        self._data: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._data.get(key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        self._data[key] = entry

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class SWRCache:
    """
    Entries younger than ``ttl`` are served as-is. Older entries are still
    served for up to ``stale_ttl`` more seconds while a single background
    refresh replaces them; past that window the caller waits for a fresh
    fetch. Concurrent misses for the same key share one fetch.

    Fetch failures are never cached.
    """

    def __init__(
        self,
        namespace: str,
        ttl: float,
        stale_ttl: Optional[float] = None,
        store: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        self.namespace = namespace
        self.ttl = ttl
        self.stale_ttl = stale_ttl
        self.store = store if store is not None else MemoryStore()
        self._clock = clock
        self._inflight: Dict[str, "asyncio.Task[Any]"] = {}

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _is_servable_stale(self, age: float) -> bool:
        return self.stale_ttl is None or age < self.ttl + self.stale_ttl

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        full_key = self._key(key)
        entry = await self.store.get(full_key)

        if entry is not None:
            age = self._clock() - entry.stored_at
            if age < self.ttl:
                return entry.value

            if self._is_servable_stale(age):
                if full_key not in self._inflight:
                    logging.debug(f"Cache stale for {full_key} (age {age:.0f}s), refreshing in background")
                    self._start(full_key, self._refresh(full_key, fetch))
                return entry.value

            # Past the stale window: drop it so unused keys do not pile up
            await self.store.delete(full_key)

        task = self._inflight.get(full_key)
        if task is None:
            logging.debug(f"Cache miss for {full_key}")
            task = self._start(full_key, self._fetch_and_store(full_key, fetch))

        return await asyncio.shield(task)

    def _start(self, full_key: str, coro: Awaitable[Any]) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(coro)
        self._inflight[full_key] = task
        task.add_done_callback(lambda t: self._settle(full_key, t))
        return task

    def _settle(self, full_key: str, task: "asyncio.Task[Any]") -> None:
        self._inflight.pop(full_key, None)
        # Background refreshes may finish with nobody awaiting them
        if not task.cancelled():
            task.exception()

    async def _fetch_and_store(self, full_key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        value = await fetch()
        await self.store.set(full_key, CacheEntry(value=value, stored_at=self._clock()))
        return value

    async def _refresh(self, full_key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await self._fetch_and_store(full_key, fetch)
        except Exception as e:
            # The stale entry stays in place until it ages out
            logging.warning(f"Background refresh failed for {full_key}: {e}")
            raise

    async def invalidate(self, key: str) -> None:
        await self.store.delete(self._key(key))

    async def drain(self) -> None:
        """Wait for in-flight fetches and refreshes to settle."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

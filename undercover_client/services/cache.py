"""
Entity cache
实体缓存 - 按 (资源类型, id) 键缓存，失效后重新获取
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from undercover_client.core.config import settings
from undercover_client.core.exceptions import UndercoverError

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, ...]
Fetcher = Callable[[], Awaitable[Any]]
Subscriber = Callable[["CacheEntry"], None]


@dataclass(frozen=True)
class CacheEntry:
    """
    Snapshot of one cached entity. Entries are never mutated, a refresh
    swaps in a new one, so a reader always sees a whole value.
    """
    value: Any = None
    error: Optional[UndercoverError] = None
    updated_at: Optional[float] = None
    stale: bool = True

    @property
    def has_value(self) -> bool:
        return self.updated_at is not None

    @property
    def is_error(self) -> bool:
        return self.error is not None


EMPTY_ENTRY = CacheEntry()


def _under(key: CacheKey, prefix: CacheKey) -> bool:
    return key[:len(prefix)] == prefix


class EntityCache:
    """Latest known value per key, refetched on invalidation"""

    def __init__(self, stale_after: Optional[float] = None):
        self.stale_after = settings.CACHE_STALE_SECONDS if stale_after is None else stale_after
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._fetchers: Dict[CacheKey, Fetcher] = {}
        self._subscribers: Dict[CacheKey, List[Subscriber]] = {}
        # key -> (generation the fetch started under, task)
        self._inflight: Dict[CacheKey, Tuple[int, asyncio.Task]] = {}
        self._generations: Dict[CacheKey, int] = {}

    def entry(self, key: CacheKey) -> CacheEntry:
        return self._entries.get(key, EMPTY_ENTRY)

    def peek(self, key: CacheKey) -> Any:
        return self.entry(key).value

    def keys(self) -> List[CacheKey]:
        return list(self._entries)

    def _is_fresh(self, entry: CacheEntry) -> bool:
        if not entry.has_value or entry.stale:
            return False
        return time.monotonic() - entry.updated_at < self.stale_after

    def _store(self, key: CacheKey, entry: CacheEntry) -> None:
        self._entries[key] = entry
        for callback in list(self._subscribers.get(key, [])):
            try:
                callback(entry)
            except Exception as e:
                logger.error(f"Cache subscriber for {key} failed: {e}", exc_info=True)

    async def get(self, key: CacheKey, fetcher: Optional[Fetcher] = None, force: bool = False) -> Any:
        """
        Cached value for ``key``, fetching when missing, stale or forced.

        When a refetch fails but an older value exists, the older value is
        returned and the error stays on the entry. With nothing to fall back
        on the error is raised.
        """
        if fetcher is not None:
            self._fetchers[key] = fetcher
        entry = self.entry(key)
        if not force and self._is_fresh(entry):
            return entry.value
        entry = await self.refresh(key)
        if entry.is_error and not entry.has_value:
            raise entry.error
        return entry.value

    async def refresh(self, key: CacheKey) -> CacheEntry:
        """
        Refetch one key. Concurrent callers share a single in-flight fetch.

        A fetch that was already running when the key got invalidated is not
        joined: its result is dropped and a new fetch is started, so callers
        always see a value read after the last invalidation.
        """
        while True:
            generation = self._generations.get(key, 0)
            running = self._inflight.get(key)
            if running is not None and running[0] == generation:
                task = running[1]
            else:
                if key not in self._fetchers:
                    raise KeyError(f"No fetcher registered for {key}")
                task = asyncio.ensure_future(self._fetch(key, generation))
                self._inflight[key] = (generation, task)
                task.add_done_callback(lambda t, k=key: self._forget(k, t))
            entry = await asyncio.shield(task)
            if self._generations.get(key, 0) == generation:
                return entry

    def _forget(self, key: CacheKey, task: asyncio.Task) -> None:
        running = self._inflight.get(key)
        if running is not None and running[1] is task:
            del self._inflight[key]

    async def _fetch(self, key: CacheKey, generation: int) -> CacheEntry:
        try:
            value = await self._fetchers[key]()
        except UndercoverError as e:
            logger.warning(f"Refetch of {key} failed ({e.kind}): {e}")
            entry = replace(self.entry(key), error=e, stale=True)
        else:
            entry = CacheEntry(value=value, error=None, updated_at=time.monotonic(), stale=False)
        if self._generations.get(key, 0) != generation:
            logger.debug(f"Dropping fetch of {key} started before an invalidation")
            return self.entry(key)
        self._store(key, entry)
        return entry

    def set(self, key: CacheKey, value: Any) -> None:
        """Seed a value without fetching"""
        self._store(key, CacheEntry(value=value, updated_at=time.monotonic(), stale=False))

    async def invalidate(self, *prefixes: CacheKey) -> List[CacheKey]:
        """
        Mark every key under ``prefixes`` stale and refetch the ones somebody
        is subscribed to. Returns the refetched keys.
        """
        known = list(self._entries) + [key for key in self._inflight if key not in self._entries]
        matched = [key for key in known if any(_under(key, p) for p in prefixes)]
        for key in matched:
            self._generations[key] = self._generations.get(key, 0) + 1
            entry = self._entries.get(key)
            if entry is not None and not entry.stale:
                self._entries[key] = replace(entry, stale=True)

        active = [key for key in matched if self._subscribers.get(key) and key in self._fetchers]
        if active:
            logger.debug(f"Refetching {len(active)} invalidated keys")
            await asyncio.gather(*(self.refresh(key) for key in active))
        return active

    def subscribe(self, key: CacheKey, callback: Subscriber, fetcher: Optional[Fetcher] = None) -> Callable[[], None]:
        """Call ``callback`` with every new entry for ``key``; returns an unsubscribe function"""
        if fetcher is not None:
            self._fetchers[key] = fetcher
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    def clear(self) -> None:
        """Drop every value (logout); subscriptions and fetchers survive"""
        self._entries.clear()

"""TTL cache for idempotent store reads.

Keys are fully qualified request targets (method + URL + query string), so
distinct filters never collide. Entries expire after one fixed, global TTL.

Concurrent misses for the same key are coalesced: the first caller starts the
loader as its own task, later callers await that task instead of issuing a
duplicate upstream call. Callers await through ``asyncio.shield``, so one
caller giving up does not cancel the load for the others. Invalidating a key
while its load is in flight marks that load stale: its result is still
returned to the callers that joined it, but it is not stored, and later
callers start a fresh load.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class _Miss:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS: Any = _Miss()


@dataclass
class CacheEntry:
    key: str
    value: Any
    stored_at: float


class _Load:
    """One in-flight loader task for a key."""

    __slots__ = ("task", "stale")

    def __init__(self) -> None:
        self.task: asyncio.Task | None = None
        self.stale = False


def _consume_exception(task: asyncio.Task) -> None:
    # Retrieve the error even when every waiter was cancelled.
    if not task.cancelled():
        task.exception()


class TTLCache:
    """In-process key → (value, timestamp) map with fixed expiry."""

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, _Load] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISS

    def get(self, key: str) -> Any:
        """Return the cached value, or ``MISS`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return MISS
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            return MISS
        return entry.value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())

    def discard(self, key: str) -> bool:
        self._mark_stale(lambda k: k == key)
        return self._entries.pop(key, None) is not None

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        self._mark_stale(lambda k: k.startswith(prefix))
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("Invalidated %d cache entries under %s", len(doomed), prefix)
        return len(doomed)

    def invalidate_all(self) -> None:
        self._mark_stale(lambda k: True)
        self._entries.clear()

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[tuple[Any, bool]]],
    ) -> Any:
        """Return the cached value or load it exactly once per key.

        ``loader`` returns ``(value, cacheable)``; only cacheable values are
        stored. A loader exception propagates to every waiter.
        """
        value = self.get(key)
        if value is not MISS:
            return value

        load = self._inflight.get(key)
        if load is None:
            load = _Load()
            self._inflight[key] = load
            load.task = asyncio.get_running_loop().create_task(self._run(key, load, loader))
            load.task.add_done_callback(_consume_exception)
        return await asyncio.shield(load.task)

    async def _run(
        self,
        key: str,
        load: _Load,
        loader: Callable[[], Awaitable[tuple[Any, bool]]],
    ) -> Any:
        try:
            value, cacheable = await loader()
        finally:
            if self._inflight.get(key) is load:
                del self._inflight[key]
        if cacheable and not load.stale:
            self.put(key, value)
        elif load.stale:
            logger.debug("Discarded stale load for %s", key)
        return value

    def _mark_stale(self, matches: Callable[[str], bool]) -> None:
        for key in [k for k in self._inflight if matches(k)]:
            self._inflight.pop(key).stale = True

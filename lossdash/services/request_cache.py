"""In-process keyed cache with expiry and request de-duplication."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class _Miss:
    """Sentinel returned by RequestCache.get for absent or expired keys."""

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS = _Miss()


@dataclass
class CacheEntry:
    """A cached value and the monotonic time it stops being fresh."""

    value: Any
    expires_at: float


class RequestCache:
    """
    Keyed cache shared by the reference-data loader and the incident loader.

    Features:
    - Per-entry time-to-live
    - At most one producer in flight per key; concurrent callers share it
    - Manual invalidation, which also detaches an in-flight producer

    Everything runs on one event loop, so no locks are needed: the in-flight
    table is the only synchronization.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._in_flight: dict[Hashable, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Any:
        """Return the cached value, or MISS if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return MISS
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return MISS
        return entry.value

    def is_in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    async def get_or_fetch(
        self,
        key: Hashable,
        producer: Callable[[], Awaitable[Any]],
        ttl: float,
    ) -> Any:
        """
        Return a fresh cached value or run the producer once for everyone.

        Args:
            key: Cache key
            producer: Zero-argument coroutine function producing the value
            ttl: Seconds the produced value stays fresh (<= 0 disables storage)

        Returns:
            The cached or produced value

        Raises:
            Whatever the producer raised; failures are never cached
        """
        value = self.get(key)
        if value is not MISS:
            return value

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._produce(key, producer, ttl))
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task
        else:
            logger.debug(f"Joining in-flight request for {key!r}")

        # Shield so one cancelled caller does not cancel the shared request
        return await asyncio.shield(task)

    async def _produce(
        self,
        key: Hashable,
        producer: Callable[[], Awaitable[Any]],
        ttl: float,
    ) -> Any:
        me = asyncio.current_task()
        try:
            value = await producer()
        finally:
            if self._in_flight.get(key) is me:
                del self._in_flight[key]
                owned = True
            else:
                # Invalidated while running: the result belongs to no one
                owned = False

        if owned and ttl > 0:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        return value

    def invalidate(self, key: Hashable) -> None:
        """Force the next get_or_fetch for key to run its producer."""
        self._entries.pop(key, None)
        self._in_flight.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._in_flight.clear()


def _consume_exception(task: asyncio.Task) -> None:
    # Mark failures as retrieved when every waiter has gone away
    if not task.cancelled():
        task.exception()

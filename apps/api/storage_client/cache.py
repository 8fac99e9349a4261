"""
Client read cache with in-flight request coalescing.

Entries are keyed by (user_id, namespace, key) and expire after a per-entry TTL.
Concurrent misses for the same key share one fetch. A write or delete that lands
while a fetch is in flight wins: the stale fetch result is returned to its
waiters but not stored.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str]


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class RequestCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._in_flight: Dict[Tuple[CacheKey, bool], asyncio.Future] = {}
        self._generations: Dict[CacheKey, int] = {}

    def peek(self, key: CacheKey) -> Optional[Any]:
        """The cached value if it is still fresh, else None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def put(self, key: CacheKey, value: Any, ttl_s: float) -> None:
        self._bump(key)
        if value is None:
            self._entries.pop(key, None)
            return
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_s)

    def invalidate(self, key: CacheKey) -> None:
        self._bump(key)
        self._entries.pop(key, None)

    def invalidate_user(self, user_id: str) -> None:
        for key in [k for k in self._entries if k[0] == user_id]:
            self.invalidate(key)

    def in_flight(self) -> int:
        return len(self._in_flight)

    async def get_or_fetch(
        self,
        key: CacheKey,
        ttl_s: float,
        fetcher: Callable[[], Awaitable[Any]],
        force_refresh: bool = False,
    ) -> Any:
        """
        Serve a fresh entry, or join / start the fetch for this key.

        Forced and unforced reads are separate flights: a forced read never
        settles for a fetch that started before it was asked for.
        """
        if not force_refresh:
            cached = self.peek(key)
            if cached is not None:
                return cached

        flight_key = (key, force_refresh)
        flight = self._in_flight.get(flight_key)
        if flight is None:
            generation = self._generations.get(key, 0)
            flight = asyncio.ensure_future(self._fetch(key, flight_key, generation, ttl_s, fetcher))
            self._in_flight[flight_key] = flight

        # A cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(flight)

    async def _fetch(self, key: CacheKey, flight_key, generation: int, ttl_s: float, fetcher) -> Any:
        try:
            value = await fetcher()
        finally:
            self._in_flight.pop(flight_key, None)

        if self._generations.get(key, 0) != generation:
            logger.debug(f"Discarding fetch result for {key}: written while in flight")
            return value
        self.put(key, value, ttl_s)
        return value

    def _bump(self, key: CacheKey) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1

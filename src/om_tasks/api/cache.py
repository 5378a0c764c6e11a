# src/om_tasks/api/cache.py

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import quote

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class CacheEntry:
    payload: Any
    fetched_at: float


class ResponseCache:
    """
    Time-to-live cache for idempotent async reads.

    - Entries older than ttl_seconds are treated as absent and overwritten on the next fetch.
    - No size-based eviction; callers bound memory with clear_all() on explicit refresh.
    - No single-flight: two concurrent misses for the same key both run their producer.
    - Producer errors propagate and are never cached.
    """

    def __init__(self, ttl_seconds: float = 300.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._fresh(key) is not None

    @staticmethod
    def make_key(operation: str, *args: Any) -> str:
        parts = [operation]
        for a in args:
            # Percent-encoded: a part never contains ":".
            parts.append("" if a is None else quote(str(a), safe=""))
        return ":".join(parts)

    def _fresh(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self._ttl:
            return None
        return entry

    async def get_or_fetch(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        entry = self._fresh(key)
        if entry is not None:
            self.hits += 1
            logger.debug("cache hit key=%s", key)
            return entry.payload

        self.misses += 1
        logger.debug("cache miss key=%s", key)
        payload = await producer()
        self._entries[key] = CacheEntry(payload=payload, fetched_at=self._clock())
        return payload

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear_all(self) -> None:
        n = len(self._entries)
        self._entries.clear()
        if n:
            logger.info("Response cache cleared (%d entries)", n)

"""
Concurrent key-value cache with a pluggable expiry policy.

One primitive backs both shared analysis caches: token metadata (entries never
expire) and fiat quotes (fixed TTL). get_or_load() gives atomic
check-then-insert per key: concurrent misses for the same key await a single
load, while loads for different keys proceed independently.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class ExpiryPolicy:
    """ttl_sec=None means entries never expire."""

    ttl_sec: float | None = None

    def is_fresh(self, stored_at: float, now: float) -> bool:
        return self.ttl_sec is None or now - stored_at < self.ttl_sec


NEVER_EXPIRE = ExpiryPolicy()


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float


class AsyncCache(Generic[K, V]):
    def __init__(
        self,
        policy: ExpiryPolicy = NEVER_EXPIRE,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy
        self._clock = clock
        self._entries: dict[K, _Entry[V]] = {}
        self._locks: dict[K, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and self.policy.is_fresh(entry.stored_at, self._clock())

    def get(self, key: K) -> V | None:
        """Fresh cached value or None."""
        entry = self._entries.get(key)
        if entry is None or not self.policy.is_fresh(entry.stored_at, self._clock()):
            return None
        return entry.value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = _Entry(value, self._clock())

    def snapshot(self) -> dict[K, V]:
        """Copy of all fresh entries."""
        now = self._clock()
        return {
            k: e.value for k, e in self._entries.items() if self.policy.is_fresh(e.stored_at, now)
        }

    async def get_or_load(self, key: K, loader: Callable[[], Awaitable[V]]) -> V:
        """
        Return the fresh cached value, or run loader once and cache its result.

        If loader raises, nothing is cached and the exception propagates to every
        waiter that triggered the load.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another waiter may have populated it while we waited.
            cached = self.get(key)
            if cached is not None:
                return cached
            value = await loader()
            self.set(key, value)
            return value

"""
Short-lived record of recently seen transaction signatures for one address stream.

Owned by exactly one subscriber; never shared across addresses.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable

DEFAULT_DEDUP_WINDOW_SEC = 30.0
DEFAULT_PURGE_AFTER_SEC = 60.0
DEFAULT_SWEEP_INTERVAL_SEC = 60.0


class DedupCache:
    """
    seen(signature) is False the first time and True for repeats within window_sec.

    A repeat after the window has elapsed counts as new and refreshes the
    entry. sweep() drops entries older than purge_after_sec.
    """

    def __init__(
        self,
        window_sec: float = DEFAULT_DEDUP_WINDOW_SEC,
        purge_after_sec: float = DEFAULT_PURGE_AFTER_SEC,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_sec = window_sec
        self.purge_after_sec = max(purge_after_sec, window_sec)
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def seen(self, signature: str) -> bool:
        now = self._clock()
        with self._lock:
            first_seen = self._entries.get(signature)
            if first_seen is not None and now - first_seen < self.window_sec:
                return True
            self._entries[signature] = now
            return False

    def sweep(self) -> int:
        """Remove expired entries; return how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [s for s, ts in self._entries.items() if now - ts > self.purge_after_sec]
            for sig in expired:
                del self._entries[sig]
        return len(expired)

    async def run_sweeper(
        self,
        stop_event: asyncio.Event,
        interval_sec: float = DEFAULT_SWEEP_INTERVAL_SEC,
    ) -> None:
        """Sweep every interval_sec until stop_event is set (or the task is cancelled)."""
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_sec)
            except asyncio.TimeoutError:
                self.sweep()

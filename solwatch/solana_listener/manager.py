"""
Registry of per-address stream subscribers.

Responsibilities:
- Map watched address -> StreamSubscriber under one short-held lock.
- Start subscribers in the background (track never waits for a connection).
- Report observability stats without touching the network.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field, replace
from typing import Callable

from solwatch.solana_listener.listener import (
    SignatureCallback,
    StreamSubscriber,
    SubscriberConfig,
)
from solwatch.solwatch_logging import get_logger, short

logger = get_logger(__name__)

SubscriberFactory = Callable[[str, str, SignatureCallback, SubscriberConfig], StreamSubscriber]

DEFAULT_SHUTDOWN_TIMEOUT_SEC = 10.0


@dataclass
class SubscriptionStats:
    tracked: int = 0
    open: int = 0
    dropped: list[str] = field(default_factory=list)
    """Addresses intended to be connected but currently not (sorted)."""


class SubscriptionManager:
    """
    Owns every StreamSubscriber. track/untrack must be called from the event
    loop thread; list/stats are safe from anywhere.
    """

    def __init__(
        self,
        ws_url: str,
        on_signature: SignatureCallback,
        *,
        commitment: str = "processed",
        subscriber_config: SubscriberConfig | None = None,
        subscriber_factory: SubscriberFactory | None = None,
    ) -> None:
        self._ws_url = ws_url
        self._on_signature = on_signature
        self._config = replace(subscriber_config or SubscriberConfig(), commitment=commitment)
        self._factory = subscriber_factory or StreamSubscriber
        self._lock = threading.Lock()
        self._subs: dict[str, StreamSubscriber] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def track(self, address: str) -> bool:
        """Start a subscriber for address. Returns False if it was already tracked."""
        address = address.strip()
        if not address:
            raise ValueError("address must be non-empty")
        with self._lock:
            if address in self._subs:
                return False
            sub = self._factory(self._ws_url, address, self._on_signature, self._config)
            self._subs[address] = sub
            task = asyncio.get_running_loop().create_task(sub.run(), name=f"subscriber:{address}")
            self._tasks[address] = task
        task.add_done_callback(lambda t, a=address: self._on_task_done(a, t))
        logger.info("subscription_tracked", address=short(address))
        return True

    def untrack(self, address: str) -> bool:
        """Stop and forget the subscriber. Returns False if address was not tracked."""
        address = address.strip()
        with self._lock:
            sub = self._subs.pop(address, None)
            self._tasks.pop(address, None)
        if sub is None:
            return False
        sub.stop()
        logger.info("subscription_untracked", address=short(address))
        return True

    def is_tracked(self, address: str) -> bool:
        with self._lock:
            return address.strip() in self._subs

    def list(self) -> list[str]:
        with self._lock:
            return sorted(self._subs)

    def stats(self) -> SubscriptionStats:
        with self._lock:
            subs = list(self._subs.values())
        open_count = 0
        dropped: list[str] = []
        for sub in subs:
            if sub.is_open():
                open_count += 1
            elif sub.should_be_open():
                dropped.append(sub.address)
        return SubscriptionStats(tracked=len(subs), open=open_count, dropped=sorted(dropped))

    def stop_all(self) -> None:
        """Signal every subscriber to stop; does not wait for them."""
        with self._lock:
            subs = list(self._subs.values())
            self._subs.clear()
        for sub in subs:
            sub.stop()

    async def shutdown(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SEC) -> None:
        """Stop every subscriber and wait (bounded) for their tasks to exit."""
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        self.stop_all()
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("subscription_shutdown_timeout", pending=len(pending), timeout_sec=timeout)
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("subscription_manager_stopped", stopped=len(done) + len(pending))

    def _on_task_done(self, address: str, task: asyncio.Task[None]) -> None:
        """Forget a subscriber whose run() ended on its own so a later track() starts a new one."""
        with self._lock:
            ended_on_its_own = self._tasks.get(address) is task
            if ended_on_its_own:
                del self._tasks[address]
                self._subs.pop(address, None)
        if ended_on_its_own:
            logger.warning("subscription_ended", address=short(address))
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("subscriber_task_crashed", address=short(address), error=str(exc))

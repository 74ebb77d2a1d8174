"""
Per-address WebSocket log subscriber.

Responsibilities:
- Keep one logsSubscribe connection open for a single watched address.
- Enforce liveness: heartbeat pings plus a read deadline extended by every
  inbound frame or pong.
- Forward each distinct, successful transaction signature exactly once
  (per dedup window) to the injected callback.
- Reconnect with jittered exponential backoff on any transport or protocol
  failure until stop() is called.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from solwatch.core.backoff import Backoff
from solwatch.core.dedup import DedupCache
from solwatch.core.exceptions import ReadDeadlineExceededError, SubscriptionRejectedError
from solwatch.solana_listener.models import (
    LogsNotification,
    SubscriberState,
    SubscriptionAck,
    SubscriptionFailure,
    build_logs_subscribe,
    decode_stream_message,
)
from solwatch.solwatch_logging import get_logger, short

logger = get_logger(__name__)

SignatureCallback = Callable[[str, str], Awaitable[None] | None]
"""callback(signature, watched_address); may be sync or async."""

DEFAULT_PING_INTERVAL_SEC = 20.0
DEFAULT_PING_TIMEOUT_SEC = 10.0
DEFAULT_READ_TIMEOUT_SEC = 60.0
DEFAULT_OPEN_TIMEOUT_SEC = 10.0
_WS_CLOSE_TIMEOUT = 2.0


@dataclass
class SubscriberConfig:
    """Tunables for one subscriber; defaults suit Helius/Solana public endpoints."""

    commitment: str = "processed"
    ping_interval_sec: float = DEFAULT_PING_INTERVAL_SEC
    ping_timeout_sec: float = DEFAULT_PING_TIMEOUT_SEC
    read_timeout_sec: float = DEFAULT_READ_TIMEOUT_SEC
    """Must exceed ping_interval_sec so an idle but healthy stream stays up."""
    open_timeout_sec: float = DEFAULT_OPEN_TIMEOUT_SEC
    reconnect: bool = True
    """False: stop after the first connection ends instead of retrying."""
    reconnect_min_sec: float = 1.0
    reconnect_max_sec: float = 30.0
    reconnect_jitter: float = 0.2
    dedup_window_sec: float = 30.0
    dedup_purge_after_sec: float = 60.0
    dedup_sweep_interval_sec: float = 60.0


class StreamSubscriber:
    """
    Owns one connection and one dedup cache for a single address.

    State moves CONNECTING -> SUBSCRIBED -> RECONNECTING -> CONNECTING ... and
    ends in STOPPED only via stop() (or reconnect=False). A stopped instance is
    never restarted; tracking the address again creates a new subscriber.
    """

    def __init__(
        self,
        ws_url: str,
        address: str,
        on_signature: SignatureCallback,
        config: SubscriberConfig | None = None,
        *,
        backoff: Backoff | None = None,
    ) -> None:
        if not ws_url.strip():
            raise ValueError("ws_url must be non-empty")
        if not address.strip():
            raise ValueError("address must be non-empty")
        self._ws_url = ws_url.strip()
        self.address = address.strip()
        self._on_signature = on_signature
        self._config = config or SubscriberConfig()
        cfg = self._config
        self._backoff = backoff or Backoff(
            cfg.reconnect_min_sec, cfg.reconnect_max_sec, jitter=cfg.reconnect_jitter
        )
        self._dedup = DedupCache(cfg.dedup_window_sec, cfg.dedup_purge_after_sec)
        self._stop = asyncio.Event()
        self._state = SubscriberState.CONNECTING
        self._open = False
        self._should_open = True
        self._last_seen = 0.0
        self._inflight: set[asyncio.Future[Any]] = set()
        self.subscription_id: int | None = None
        self.connect_attempts = 0
        self.notifications_forwarded = 0

    @property
    def state(self) -> SubscriberState:
        return self._state

    def is_open(self) -> bool:
        """A connection is currently established."""
        return self._open

    def should_be_open(self) -> bool:
        """The subscriber intends to stay connected (False once stopped)."""
        return self._should_open

    def stop(self) -> None:
        """Close the active connection (if any) and halt reconnect attempts. Idempotent."""
        self._should_open = False
        self._stop.set()

    async def run(self) -> None:
        """Connect/read/reconnect until stop(). Never raises except on task cancellation."""
        cfg = self._config
        sweeper = asyncio.create_task(
            self._dedup.run_sweeper(self._stop, cfg.dedup_sweep_interval_sec)
        )
        try:
            while not self._stop.is_set():
                self.connect_attempts += 1
                self._state = SubscriberState.CONNECTING
                try:
                    await self._connect_and_listen()
                except ConnectionClosed as e:
                    if not self._stop.is_set():
                        logger.warning(
                            "subscriber_disconnected",
                            address=short(self.address),
                            code=getattr(e.rcvd, "code", None),
                            error=str(e),
                        )
                except (
                    OSError,
                    WebSocketException,
                    asyncio.TimeoutError,
                    SubscriptionRejectedError,
                    ReadDeadlineExceededError,
                ) as e:
                    logger.warning(
                        "subscriber_connection_failed",
                        address=short(self.address),
                        attempt=self.connect_attempts,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                except Exception as e:
                    logger.exception(
                        "subscriber_unexpected_error",
                        address=short(self.address),
                        error=str(e),
                    )
                finally:
                    self._open = False
                    self.subscription_id = None

                if self._stop.is_set() or not cfg.reconnect:
                    break
                self._state = SubscriberState.RECONNECTING
                delay = self._backoff.next()
                logger.info(
                    "subscriber_reconnect_scheduled",
                    address=short(self.address),
                    backoff_sec=round(delay, 2),
                )
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._should_open = False
            self._open = False
            self._state = SubscriberState.STOPPED
            self._stop.set()
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
            logger.info("subscriber_stopped", address=short(self.address))

    async def _connect_and_listen(self) -> None:
        cfg = self._config
        async with websockets.connect(
            self._ws_url,
            ping_interval=None,
            open_timeout=cfg.open_timeout_sec,
            close_timeout=_WS_CLOSE_TIMEOUT,
        ) as ws:
            self._open = True
            logger.info(
                "subscriber_connected",
                address=short(self.address),
                attempt=self.connect_attempts,
            )
            closer = asyncio.create_task(self._close_on_stop(ws))
            heartbeat = asyncio.create_task(self._heartbeat(ws))
            try:
                request = build_logs_subscribe(self.address, cfg.commitment)
                await ws.send(json.dumps(request))
                await self._read_loop(ws)
            finally:
                closer.cancel()
                heartbeat.cancel()
                await asyncio.gather(closer, heartbeat, return_exceptions=True)

    async def _close_on_stop(self, ws: Any) -> None:
        await self._stop.wait()
        await ws.close(code=1000, reason="stopping")

    async def _heartbeat(self, ws: Any) -> None:
        """Ping periodically; each pong extends the read deadline."""
        cfg = self._config
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(cfg.ping_interval_sec)
            try:
                pong_waiter = await ws.ping()
                await asyncio.wait_for(pong_waiter, timeout=cfg.ping_timeout_sec)
            except (ConnectionClosed, asyncio.TimeoutError) as e:
                # Read deadline (or the closed socket) ends the session.
                logger.debug("subscriber_heartbeat_failed", address=short(self.address), error=str(e))
                return
            self._last_seen = loop.time()

    async def _read_loop(self, ws: Any) -> None:
        cfg = self._config
        loop = asyncio.get_running_loop()
        self._last_seen = loop.time()
        while True:
            remaining = self._last_seen + cfg.read_timeout_sec - loop.time()
            if remaining <= 0:
                raise ReadDeadlineExceededError(
                    f"no data or heartbeat ack for {cfg.read_timeout_sec:.0f}s"
                )
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=remaining)
            except asyncio.TimeoutError:
                # Deadline may have been extended by a pong meanwhile; re-check.
                continue
            self._last_seen = loop.time()
            self._handle_message(raw)

    def _handle_message(self, raw: str | bytes) -> None:
        msg = decode_stream_message(raw)
        if isinstance(msg, LogsNotification):
            if msg.failed:
                return
            if self._dedup.seen(msg.signature):
                logger.debug(
                    "subscriber_duplicate_signature",
                    address=short(self.address),
                    signature=short(msg.signature, 8, 8),
                )
                return
            self.notifications_forwarded += 1
            logger.info(
                "subscriber_signature_detected",
                address=short(self.address),
                signature=short(msg.signature, 8, 8),
            )
            self._dispatch(msg.signature)
        elif isinstance(msg, SubscriptionAck):
            self.subscription_id = msg.subscription_id
            self._state = SubscriberState.SUBSCRIBED
            # rejected subscribes keep growing the delay; only an ack restarts it
            self._backoff.reset()
            logger.info(
                "subscriber_subscribed",
                address=short(self.address),
                subscription_id=msg.subscription_id,
                commitment=self._config.commitment,
            )
        elif isinstance(msg, SubscriptionFailure):
            raise SubscriptionRejectedError(
                f"logsSubscribe rejected: {msg.message} (code={msg.code})"
            )

    def _dispatch(self, signature: str) -> None:
        """Invoke the callback; async callbacks run as their own task so reads never block."""
        try:
            result = self._on_signature(signature, self.address)
        except Exception as e:
            logger.exception(
                "subscriber_callback_failed",
                address=short(self.address),
                signature=short(signature, 8, 8),
                error=str(e),
            )
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._inflight.add(task)
            task.add_done_callback(self._on_dispatch_done)

    def _on_dispatch_done(self, task: asyncio.Future[Any]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "subscriber_callback_failed",
                address=short(self.address),
                error=str(exc),
            )

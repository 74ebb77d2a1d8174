"""
Watch service: wires the subscription layer to analysis and delivery.

Responsibilities:
- Re-establish a subscriber for every persisted address on start.
- Persist, then (un)subscribe on track/untrack requests.
- Run one analysis task per detected signature (no per-address ordering),
  bounded by ANALYSIS_TIMEOUT_SEC, and deliver non-empty summaries.
- Expose the manual re-run path and the health snapshot.
- Shut everything down: subscribers, in-flight analyses, HTTP clients.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from solwatch.agent_worker.health import HealthReport, build_health_report
from solwatch.alerts.telegram import TelegramNotifier
from solwatch.analysis_engine.analyzer import TransactionAnalyzer
from solwatch.analysis_engine.models import AnalysisOutcome
from solwatch.config.settings import Settings
from solwatch.core.exceptions import DeliveryError, InvalidAddressError, TransactionFetchError
from solwatch.database.wallet_store import WalletStore, validate_address
from solwatch.solana_listener.listener import SubscriberConfig
from solwatch.solana_listener.manager import SubscriptionManager
from solwatch.solwatch_logging import get_logger, short

logger = get_logger(__name__)

SHUTDOWN_TIMEOUT_SEC = 10.0


class Notifier(Protocol):
    async def notify(self, address: str, summary: str) -> None: ...

    async def aclose(self) -> None: ...


class WatchService:
    def __init__(
        self,
        settings: Settings,
        *,
        store: WalletStore | None = None,
        analyzer: TransactionAnalyzer | None = None,
        notifier: Notifier | None = None,
        manager: SubscriptionManager | None = None,
        subscriber_config: SubscriberConfig | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or WalletStore(settings.db_path)
        self.analyzer = analyzer or TransactionAnalyzer(settings.helius_api_url, settings.solana_rpc_url)
        self.notifier: Notifier = notifier or TelegramNotifier(
            settings.telegram_bot_token, settings.telegram_admin_chat_id
        )
        self.manager = manager or SubscriptionManager(
            settings.helius_wss,
            self._on_signature,
            commitment=settings.commitment,
            subscriber_config=subscriber_config,
        )
        self._analysis_tasks: set[asyncio.Task[None]] = set()

    async def start(self) -> int:
        """Subscribe every persisted address; returns how many were loaded."""
        addresses = await asyncio.to_thread(self.store.list_wallets)
        for address in addresses:
            self.manager.track(address)
        logger.info("watch_service_started", tracked=len(addresses))
        return len(addresses)

    async def track(self, address: str) -> bool:
        """
        Persist and subscribe. True if the address was newly stored.

        Raises:
            InvalidAddressError: address is not a valid public key.
        """
        address = validate_address(address)
        added = await asyncio.to_thread(self.store.add_wallet, address)
        self.manager.track(address)
        return added

    async def untrack(self, address: str) -> bool:
        """Forget and unsubscribe. True if the address was stored or subscribed."""
        address = (address or "").strip()
        removed = await asyncio.to_thread(self.store.remove_wallet, address)
        unsubscribed = self.manager.untrack(address) if address else False
        return removed or unsubscribed

    async def track_many(self, addresses: Iterable[str]) -> tuple[int, int]:
        """(ok, failed); one bad address never aborts the batch."""
        ok = failed = 0
        for address in addresses:
            try:
                await self.track(address)
                ok += 1
            except (InvalidAddressError, SQLAlchemyError) as e:
                failed += 1
                logger.warning("track_many_item_failed", address=short(address), error=str(e))
        logger.info("track_many_done", ok=ok, failed=failed)
        return ok, failed

    async def untrack_many(self, addresses: Iterable[str]) -> tuple[int, int]:
        ok = failed = 0
        for address in addresses:
            try:
                await self.untrack(address)
                ok += 1
            except SQLAlchemyError as e:
                failed += 1
                logger.warning("untrack_many_item_failed", address=short(address), error=str(e))
        logger.info("untrack_many_done", ok=ok, failed=failed)
        return ok, failed

    def list_tracked(self) -> list[str]:
        return self.manager.list()

    def _on_signature(self, signature: str, address: str) -> None:
        """Notification sink handed to the manager; spawns one analysis task."""
        task = asyncio.get_running_loop().create_task(self.handle_signature(signature, address))
        self._analysis_tasks.add(task)
        task.add_done_callback(self._analysis_tasks.discard)

    async def handle_signature(self, signature: str, address: str) -> None:
        log = logger.bind(signature=short(signature, 8, 8), address=short(address))
        try:
            summary = await asyncio.wait_for(
                self.analyzer.analyze(signature, address, timeout=self.settings.analysis_timeout_sec),
                timeout=self.settings.analysis_timeout_sec,
            )
        except TransactionFetchError as e:
            log.warning("analysis_fetch_failed", error=e.reason)
            return
        except asyncio.TimeoutError:
            log.warning("analysis_timeout", timeout_sec=self.settings.analysis_timeout_sec)
            return
        except Exception as e:
            log.exception("analysis_failed", error=str(e))
            return
        if not summary:
            log.debug("analysis_filtered")
            return
        try:
            await self.notifier.notify(address, summary)
        except DeliveryError as e:
            log.warning("notification_delivery_failed", error=str(e))

    async def test_signature(self, signature: str, address: str) -> AnalysisOutcome:
        """Manual re-run: analyze and return the result without delivering it."""
        signature = signature.strip()
        address = address.strip()
        try:
            summary = await asyncio.wait_for(
                self.analyzer.analyze(signature, address, timeout=self.settings.analysis_timeout_sec),
                timeout=self.settings.analysis_timeout_sec,
            )
        except TransactionFetchError as e:
            return AnalysisOutcome(signature=signature, address=address, error=str(e))
        except asyncio.TimeoutError:
            return AnalysisOutcome(
                signature=signature,
                address=address,
                error=f"analysis timed out after {self.settings.analysis_timeout_sec:g}s",
            )
        return AnalysisOutcome(signature=signature, address=address, summary=summary)

    def health(self) -> HealthReport:
        return build_health_report(self.manager, self.store)

    async def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT_SEC) -> None:
        await self.manager.shutdown(timeout)
        pending = list(self._analysis_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.analyzer.aclose()
        await self.notifier.aclose()
        self.store.close()
        logger.info("watch_service_stopped", cancelled_analyses=len(pending))

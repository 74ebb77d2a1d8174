"""
WatchService tests: persistence + subscription wiring, analysis dispatch and
delivery, manual re-runs. Subscribers, analyzer and notifier are faked.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import httpx
import pytest

from solwatch.agent_worker.worker import WatchService
from solwatch.analysis_engine.analyzer import TransactionAnalyzer
from solwatch.core.exceptions import DeliveryError, InvalidAddressError, TransactionFetchError
from solwatch.solana_listener.manager import SubscriptionManager

VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
VALID_WALLET_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"


class IdleSubscriber:
    def __init__(self, ws_url, address, on_signature, config):
        self.address = address
        self.on_signature = on_signature
        self._stop = asyncio.Event()

    def is_open(self) -> bool:
        return not self._stop.is_set()

    def should_be_open(self) -> bool:
        return not self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        await self._stop.wait()


class FakeAnalyzer:
    def __init__(self, result="summary", delay: float = 0.0) -> None:
        self.result = result
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.timeouts: list[float | None] = []
        self.closed = False

    async def analyze(self, signature: str, address: str, *, timeout=None) -> str:
        self.calls.append((signature, address))
        self.timeouts.append(timeout)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

    async def aclose(self) -> None:
        self.closed = True


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []
        self.closed = False

    async def notify(self, address: str, summary: str) -> None:
        if self.fail:
            raise DeliveryError("telegram returned status 500")
        self.sent.append((address, summary))

    async def aclose(self) -> None:
        self.closed = True


def _service(settings, store, analyzer=None, notifier=None) -> WatchService:
    service = WatchService(
        settings,
        store=store,
        analyzer=analyzer or FakeAnalyzer(),
        notifier=notifier or FakeNotifier(),
        manager=SubscriptionManager(
            settings.helius_wss, lambda s, a: None, subscriber_factory=IdleSubscriber
        ),
    )
    return service


def test_start_resubscribes_persisted_addresses(settings, wallet_store):
    wallet_store.add_wallet(VALID_WALLET)
    wallet_store.add_wallet(VALID_WALLET_2)

    async def scenario():
        service = _service(settings, wallet_store)
        loaded = await service.start()
        tracked = service.list_tracked()
        await service.shutdown(timeout=1)
        return loaded, tracked

    loaded, tracked = asyncio.run(scenario())
    assert loaded == 2
    assert tracked == sorted([VALID_WALLET, VALID_WALLET_2])


def test_track_and_untrack(settings, wallet_store):
    async def scenario():
        service = _service(settings, wallet_store)
        assert await service.track(VALID_WALLET) is True
        assert await service.track(VALID_WALLET) is False
        with pytest.raises(InvalidAddressError):
            await service.track("nope")
        assert service.list_tracked() == [VALID_WALLET]
        assert await service.untrack(VALID_WALLET) is True
        assert await service.untrack(VALID_WALLET) is False
        assert service.list_tracked() == []
        await service.shutdown(timeout=1)

    asyncio.run(scenario())


def test_batch_operations_count_failures(settings, wallet_store):
    async def scenario():
        service = _service(settings, wallet_store)
        tracked = await service.track_many([VALID_WALLET, "bad", VALID_WALLET_2, ""])
        untracked = await service.untrack_many([VALID_WALLET, "never-tracked"])
        remaining = service.list_tracked()
        await service.shutdown(timeout=1)
        return tracked, untracked, remaining

    tracked, untracked, remaining = asyncio.run(scenario())
    assert tracked == (2, 2)
    assert untracked == (2, 0)
    assert remaining == [VALID_WALLET_2]


def test_signature_is_analyzed_and_delivered(settings, wallet_store):
    analyzer = FakeAnalyzer("<b>hello</b>")
    notifier = FakeNotifier()

    async def scenario():
        service = _service(settings, wallet_store, analyzer, notifier)
        service._on_signature("sig1", VALID_WALLET)
        await asyncio.sleep(0.05)
        await service.shutdown(timeout=1)

    asyncio.run(scenario())
    assert analyzer.calls == [("sig1", VALID_WALLET)]
    assert notifier.sent == [(VALID_WALLET, "<b>hello</b>")]
    assert analyzer.timeouts == [settings.analysis_timeout_sec]
    assert analyzer.closed and notifier.closed


@pytest.mark.parametrize(
    "result",
    ["", TransactionFetchError("sig1", "status 500"), RuntimeError("boom")],
)
def test_nothing_delivered_when_analysis_yields_nothing(settings, wallet_store, result):
    notifier = FakeNotifier()

    async def scenario():
        service = _service(settings, wallet_store, FakeAnalyzer(result), notifier)
        await service.handle_signature("sig1", VALID_WALLET)
        await service.shutdown(timeout=1)

    asyncio.run(scenario())
    assert notifier.sent == []


def test_delivery_failure_is_absorbed(settings, wallet_store):
    async def scenario():
        service = _service(settings, wallet_store, FakeAnalyzer("x"), FakeNotifier(fail=True))
        await service.handle_signature("sig1", VALID_WALLET)
        await service.shutdown(timeout=1)

    asyncio.run(scenario())


def test_manual_rerun_reports_outcomes(settings, wallet_store):
    settings = replace(settings, analysis_timeout_sec=0.05)

    async def scenario():
        ok = _service(settings, wallet_store, FakeAnalyzer("text"))
        filtered = _service(settings, wallet_store, FakeAnalyzer(""))
        failing = _service(settings, wallet_store, FakeAnalyzer(TransactionFetchError("s", "status 500")))
        slow = _service(settings, wallet_store, FakeAnalyzer("late", delay=1.0))
        return (
            await ok.test_signature(" s ", VALID_WALLET),
            await filtered.test_signature("s", VALID_WALLET),
            await failing.test_signature("s", VALID_WALLET),
            await slow.test_signature("s", VALID_WALLET),
        )

    ok, filtered, failing, slow = asyncio.run(scenario())
    assert (ok.signature, ok.summary, ok.filtered) == ("s", "text", False)
    assert filtered.filtered is True
    assert failing.error == "failed to fetch tx s: status 500"
    assert slow.error == "analysis timed out after 0.05s"


def test_health_report(settings, wallet_store):
    wallet_store.add_wallet(VALID_WALLET)

    async def scenario():
        service = _service(settings, wallet_store)
        await service.start()
        report = service.health()
        await service.shutdown(timeout=1)
        return report

    report = asyncio.run(scenario())
    assert report.tracked_in_memory == 1
    assert report.open_subscriptions == 1
    assert report.dropped_subscriptions == []
    assert report.tracked_in_store == 1
    assert "T" in report.generated_at


def test_slow_metadata_rpc_does_not_drop_notification(settings, wallet_store, mock_client):
    settings = replace(settings, analysis_timeout_sec=0.3)
    mint = "4EtAJ1p8RjqccEVhEhaYnEgQ6kA4JHR8oYqyLFwARUj6"
    tx = {
        "signature": "sig1",
        "type": "TRANSFER",
        "source": "SYSTEM_PROGRAM",
        "tokenTransfers": [
            {"fromUserAccount": VALID_WALLET_2, "toUserAccount": VALID_WALLET, "mint": mint, "tokenAmount": 42}
        ],
        "accountData": [],
    }

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "rpc.test":
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"value": None}})
        return httpx.Response(200, json=[tx])

    notifier = FakeNotifier()

    async def scenario():
        async with mock_client(handler) as client:
            analyzer = TransactionAnalyzer(settings.helius_api_url, settings.solana_rpc_url, client=client)
            service = _service(settings, wallet_store, analyzer, notifier)
            await service.handle_signature("sig1", VALID_WALLET)
            await service.shutdown(timeout=1)

    asyncio.run(scenario())
    assert len(notifier.sent) == 1
    address, summary = notifier.sent[0]
    assert address == VALID_WALLET
    assert "42.00 Mint(4EtA...RUj6)" in summary

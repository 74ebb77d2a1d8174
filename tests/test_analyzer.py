"""
End-to-end analysis tests: enrichment, RPC and price services are all faked
behind one httpx.MockTransport routed by host.
"""

from __future__ import annotations

import asyncio
import base64
import json
import struct

import httpx
import pytest

from solwatch.analysis_engine.analyzer import TransactionAnalyzer
from solwatch.analysis_engine.metadata import SPL_TOKEN_PROGRAM_ID
from solwatch.analysis_engine.models import USDC_MINT, WSOL_MINT
from solwatch.core.exceptions import TransactionFetchError

ENRICH_URL = "https://api.helius.xyz/v0/transactions/?api-key=test"
RPC_URL = "https://rpc.test"

WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
OTHER = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
PEPE = "4EtAJ1p8RjqccEVhEhaYnEgQ6kA4JHR8oYqyLFwARUj6"
SIG = "5UfDuX7WXYxjng1PYzFh1aLbcrZzBa4FYxmGCFRbBKrNKuSSjZ6T6x5Mi2bCsKqN4M3wKsDpeTmuf9BxN9fWiPdF"
LINK = f'<a href="https://solscan.io/tx/{SIG}">5UfDuX...fWiPdF</a>'


def _record(symbol: str) -> str:
    name = symbol.encode().ljust(32, b"\x00")
    sym = symbol.encode().ljust(10, b"\x00")
    raw = bytes(65) + struct.pack("<I", 32) + name + struct.pack("<I", 10) + sym
    return base64.b64encode(raw).decode()


class FakeServices:
    """Helius enrichment, Solana RPC and CoinGecko on one transport."""

    def __init__(self, tx: dict | None = None, *, enrich_status: int = 200, symbols=None, owners=None):
        self.tx = tx
        self.enrich_status = enrich_status
        self.symbols = symbols or {}
        self.owners = owners or {}
        self.prices = {"solana": 150.0, "usd-coin": 1.0}
        self.hosts: list[str] = []
        self.enrich_bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.hosts.append(host)
        if host == "api.helius.xyz":
            self.enrich_bodies.append(json.loads(request.content))
            if self.enrich_status != 200:
                return httpx.Response(self.enrich_status, text="upstream exploded")
            return httpx.Response(200, json=[self.tx] if self.tx is not None else [])
        if host == "api.coingecko.com":
            ids = request.url.params["ids"]
            return httpx.Response(200, json={ids: {"usd": self.prices[ids]}})
        if host == "rpc.test":
            return self._rpc(json.loads(request.content))
        return httpx.Response(404)

    def _rpc(self, body: dict) -> httpx.Response:
        address, opts = body["params"][0], body["params"][1]
        if opts["encoding"] == "jsonParsed":
            value = {
                "owner": self.owners.get(address, SPL_TOKEN_PROGRAM_ID),
                "data": {"parsed": {"info": {"decimals": 6}}},
            }
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"value": value}})
        # metadata PDA lookups: the mint is not recoverable from the PDA, so the
        # fake serves the single configured symbol
        symbol = next(iter(self.symbols.values()), None)
        value = {"data": [_record(symbol), "base64"]} if symbol else None
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"value": value}})


def _tx(**fields) -> dict:
    base = {
        "signature": SIG,
        "type": "TRANSFER",
        "source": "SYSTEM_PROGRAM",
        "description": "",
        "fee": 5000,
        "feePayer": WALLET,
        "transactionError": None,
        "tokenTransfers": [],
        "nativeTransfers": [],
        "accountData": [],
        "events": {},
    }
    base.update(fields)
    return base


def _run(services: FakeServices, mock_client, signature: str = SIG) -> str:
    async def scenario():
        async with mock_client(services) as client:
            analyzer = TransactionAnalyzer(ENRICH_URL, RPC_URL, client=client)
            return await analyzer.analyze(signature, WALLET)

    return asyncio.run(scenario())


def test_swap_summary_uses_swap_legs_and_prices(mock_client):
    tx = _tx(
        type="SWAP",
        source="JUPITER",
        description=f"{WALLET} swapped 25 USDC for 1500000 Bonk",
        tokenTransfers=[
            {"fromUserAccount": WALLET, "toUserAccount": OTHER, "mint": USDC_MINT, "tokenAmount": 25},
            {"fromUserAccount": OTHER, "toUserAccount": WALLET, "mint": BONK, "tokenAmount": 1500000},
        ],
        accountData=[{"account": WALLET, "nativeBalanceChange": -5000}],
        events={
            "swap": {
                "tokenInputs": [
                    {"userAccount": WALLET, "mint": USDC_MINT, "rawTokenAmount": {"tokenAmount": "25000000", "decimals": 6}}
                ],
                "tokenOutputs": [
                    {"userAccount": WALLET, "mint": BONK, "rawTokenAmount": {"tokenAmount": "150000000000", "decimals": 5}}
                ],
            }
        },
    )
    services = FakeServices(tx, symbols={BONK: "Bonk"})
    summary = _run(services, mock_client)
    assert summary == (
        "<b>🔁 SWAP via JUPITER</b>\n"
        "ℹ️ <i>9QCf...Urka swapped 25 USDC for 1500000 Bonk</i>\n"
        "\n"
        "💰 <b>Sent:</b> 25.00 USDC ($25.00)\n"
        "💸 <b>Received:</b> 1,500,000 Bonk\n"
        "\n"
        f"{LINK}"
    )
    assert services.enrich_bodies == [{"transactions": [SIG]}]


def test_fee_only_transaction_filtered_without_lookups(mock_client):
    services = FakeServices(_tx(accountData=[{"account": WALLET, "nativeBalanceChange": -5000}]))
    assert _run(services, mock_client) == ""
    assert services.hosts == ["api.helius.xyz"]


def test_enrichment_failure_raises(mock_client):
    services = FakeServices(enrich_status=500)
    with pytest.raises(TransactionFetchError, match="non-200 status: 500"):
        _run(services, mock_client)


def test_empty_enrichment_response_raises(mock_client):
    with pytest.raises(TransactionFetchError, match="empty"):
        _run(FakeServices(None), mock_client)


def test_unsupported_token_gets_placeholder_symbol(mock_client):
    tx = _tx(
        tokenTransfers=[{"fromUserAccount": OTHER, "toUserAccount": WALLET, "mint": PEPE, "tokenAmount": 42}],
    )
    services = FakeServices(tx, owners={PEPE: "TokenzQdBNbLqP5VEhdkAS6EPFLC1PQnBqCXEpPxuEb"})
    summary = _run(services, mock_client)
    assert summary.startswith("<b>⬇️ RECEIVE via SYSTEM_PROGRAM</b>\n")
    assert "💸 <b>Received:</b> 42.00 Mint(4EtA...RUj6)\n" in summary
    assert "Sent:" not in summary
    assert "ℹ️" not in summary


def test_create_headline_names_first_received_asset(mock_client):
    tx = _tx(
        type="CREATE",
        source="PUMP_FUN",
        tokenTransfers=[{"fromUserAccount": "", "toUserAccount": WALLET, "mint": PEPE, "tokenAmount": 1000}],
        accountData=[{"account": WALLET, "nativeBalanceChange": -500_000_000}],
    )
    summary = _run(FakeServices(tx, symbols={PEPE: "PEPE"}), mock_client)
    assert summary.startswith("<b>🧱 CREATE & BUY via PUMP_FUN: Bought 1,000 PEPE</b>\n")
    assert "💰 <b>Sent:</b> 0.5 SOL ($75.00)\n" in summary


def test_wrapped_sol_inflow_reported_as_sol(mock_client):
    tx = _tx(
        tokenTransfers=[{"fromUserAccount": OTHER, "toUserAccount": WALLET, "mint": WSOL_MINT, "tokenAmount": 2}],
        accountData=[{"account": WALLET, "nativeBalanceChange": -2_039_280}],
    )
    summary = _run(FakeServices(tx), mock_client)
    assert "💸 <b>Received:</b> 2.00 SOL ($299.69)\n" in summary


def test_failed_transaction_still_summarized(mock_client):
    tx = _tx(
        type="UNKNOWN",
        source="",
        transactionError={"InstructionError": [0, "Custom"]},
        accountData=[{"account": WALLET, "nativeBalanceChange": -5000}],
    )
    summary = _run(FakeServices(tx), mock_client)
    assert summary.startswith("<b>⬆️ SEND via UNKNOWN</b>\n")
    assert "💰 <b>Sent:</b> 0.000005 SOL ($0.00)\n" in summary


class SlowHost:
    """Delays every request to one host before handing it to FakeServices."""

    def __init__(self, services: FakeServices, host: str, delay: float) -> None:
        self.services = services
        self.host = host
        self.delay = delay

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == self.host:
            await asyncio.sleep(self.delay)
        return self.services(request)


def _run_with_timeout(handler, mock_client, timeout: float) -> tuple[str, float]:
    async def scenario():
        async with mock_client(handler) as client:
            analyzer = TransactionAnalyzer(ENRICH_URL, RPC_URL, client=client)
            loop = asyncio.get_running_loop()
            started = loop.time()
            summary = await analyzer.analyze(SIG, WALLET, timeout=timeout)
            elapsed = loop.time() - started
            await analyzer.aclose()
            return summary, elapsed

    return asyncio.run(scenario())


def test_slow_metadata_rpc_degrades_to_placeholder_before_timeout(mock_client):
    tx = _tx(
        tokenTransfers=[{"fromUserAccount": OTHER, "toUserAccount": WALLET, "mint": PEPE, "tokenAmount": 42}],
    )
    handler = SlowHost(FakeServices(tx, symbols={PEPE: "PEPE"}), "rpc.test", 1.0)
    summary, elapsed = _run_with_timeout(handler, mock_client, 0.3)
    assert "💸 <b>Received:</b> 42.00 Mint(4EtA...RUj6)\n" in summary
    assert elapsed < 0.3


def test_slow_price_service_omits_fiat_before_timeout(mock_client):
    tx = _tx(accountData=[{"account": WALLET, "nativeBalanceChange": -500_000_000}])
    handler = SlowHost(FakeServices(tx), "api.coingecko.com", 1.0)
    summary, elapsed = _run_with_timeout(handler, mock_client, 0.3)
    assert "💰 <b>Sent:</b> 0.5 SOL\n" in summary
    assert elapsed < 0.3

"""
Pytest fixtures for solwatch tests. Uses a temporary SQLite DB and
httpx.MockTransport so no network access is needed.
"""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from solwatch.config.settings import Settings

TRACKED_ENV_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_ADMIN_CHAT_ID",
    "HELIUS_WSS",
    "HELIUS_API_URL",
    "SOLANA_RPC_URL",
    "COMMITMENT",
    "DB_PATH",
    "LOG_LEVEL",
    "API_HOST",
    "API_PORT",
    "API_KEY",
    "ANALYSIS_TIMEOUT_SEC",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Unset solwatch env vars and point .env loading at an empty temp file."""
    for name in TRACKED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    import solwatch.config.env as env

    monkeypatch.setattr(env, "_ENV_PATH", tmp_path / ".env")
    return monkeypatch


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        telegram_bot_token="123456:TEST-TOKEN",
        telegram_admin_chat_id=42,
        helius_wss="wss://mainnet.helius-rpc.com/?api-key=test",
        helius_api_url="https://api.helius.xyz/v0/transactions/?api-key=test",
        solana_rpc_url="https://rpc.test",
        db_path=str(tmp_path / "solwatch.db"),
        analysis_timeout_sec=5.0,
    )


@pytest.fixture
def wallet_store(tmp_path):
    """WalletStore backed by a fresh temporary SQLite file."""
    from solwatch.database.wallet_store import WalletStore

    store = WalletStore(tmp_path / "wallets.db")
    yield store
    store.close()


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory: mock_client(handler) -> httpx.AsyncClient routed through handler."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Rebind structlog to the live stdout after each test so a logger configured
    under capsys does not keep writing to that test's closed capture stream."""
    yield
    from solwatch.solwatch_logging import configure_structlog

    configure_structlog()

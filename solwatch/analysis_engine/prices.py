"""
Fiat price oracle (CoinGecko simple/price), cached per asset class with a
short freshness window. A miss never raises: quote() returns ok=False and the
caller omits the fiat figure.
"""

from __future__ import annotations

import time
from typing import Callable

import httpx

from solwatch.analysis_engine.models import USDC_MINT, WSOL_MINT
from solwatch.core.cache import AsyncCache, ExpiryPolicy
from solwatch.core.exceptions import PriceUnavailableError
from solwatch.solwatch_logging import get_logger

logger = get_logger(__name__)

COINGECKO_SIMPLE_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
PRICE_FRESHNESS_SEC = 60.0
PRICE_TIMEOUT_SEC = 5.0

NATIVE_PRICE_ID = "solana"
PRICE_IDS: dict[str, str] = {
    WSOL_MINT: NATIVE_PRICE_ID,
    USDC_MINT: "usd-coin",
}


def price_id_for(mint: str | None) -> str | None:
    """CoinGecko id for a priced asset; mint None means native SOL."""
    if mint is None:
        return NATIVE_PRICE_ID
    return PRICE_IDS.get(mint)


class PriceOracle:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str = COINGECKO_SIMPLE_PRICE_URL,
        freshness_sec: float = PRICE_FRESHNESS_SEC,
        timeout_sec: float = PRICE_TIMEOUT_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._url = url
        self._timeout = timeout_sec
        self._cache: AsyncCache[str, float] = AsyncCache(ExpiryPolicy(freshness_sec), clock=clock)

    async def quote(self, asset_class: str) -> tuple[float, bool]:
        """(usd_price, True) from cache or a fresh fetch; (0.0, False) on any failure."""
        try:
            price = await self._cache.get_or_load(asset_class, lambda: self._fetch(asset_class))
        except PriceUnavailableError as e:
            logger.debug("price_unavailable", asset=asset_class, error=str(e))
            return 0.0, False
        return price, True

    async def _fetch(self, asset_class: str) -> float:
        try:
            resp = await self._client.get(
                self._url,
                params={"ids": asset_class, "vs_currencies": "usd"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise PriceUnavailableError(f"{type(e).__name__}: {e}") from e
        if resp.status_code != 200:
            raise PriceUnavailableError(f"status {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise PriceUnavailableError("malformed price response") from e

        entry = data.get(asset_class) if isinstance(data, dict) else None
        price = entry.get("usd") if isinstance(entry, dict) else None
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise PriceUnavailableError(f"no usd price for {asset_class}")
        logger.debug("price_fetched", asset=asset_class, usd=price)
        return float(price)

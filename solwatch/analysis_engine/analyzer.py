"""
Transaction analysis pipeline: signature -> formatted notification text.

fetch -> dust filter -> metadata pre-warm -> classify/net -> price -> format.
Only the fetch step can fail the analysis; everything after it degrades
(placeholder symbols, omitted fiat figures) instead of raising.
"""

from __future__ import annotations

import asyncio

import httpx

from solwatch.analysis_engine.enrichment import ENRICHMENT_TIMEOUT_SEC, fetch_enriched_transaction
from solwatch.analysis_engine.formatting import (
    build_headline,
    build_summary,
    clean_description,
    format_asset,
)
from solwatch.analysis_engine.metadata import MetadataResolver
from solwatch.analysis_engine.models import AssetAmount, EnrichedTransaction
from solwatch.analysis_engine.netting import (
    compute_net_deltas,
    should_filter,
    split_sent_received,
    swap_legs,
)
from solwatch.analysis_engine.prices import PriceOracle, price_id_for
from solwatch.solwatch_logging import get_logger, short

logger = get_logger(__name__)

# share of the caller's timeout the degradable steps (metadata, prices) may use
DEGRADE_SHARE = 0.8


class TransactionAnalyzer:
    """
    Stateless per call; shares the metadata and price caches across calls.

    Owns its httpx.AsyncClient unless one is injected.
    """

    def __init__(
        self,
        enrichment_url: str,
        rpc_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        metadata: MetadataResolver | None = None,
        prices: PriceOracle | None = None,
    ) -> None:
        self._enrichment_url = enrichment_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=ENRICHMENT_TIMEOUT_SEC)
        self.metadata = metadata or MetadataResolver(self._client, rpc_url)
        self.prices = prices or PriceOracle(self._client)

    async def aclose(self) -> None:
        await self.metadata.aclose()
        if self._owns_client:
            await self._client.aclose()

    async def analyze(self, signature: str, address: str, *, timeout: float | None = None) -> str:
        """
        Summary text for (signature, address), or "" if the transaction is dust.

        With a timeout, metadata and price lookups stop waiting once
        DEGRADE_SHARE of it has elapsed; the summary then carries placeholder
        symbols and omits fiat figures instead of missing the caller's deadline.

        Raises:
            TransactionFetchError: the enrichment record could not be fetched.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout * DEGRADE_SHARE
        tx = await fetch_enriched_transaction(self._client, self._enrichment_url, signature)
        if should_filter(tx, address):
            logger.debug("analysis_filtered_dust", signature=short(signature, 8, 8), address=short(address))
            return ""

        await self.metadata.prewarm(
            tx.mints(), timeout=None if deadline is None else deadline - loop.time()
        )

        sent_amounts, received_amounts = self._classify(tx, address)
        sent = [await self._render(a, deadline) for a in sent_amounts]
        received = [await self._render(a, deadline) for a in received_amounts]
        headline = build_headline(tx.type, tx.source, sent, received)

        logger.info(
            "analysis_completed",
            signature=short(signature, 8, 8),
            address=short(address),
            tx_type=tx.type or "UNKNOWN",
            sent=len(sent),
            received=len(received),
        )
        return build_summary(
            tx.signature or signature,
            headline,
            clean_description(tx.description),
            sent,
            received,
        )

    def _classify(
        self, tx: EnrichedTransaction, address: str
    ) -> tuple[list[AssetAmount], list[AssetAmount]]:
        if tx.type.upper() == "SWAP":
            legs = swap_legs(tx, address)
            if legs is not None:
                return legs
        return split_sent_received(compute_net_deltas(tx, address))

    async def _render(self, asset: AssetAmount, deadline: float | None = None) -> str:
        symbol = "SOL" if asset.mint is None else self.metadata.lookup(asset.mint).symbol
        usd_value: float | None = None
        price_id = price_id_for(asset.mint)
        if price_id is not None:
            price, ok = await self._quote(price_id, deadline)
            if ok:
                usd_value = asset.amount * price
        return format_asset(asset.amount, symbol, usd_value)

    async def _quote(self, price_id: str, deadline: float | None) -> tuple[float, bool]:
        if deadline is None:
            return await self.prices.quote(price_id)
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            return 0.0, False
        try:
            return await asyncio.wait_for(self.prices.quote(price_id), timeout=remaining)
        except asyncio.TimeoutError:
            logger.debug("price_quote_deadline", asset=price_id)
            return 0.0, False

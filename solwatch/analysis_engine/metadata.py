"""
On-chain token metadata resolution (symbol + decimals).

Responsibilities:
- Read the mint account (jsonParsed) for its owner program and decimals;
  only the SPL Token program is supported.
- Locate the Metaplex metadata record: derive the PDA with solders, falling
  back to a getProgramAccounts memcmp scan on the mint at offset 33.
- Parse the record's Borsh layout for the symbol.
- Cache every outcome forever, including a fallback placeholder for failures,
  so an unresolvable mint costs one round of RPC calls per process.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import struct
from typing import Any, Iterable

import httpx
from solders.pubkey import Pubkey

from solwatch.analysis_engine.formatting import shorten_address
from solwatch.analysis_engine.models import (
    USDC_MINT,
    WSOL_MINT,
    ResolutionOutcome,
    TokenMetadata,
)
from solwatch.core.cache import NEVER_EXPIRE, AsyncCache
from solwatch.core.exceptions import (
    MetadataParseError,
    MetadataResolutionError,
    RpcError,
    UnsupportedTokenProgramError,
)
from solwatch.solwatch_logging import get_logger, short

logger = get_logger(__name__)

SPL_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
METADATA_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"

# key (1) + update authority (32) + mint (32)
METADATA_HEADER_LEN = 65
METADATA_MINT_OFFSET = 33
FALLBACK_DECIMALS = 6
RPC_TIMEOUT_SEC = 20.0

KNOWN_TOKENS: dict[str, TokenMetadata] = {
    WSOL_MINT: TokenMetadata(WSOL_MINT, "SOL", 9, ResolutionOutcome.KNOWN),
    USDC_MINT: TokenMetadata(USDC_MINT, "USDC", 6, ResolutionOutcome.KNOWN),
}


async def rpc_call(
    client: httpx.AsyncClient,
    rpc_url: str,
    method: str,
    params: list[Any],
    *,
    timeout: float = RPC_TIMEOUT_SEC,
) -> Any:
    """POST one JSON-RPC request and return its `result`; raise RpcError otherwise."""
    body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    try:
        resp = await client.post(rpc_url, json=body, timeout=timeout)
    except httpx.HTTPError as e:
        raise RpcError(method, f"{type(e).__name__}: {e}") from e
    if resp.status_code != 200:
        raise RpcError(method, f"status {resp.status_code}")
    try:
        data = resp.json()
    except ValueError as e:
        raise RpcError(method, "malformed response") from e
    if not isinstance(data, dict):
        raise RpcError(method, "malformed response")
    err = data.get("error")
    if err is not None:
        if isinstance(err, dict):
            code = err.get("code")
            raise RpcError(method, str(err.get("message") or err), code if isinstance(code, int) else None)
        raise RpcError(method, str(err))
    return data.get("result")


def derive_metadata_address(mint: str) -> str:
    """Metaplex PDA for mint. Raises ValueError if mint is not a valid public key."""
    program = Pubkey.from_string(METADATA_PROGRAM_ID)
    pda, _bump = Pubkey.find_program_address(
        [b"metadata", bytes(program), bytes(Pubkey.from_string(mint))],
        program,
    )
    return str(pda)


def parse_metadata_symbol(raw: bytes) -> str:
    """
    Read the symbol from a metadata record:
    header, u32 LE name length, name, u32 LE symbol length, symbol.
    Trailing NUL padding is trimmed.
    """
    if len(raw) < METADATA_HEADER_LEN + 4:
        raise MetadataParseError("metadata account data is too short")
    (name_len,) = struct.unpack_from("<I", raw, METADATA_HEADER_LEN)
    symbol_offset = METADATA_HEADER_LEN + 4 + name_len
    if symbol_offset + 4 > len(raw):
        raise MetadataParseError("name length exceeds buffer")
    (symbol_len,) = struct.unpack_from("<I", raw, symbol_offset)
    symbol_end = symbol_offset + 4 + symbol_len
    if symbol_end > len(raw):
        raise MetadataParseError("symbol length exceeds buffer")
    return raw[symbol_offset + 4 : symbol_end].rstrip(b"\x00").decode("utf-8", errors="replace")


def fallback_metadata(mint: str) -> TokenMetadata:
    return TokenMetadata(
        mint=mint,
        symbol=f"Mint({shorten_address(mint)})",
        decimals=FALLBACK_DECIMALS,
        outcome=ResolutionOutcome.FALLBACK,
    )


class MetadataResolver:
    """
    Memoizing resolver shared by every concurrent analysis.

    Two resolutions of the same mint perform at most one remote lookup
    sequence; the second returns the cached entry even if chain state changed.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        rpc_url: str,
        *,
        cache: AsyncCache[str, TokenMetadata] | None = None,
    ) -> None:
        self._client = client
        self._rpc_url = rpc_url
        self._cache: AsyncCache[str, TokenMetadata] = cache or AsyncCache(NEVER_EXPIRE)
        for mint, meta in KNOWN_TOKENS.items():
            if mint not in self._cache:
                self._cache.set(mint, meta)
        self.remote_lookups = 0
        self._inflight: dict[str, asyncio.Task[TokenMetadata]] = {}

    def get(self, mint: str) -> TokenMetadata | None:
        return self._cache.get(mint)

    def lookup(self, mint: str) -> TokenMetadata:
        """Cached entry, or an uncached placeholder (never performs I/O)."""
        return self._cache.get(mint) or fallback_metadata(mint)

    async def resolve(self, mint: str) -> TokenMetadata:
        return await self._cache.get_or_load(mint, lambda: self._load(mint))

    async def prewarm(self, mints: Iterable[str], timeout: float | None = None) -> bool:
        """
        Resolve every uncached mint concurrently; failures become fallbacks.

        With a timeout, stop waiting after that many seconds and return False.
        Unfinished lookups keep running and cache their result when they land,
        so callers render with lookup() placeholders in the meantime.
        """
        missing = [m for m in dict.fromkeys(mints) if m and m not in self._cache]
        if not missing:
            return True
        tasks = [self._inflight_lookup(m) for m in missing]
        _done, pending = await asyncio.wait(
            tasks, timeout=None if timeout is None else max(0.0, timeout)
        )
        if pending:
            logger.warning("metadata_prewarm_incomplete", pending=len(pending), timeout_sec=timeout)
        return not pending

    def _inflight_lookup(self, mint: str) -> asyncio.Task[TokenMetadata]:
        task = self._inflight.get(mint)
        if task is None:
            task = asyncio.get_running_loop().create_task(self.resolve(mint))
            self._inflight[mint] = task
            task.add_done_callback(lambda t, m=mint: self._lookup_done(m, t))
        return task

    def _lookup_done(self, mint: str, task: asyncio.Task[TokenMetadata]) -> None:
        if self._inflight.get(mint) is task:
            del self._inflight[mint]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("metadata_lookup_crashed", mint=short(mint), error=str(exc))

    async def aclose(self) -> None:
        """Cancel lookups still running in the background."""
        pending = list(self._inflight.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _load(self, mint: str) -> TokenMetadata:
        self.remote_lookups += 1
        try:
            meta = await self._fetch_onchain(mint)
        except (MetadataResolutionError, RpcError) as e:
            logger.warning(
                "metadata_fallback",
                mint=short(mint),
                error_type=type(e).__name__,
                error=str(e),
            )
            return fallback_metadata(mint)
        logger.info("metadata_resolved", mint=short(mint), symbol=meta.symbol, decimals=meta.decimals)
        return meta

    async def _fetch_onchain(self, mint: str) -> TokenMetadata:
        info = await rpc_call(
            self._client, self._rpc_url, "getAccountInfo", [mint, {"encoding": "jsonParsed"}]
        )
        value = info.get("value") if isinstance(info, dict) else None
        if not isinstance(value, dict):
            raise MetadataResolutionError(f"mint account {mint} not found")
        owner = value.get("owner") or ""
        if owner != SPL_TOKEN_PROGRAM_ID:
            raise UnsupportedTokenProgramError(mint, owner)
        decimals = _parsed_decimals(value)

        raw = await self._metadata_record(mint)
        symbol = parse_metadata_symbol(raw).strip()
        if not symbol:
            raise MetadataParseError("empty symbol")
        return TokenMetadata(mint=mint, symbol=symbol, decimals=decimals)

    async def _metadata_record(self, mint: str) -> bytes:
        try:
            pda = derive_metadata_address(mint)
        except ValueError:
            pda = None
        if pda is not None:
            raw = await self._account_bytes(pda)
            if raw is not None:
                return raw
        pda = await self._scan_metadata_address(mint)
        raw = await self._account_bytes(pda)
        if raw is None:
            raise MetadataResolutionError(f"metadata account {pda} has no data")
        return raw

    async def _scan_metadata_address(self, mint: str) -> str:
        result = await rpc_call(
            self._client,
            self._rpc_url,
            "getProgramAccounts",
            [
                METADATA_PROGRAM_ID,
                {
                    "encoding": "base64",
                    "filters": [{"memcmp": {"offset": METADATA_MINT_OFFSET, "bytes": mint}}],
                },
            ],
        )
        if not isinstance(result, list) or not result or not isinstance(result[0], dict):
            raise MetadataResolutionError("metadata account not found")
        pubkey = result[0].get("pubkey")
        if not isinstance(pubkey, str) or not pubkey:
            raise MetadataResolutionError("metadata account not found")
        return pubkey

    async def _account_bytes(self, address: str) -> bytes | None:
        """Raw account data, or None if the account does not exist."""
        info = await rpc_call(
            self._client, self._rpc_url, "getAccountInfo", [address, {"encoding": "base64"}]
        )
        value = info.get("value") if isinstance(info, dict) else None
        if not isinstance(value, dict):
            return None
        data = value.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], str):
            return None
        try:
            return base64.b64decode(data[0], validate=True)
        except (binascii.Error, ValueError) as e:
            raise MetadataParseError("failed to decode metadata account data") from e


def _parsed_decimals(value: dict[str, Any]) -> int:
    try:
        decimals = value["data"]["parsed"]["info"]["decimals"]
    except (KeyError, TypeError) as e:
        raise MetadataParseError("mint decimals missing") from e
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise MetadataParseError(f"mint decimals not an integer: {decimals!r}")
    return decimals

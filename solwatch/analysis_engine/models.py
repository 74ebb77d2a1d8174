"""
Data models for enriched (Helius) transaction records and token metadata.

Responsibilities:
- Parse the enrichment service's JSON record into immutable dataclasses.
- Tolerate missing/null fields: every list defaults to empty, every number to 0.
- Expose the per-address helpers the netting and filter steps need.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

WSOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
LAMPORTS_PER_SOL = 1_000_000_000


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


@dataclass(frozen=True)
class RawTokenAmount:
    token_amount: str
    decimals: int

    @property
    def ui_amount(self) -> float:
        """Integer base-unit string scaled by decimals; 0.0 if the amount is unparseable."""
        try:
            return float(Decimal(self.token_amount.strip()).scaleb(-self.decimals))
        except (ArithmeticError, ValueError):
            return 0.0

    @classmethod
    def from_dict(cls, item: Any) -> "RawTokenAmount":
        if not isinstance(item, dict):
            return cls(token_amount="0", decimals=0)
        raw = item.get("tokenAmount")
        return cls(
            token_amount=str(raw) if raw is not None else "0",
            decimals=max(0, _int(item.get("decimals"))),
        )


@dataclass(frozen=True)
class TokenTransfer:
    from_user_account: str
    to_user_account: str
    mint: str
    token_amount: float
    """Already decimal-adjusted by the enrichment service."""
    from_token_account: str = ""
    to_token_account: str = ""
    token_standard: str = ""

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> "TokenTransfer":
        return cls(
            from_user_account=_str(item.get("fromUserAccount")),
            to_user_account=_str(item.get("toUserAccount")),
            mint=_str(item.get("mint")),
            token_amount=_float(item.get("tokenAmount")),
            from_token_account=_str(item.get("fromTokenAccount")),
            to_token_account=_str(item.get("toTokenAccount")),
            token_standard=_str(item.get("tokenStandard")),
        )


@dataclass(frozen=True)
class NativeTransfer:
    from_user_account: str
    to_user_account: str
    amount: int  # lamports

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> "NativeTransfer":
        return cls(
            from_user_account=_str(item.get("fromUserAccount")),
            to_user_account=_str(item.get("toUserAccount")),
            amount=_int(item.get("amount")),
        )


@dataclass(frozen=True)
class TokenBalanceChange:
    user_account: str
    token_account: str
    mint: str
    raw_token_amount: RawTokenAmount

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> "TokenBalanceChange":
        return cls(
            user_account=_str(item.get("userAccount")),
            token_account=_str(item.get("tokenAccount")),
            mint=_str(item.get("mint")),
            raw_token_amount=RawTokenAmount.from_dict(item.get("rawTokenAmount")),
        )


@dataclass(frozen=True)
class AccountData:
    account: str
    native_balance_change: int  # lamports, fee debits included
    token_balance_changes: tuple[TokenBalanceChange, ...] = ()

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> "AccountData":
        return cls(
            account=_str(item.get("account")),
            native_balance_change=_int(item.get("nativeBalanceChange")),
            token_balance_changes=tuple(
                TokenBalanceChange.from_dict(c) for c in _dicts(item.get("tokenBalanceChanges"))
            ),
        )


@dataclass(frozen=True)
class SwapTokenLeg:
    user_account: str
    mint: str
    raw_token_amount: RawTokenAmount

    @property
    def amount(self) -> float:
        return self.raw_token_amount.ui_amount

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> "SwapTokenLeg":
        return cls(
            user_account=_str(item.get("userAccount")),
            mint=_str(item.get("mint")),
            raw_token_amount=RawTokenAmount.from_dict(item.get("rawTokenAmount")),
        )


@dataclass(frozen=True)
class SwapNativeLeg:
    account: str
    amount: int  # lamports

    @classmethod
    def from_dict(cls, item: Any) -> "SwapNativeLeg | None":
        if not isinstance(item, dict):
            return None
        return cls(account=_str(item.get("account")), amount=_int(item.get("amount")))


@dataclass(frozen=True)
class SwapEvent:
    token_inputs: tuple[SwapTokenLeg, ...] = ()
    token_outputs: tuple[SwapTokenLeg, ...] = ()
    native_input: SwapNativeLeg | None = None
    native_output: SwapNativeLeg | None = None

    @classmethod
    def from_dict(cls, item: Any) -> "SwapEvent | None":
        if not isinstance(item, dict):
            return None
        return cls(
            token_inputs=tuple(SwapTokenLeg.from_dict(x) for x in _dicts(item.get("tokenInputs"))),
            token_outputs=tuple(SwapTokenLeg.from_dict(x) for x in _dicts(item.get("tokenOutputs"))),
            native_input=SwapNativeLeg.from_dict(item.get("nativeInput")),
            native_output=SwapNativeLeg.from_dict(item.get("nativeOutput")),
        )


@dataclass(frozen=True)
class EnrichedTransaction:
    """
    One enriched transaction record. Immutable; rebuilt on every analysis.

    transaction_error is the raw error payload (None when the tx succeeded).
    """

    signature: str
    timestamp: int = 0
    fee: int = 0
    fee_payer: str = ""
    type: str = ""
    source: str = ""
    description: str = ""
    token_transfers: tuple[TokenTransfer, ...] = ()
    native_transfers: tuple[NativeTransfer, ...] = ()
    account_data: tuple[AccountData, ...] = ()
    transaction_error: Any = None
    swap: SwapEvent | None = None

    @property
    def failed(self) -> bool:
        return self.transaction_error is not None

    def native_balance_change(self, address: str) -> int:
        """Lamport delta for address from accountData (first matching entry), else 0."""
        for ad in self.account_data:
            if ad.account == address:
                return ad.native_balance_change
        return 0

    def mints(self) -> list[str]:
        """Distinct mints referenced by transfers and swap legs, in first-seen order."""
        seen: dict[str, None] = {}
        for tt in self.token_transfers:
            if tt.mint:
                seen.setdefault(tt.mint, None)
        if self.swap is not None:
            for leg in self.swap.token_inputs + self.swap.token_outputs:
                if leg.mint:
                    seen.setdefault(leg.mint, None)
        return list(seen)

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> "EnrichedTransaction":
        events = item.get("events")
        swap = SwapEvent.from_dict(events.get("swap")) if isinstance(events, dict) else None
        return cls(
            signature=_str(item.get("signature")),
            timestamp=_int(item.get("timestamp")),
            fee=_int(item.get("fee")),
            fee_payer=_str(item.get("feePayer")),
            type=_str(item.get("type")),
            source=_str(item.get("source")),
            description=_str(item.get("description")),
            token_transfers=tuple(TokenTransfer.from_dict(x) for x in _dicts(item.get("tokenTransfers"))),
            native_transfers=tuple(NativeTransfer.from_dict(x) for x in _dicts(item.get("nativeTransfers"))),
            account_data=tuple(AccountData.from_dict(x) for x in _dicts(item.get("accountData"))),
            transaction_error=item.get("transactionError"),
            swap=swap,
        )


class ResolutionOutcome(str, Enum):
    KNOWN = "known"        # pre-seeded (SOL, USDC)
    RESOLVED = "resolved"  # read from the on-chain metadata record
    FALLBACK = "fallback"  # placeholder after a failed resolution


@dataclass(frozen=True)
class TokenMetadata:
    mint: str
    symbol: str
    decimals: int
    outcome: ResolutionOutcome = ResolutionOutcome.RESOLVED


@dataclass(frozen=True)
class AssetAmount:
    """
    Unsigned amount of one asset on one side (sent/received) of a summary.

    mint is None for native SOL (including folded wrapped SOL).
    """

    mint: str | None
    amount: float


@dataclass
class AnalysisOutcome:
    """Result of a manual analysis run: summary text, or the fetch error string."""

    signature: str
    address: str
    summary: str = ""
    error: str | None = None

    @property
    def filtered(self) -> bool:
        return self.error is None and not self.summary

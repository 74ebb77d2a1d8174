"""
Dust filter and net balance computation for one watched address.

Native SOL exposure comes only from accountData.nativeBalanceChange (fees
included); nativeTransfers are ignored as wrap/unwrap/rent noise. Wrapped SOL
is removed from the per-mint sums and folded into native exposure only when
the address received it from a different account, and only the positive net.
A negative wrapped-SOL delta is never subtracted. This asymmetry is a known
approximation (multi-hop wraps can still double count) and is kept as is.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from solwatch.analysis_engine.models import (
    LAMPORTS_PER_SOL,
    WSOL_MINT,
    AssetAmount,
    EnrichedTransaction,
)

DUST_THRESHOLD_SOL = 0.0001
EPSILON = 1e-12


def should_filter(tx: EnrichedTransaction, address: str) -> bool:
    """True for successful dust-only transactions (suppressed, not notified)."""
    if tx.failed:
        return False
    for tt in tx.token_transfers:
        if tt.mint == WSOL_MINT:
            continue
        if address in (tt.from_user_account, tt.to_user_account):
            return False
    native_sol = abs(tx.native_balance_change(address)) / LAMPORTS_PER_SOL
    return native_sol < DUST_THRESHOLD_SOL


@dataclass(frozen=True)
class NetDeltas:
    native: float
    """Net SOL for the address, wrapped-SOL fold applied."""
    tokens: dict[str, float] = field(default_factory=dict)
    """mint -> signed net amount, first-seen order, wrapped SOL excluded."""


def compute_net_deltas(tx: EnrichedTransaction, address: str) -> NetDeltas:
    tokens: dict[str, float] = {}
    wsol_inflow_from_other = False
    for tt in tx.token_transfers:
        if not tt.mint:
            continue
        if tt.from_user_account == address:
            tokens[tt.mint] = tokens.get(tt.mint, 0.0) - tt.token_amount
        if tt.to_user_account == address:
            tokens[tt.mint] = tokens.get(tt.mint, 0.0) + tt.token_amount
            if tt.mint == WSOL_MINT and tt.from_user_account != address:
                wsol_inflow_from_other = True

    native = tx.native_balance_change(address) / LAMPORTS_PER_SOL
    wsol_delta = tokens.pop(WSOL_MINT, 0.0)
    if wsol_inflow_from_other and wsol_delta > EPSILON:
        native += wsol_delta
    return NetDeltas(native=native, tokens=tokens)


def split_sent_received(deltas: NetDeltas) -> tuple[list[AssetAmount], list[AssetAmount]]:
    """Negative deltas are sent, positive received; SOL first, then tokens."""
    sent: list[AssetAmount] = []
    received: list[AssetAmount] = []

    def place(mint: str | None, delta: float) -> None:
        if abs(delta) <= EPSILON:
            return
        (received if delta > 0 else sent).append(AssetAmount(mint=mint, amount=abs(delta)))

    place(None, deltas.native)
    for mint, delta in deltas.tokens.items():
        place(mint, delta)
    return sent, received


def swap_legs(
    tx: EnrichedTransaction, address: str
) -> tuple[list[AssetAmount], list[AssetAmount]] | None:
    """
    Sent/received taken directly from the swap event's legs owned by address.

    None when there is no swap event or none of its legs belong to address;
    the caller then falls back to netting.
    """
    swap = tx.swap
    if swap is None:
        return None
    sent = [AssetAmount(leg.mint, leg.amount) for leg in swap.token_inputs if leg.user_account == address]
    received = [AssetAmount(leg.mint, leg.amount) for leg in swap.token_outputs if leg.user_account == address]
    if swap.native_input and swap.native_input.account == address and swap.native_input.amount > 0:
        sent.insert(0, AssetAmount(None, swap.native_input.amount / LAMPORTS_PER_SOL))
    if swap.native_output and swap.native_output.account == address and swap.native_output.amount > 0:
        received.insert(0, AssetAmount(None, swap.native_output.amount / LAMPORTS_PER_SOL))
    if not sent and not received:
        return None
    return sent, received

"""
Human-readable rendering for analysis summaries (Telegram HTML).

Amount rule:
- magnitude >= 1000: no fractional digits, thousands separators
- magnitude in [1, 1000): two fractional digits, thousands separators
- magnitude < 1: three significant figures, positional notation
Rounding is half-up on the decimal representation of the float, and a value
that rounds across a band boundary is rendered with the upper band's rule
(999.996 -> "1,000", 0.9996 -> "1.00").
"""

from __future__ import annotations

import html
import math
import re
from decimal import ROUND_HALF_UP, Decimal

SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"

# base58 alphabet, 32-44 chars: public keys embedded in descriptions
_ADDRESS_RE = re.compile(r"[1-9A-HJ-NP-Za-km-z]{32,44}")

_ONE = Decimal(1)
_THOUSAND = Decimal(1000)
_CENTS = Decimal("0.01")
_LARGE = 1e15


def format_human_readable(value: float) -> str:
    if not math.isfinite(value):
        return str(value)
    if value < 0:
        return "-" + format_human_readable(-value)
    if value == 0:
        return "0"
    if value >= _LARGE:
        # beyond float integer precision; also keeps quantize within context precision
        return f"{value:,.0f}"

    d = Decimal(repr(value))
    if d < _ONE:
        quantum = _ONE.scaleb(d.adjusted() - 2)
        rounded = d.quantize(quantum, rounding=ROUND_HALF_UP)
        if rounded < _ONE:
            return _strip_zeros(format(rounded, "f"))
        d = rounded

    cents = d.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if cents >= _THOUSAND:
        whole = d.quantize(_ONE, rounding=ROUND_HALF_UP)
        return f"{whole:,.0f}"
    return f"{cents:,.2f}"


def _strip_zeros(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_fiat(usd: float) -> str:
    return f" (${usd:,.2f})"


def format_asset(amount: float, symbol: str, usd_value: float | None = None) -> str:
    """'1,500 BONK' or '1.25 SOL ($187.50)'; symbol is HTML-escaped."""
    text = f"{format_human_readable(amount)} {html.escape(symbol, quote=False)}"
    if usd_value is not None:
        text += format_fiat(usd_value)
    return text


def shorten_address(address: str, head: int = 4, tail: int = 4) -> str:
    if len(address) <= head + tail:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def clean_description(description: str) -> str:
    """HTML-escape and shorten every embedded base58 address to abcd...wxyz."""
    if not description:
        return ""
    escaped = html.escape(description.strip(), quote=False)
    return _ADDRESS_RE.sub(lambda m: shorten_address(m.group(0)), escaped)


def build_headline(tx_type: str, source: str, sent: list[str], received: list[str]) -> str:
    """
    Classification headline.

    sent/received are already-rendered (escaped) amount strings.
    """
    via = html.escape(source or "UNKNOWN", quote=False)
    kind = tx_type.upper()
    if kind == "CREATE":
        bought = received[0] if received else "new token"
        return f"🧱 CREATE & BUY via {via}: Bought {bought}"
    if kind == "SWAP":
        return f"🔁 SWAP via {via}"
    if sent and received:
        return f"↔️ INTERACTION via {via}"
    if sent:
        return f"⬆️ SEND via {via}"
    if received:
        return f"⬇️ RECEIVE via {via}"
    label = tx_type.replace("_", " ").title() or "Unknown"
    return f"⚙️ {html.escape(label, quote=False)} via {via}"


def solscan_link(signature: str) -> str:
    label = f"{signature[:6]}...{signature[-6:]}" if len(signature) > 12 else signature
    url = SOLSCAN_TX_URL.format(signature=signature)
    return f'<a href="{url}">{label}</a>'


def build_summary(
    signature: str,
    headline: str,
    description: str,
    sent: list[str],
    received: list[str],
) -> str:
    lines = [f"<b>{headline}</b>"]
    if description:
        lines.append(f"ℹ️ <i>{description}</i>")
    lines.append("")
    if sent:
        lines.append(f"💰 <b>Sent:</b> {', '.join(sent)}")
    if received:
        lines.append(f"💸 <b>Received:</b> {', '.join(received)}")
    lines.append("")
    lines.append(solscan_link(signature))
    return "\n".join(lines)

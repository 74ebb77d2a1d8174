"""
Application-level exceptions.

One hierarchy rooted at SolwatchError. Only TransactionFetchError and
ConfigError are ever surfaced to an operator; the rest are raised and
absorbed inside the component that owns them.
"""

from __future__ import annotations


class SolwatchError(Exception):
    """Base class for all solwatch errors."""


class ConfigError(SolwatchError):
    """Missing or invalid configuration; fatal at startup."""


class InvalidAddressError(SolwatchError, ValueError):
    """Watched address is not a valid base58 public key."""


class TransactionFetchError(SolwatchError):
    """Enrichment service unavailable or returned unusable data for a signature."""

    def __init__(self, signature: str, reason: str) -> None:
        super().__init__(f"failed to fetch tx {signature}: {reason}")
        self.signature = signature
        self.reason = reason


class RpcError(SolwatchError):
    """JSON-RPC transport failure or an error object in the response."""

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        suffix = f" (code={code})" if code is not None else ""
        super().__init__(f"{method}: {message}{suffix}")
        self.method = method
        self.code = code


class MetadataResolutionError(SolwatchError):
    """Token metadata could not be resolved; always converted to a fallback entry."""


class UnsupportedTokenProgramError(MetadataResolutionError):
    def __init__(self, mint: str, owner: str) -> None:
        super().__init__(f"unsupported token program for {mint}: {owner or '(none)'}")
        self.mint = mint
        self.owner = owner


class MetadataParseError(MetadataResolutionError):
    """Metadata record bytes are truncated or malformed."""


class PriceUnavailableError(SolwatchError):
    """Price service failed or omitted the requested asset."""


class SubscriptionRejectedError(SolwatchError):
    """The stream endpoint answered the subscribe request with an error object."""


class ReadDeadlineExceededError(SolwatchError):
    """Nothing (data or heartbeat ack) arrived before the read deadline."""


class DeliveryError(SolwatchError):
    """Outbound notification could not be delivered."""

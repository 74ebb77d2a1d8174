"""Persistent watched-address list (SQLAlchemy / SQLite)."""

from solwatch.database.wallet_store import TrackedWallet, WalletStore, validate_address

__all__ = ["TrackedWallet", "WalletStore", "validate_address"]

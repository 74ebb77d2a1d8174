"""
Tests for the SQLite-backed watched-address store.
"""

from __future__ import annotations

import pytest

from solwatch.core.exceptions import InvalidAddressError
from solwatch.database.wallet_store import WalletStore, validate_address

VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
VALID_WALLET_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"


def test_add_wallet_valid_and_duplicate(wallet_store):
    assert wallet_store.add_wallet(VALID_WALLET) is True
    assert wallet_store.add_wallet(f" {VALID_WALLET} ") is False
    assert wallet_store.list_wallets() == [VALID_WALLET]
    assert wallet_store.count() == 1


def test_add_wallet_invalid(wallet_store):
    with pytest.raises(InvalidAddressError, match="Invalid Solana address"):
        wallet_store.add_wallet("not-a-valid-pubkey")
    with pytest.raises(InvalidAddressError, match="non-empty"):
        wallet_store.add_wallet("   ")
    assert wallet_store.list_wallets() == []


def test_invalid_address_is_a_value_error():
    with pytest.raises(ValueError):
        validate_address("0OIl")
    assert validate_address(f"\t{VALID_WALLET}\n") == VALID_WALLET


def test_remove_wallet(wallet_store):
    wallet_store.add_wallet(VALID_WALLET)
    assert wallet_store.remove_wallet(VALID_WALLET) is True
    assert wallet_store.remove_wallet(VALID_WALLET) is False
    assert wallet_store.remove_wallet("") is False
    assert wallet_store.count() == 0


def test_list_is_sorted_and_survives_reopen(tmp_path):
    path = tmp_path / "persist.db"
    store = WalletStore(path)
    store.add_wallet(VALID_WALLET)
    store.add_wallet(VALID_WALLET_2)
    store.close()

    reopened = WalletStore(path)
    try:
        assert reopened.list_wallets() == sorted([VALID_WALLET, VALID_WALLET_2])
    finally:
        reopened.close()

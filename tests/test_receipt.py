"""Tests for the receipt-token projection of ledger shares."""

import pytest

from conftest import ASSET, build_vault
from yieldpool.core.errors import InsufficientShares


@pytest.fixture
def vault(operator):
    return build_vault(operator, receipt_tokens_enabled=True)


def test_receipts_minted_with_shares(vault, alice) -> None:
    vault.deposit(alice, ASSET, 500)
    assert vault.receipts.balance_of(ASSET, "alice") == 500
    assert vault.receipts.total_supply(ASSET) == vault.asset_record(ASSET).total_shares


def test_transfer_moves_claim(vault, alice, bob) -> None:
    vault.deposit(alice, ASSET, 500)
    vault.transfer_shares(alice, ASSET, "bob", 200)

    assert vault.receipts.balance_of(ASSET, "bob") == 200
    assert vault.get_position("bob", ASSET).shares == 200
    assert vault.get_position("alice", ASSET).shares == 300

    receipt = vault.withdraw(bob, ASSET, 200)
    assert receipt.net_amount == 200
    assert vault.receipts.balance_of(ASSET, "bob") == 0
    assert vault.receipts.total_supply(ASSET) == 300


def test_transfer_beyond_balance_rejected(vault, alice) -> None:
    vault.deposit(alice, ASSET, 100)
    with pytest.raises(InsufficientShares):
        vault.transfer_shares(alice, ASSET, "bob", 101)
    assert vault.get_position("alice", ASSET).shares == 100
    assert vault.ledger.shares_of(ASSET, "bob") == 0


def test_receipts_disabled_by_default(operator) -> None:
    assert build_vault(operator).receipts is None

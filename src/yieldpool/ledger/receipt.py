"""Transferable receipt tokens projected 1:1 onto ledger shares."""

from collections import defaultdict

from yieldpool.core.errors import InsufficientShares
from yieldpool.ledger.store import LedgerStore
from yieldpool.logging import get_logger

logger = get_logger(__name__)


class ReceiptToken:
    """Token balances mirroring ledger shares, one token per share.

    The ledger stays the source of truth: a token transfer is only accepted if
    the matching ledger transfer succeeds, so ``balance_of`` and the ledger
    position never disagree.
    """

    def __init__(self, ledger: LedgerStore) -> None:
        self._ledger = ledger
        self._balances: dict[tuple[str, str], int] = defaultdict(int)
        self._supply: dict[str, int] = defaultdict(int)

    def mint(self, asset: str, holder: str, amount: int) -> None:
        self._balances[(asset, holder)] += amount
        self._supply[asset] += amount

    def burn(self, asset: str, holder: str, amount: int) -> None:
        balance = self._balances.get((asset, holder), 0)
        if balance < amount:
            raise InsufficientShares(amount, balance)
        self._balances[(asset, holder)] = balance - amount
        self._supply[asset] -= amount

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        balance = self._balances.get((asset, sender), 0)
        if balance < amount:
            raise InsufficientShares(amount, balance)
        self._ledger.transfer_shares(asset, sender, recipient, amount)
        self._balances[(asset, sender)] = balance - amount
        self._balances[(asset, recipient)] += amount
        logger.info(f"Receipt transfer {asset}: {sender} -> {recipient} ({amount})")

    def balance_of(self, asset: str, holder: str) -> int:
        return self._balances.get((asset, holder), 0)

    def total_supply(self, asset: str) -> int:
        return self._supply.get(asset, 0)

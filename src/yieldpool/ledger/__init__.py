"""Share ledger -- asset registry, fee policy, positions, and receipt tokens."""

from .fees import FeePolicy, apply_fee
from .receipt import ReceiptToken
from .registry import AssetRegistry
from .store import MIN_SHARES, LedgerStore

__all__ = [
    "AssetRegistry",
    "FeePolicy",
    "LedgerStore",
    "MIN_SHARES",
    "ReceiptToken",
    "apply_fee",
]

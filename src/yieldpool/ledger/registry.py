"""Ordered registry of supported assets."""

from yieldpool.core.errors import (
    ActivePositionsExist,
    AmountAboveMaximum,
    AmountBelowMinimum,
    AssetAlreadyExists,
    AssetNotSupported,
    InvalidAmount,
)
from yieldpool.core.types import AssetRecord
from yieldpool.logging import get_logger

logger = get_logger(__name__)


class AssetRegistry:
    """Supported assets with O(1) lookup and O(1) swap-remove.

    Iteration order is insertion order until the first removal; a removal moves
    the last asset into the freed slot, so callers must not rely on order
    surviving ``remove_asset``.
    """

    def __init__(self) -> None:
        self._order: list[str] = []
        self._index: dict[str, int] = {}
        self._records: dict[str, AssetRecord] = {}

    def __contains__(self, asset: str) -> bool:
        return asset in self._records

    def __len__(self) -> int:
        return len(self._order)

    def add_asset(
        self, asset: str, min_deposit: int = 0, max_deposit: int = 0, symbol: str = ""
    ) -> AssetRecord:
        if not asset:
            raise InvalidAmount("Asset identity must be non-empty")
        if asset in self._records:
            raise AssetAlreadyExists(asset)
        _check_limits(min_deposit, max_deposit)

        record = AssetRecord(
            asset=asset,
            min_deposit=min_deposit,
            max_deposit=max_deposit,
            symbol=symbol or asset,
        )
        self._index[asset] = len(self._order)
        self._order.append(asset)
        self._records[asset] = record
        logger.info(f"Asset added: {asset} (min={min_deposit}, max={max_deposit or 'unbounded'})")
        return record

    def remove_asset(self, asset: str) -> None:
        record = self.get(asset)
        if record.total_shares != 0:
            raise ActivePositionsExist(asset, record.total_shares)

        idx = self._index[asset]
        last = self._order[-1]
        # Swap, truncate and reindex together; nothing in between can fail.
        self._order[idx] = last
        self._index[last] = idx
        self._order.pop()
        del self._index[asset]
        del self._records[asset]
        logger.info(f"Asset removed: {asset}")

    def update_limits(self, asset: str, min_deposit: int, max_deposit: int) -> None:
        record = self.get(asset)
        _check_limits(min_deposit, max_deposit)
        record.min_deposit = min_deposit
        record.max_deposit = max_deposit
        logger.info(f"Limits updated for {asset}: min={min_deposit}, max={max_deposit or 'unbounded'}")

    def get(self, asset: str) -> AssetRecord:
        """Return the live record; raises ``AssetNotSupported`` when absent."""
        record = self._records.get(asset)
        if record is None or not record.supported:
            raise AssetNotSupported(asset)
        return record

    def is_supported(self, asset: str) -> bool:
        record = self._records.get(asset)
        return record is not None and record.supported

    def assets(self) -> list[str]:
        return list(self._order)

    def index_of(self, asset: str) -> int:
        if asset not in self._index:
            raise AssetNotSupported(asset)
        return self._index[asset]

    def check_deposit_bounds(self, asset: str, amount: int) -> None:
        record = self.get(asset)
        if amount < record.min_deposit:
            raise AmountBelowMinimum(amount, record.min_deposit)
        if record.max_deposit and amount > record.max_deposit:
            raise AmountAboveMaximum(amount, record.max_deposit)


def _check_limits(min_deposit: int, max_deposit: int) -> None:
    if min_deposit < 0 or max_deposit < 0:
        raise InvalidAmount("Deposit limits must be non-negative")

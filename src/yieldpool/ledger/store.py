"""Share ledger: proportional claims on each asset's pooled value."""

from datetime import UTC, datetime

from yieldpool.core.errors import (
    BelowMinimumShares,
    InsufficientShares,
    InvalidAmount,
    SlippageExceeded,
)
from yieldpool.core.types import PositionRecord, Redemption
from yieldpool.ledger.fees import apply_fee
from yieldpool.ledger.registry import AssetRegistry
from yieldpool.logging import get_logger

logger = get_logger(__name__)

# Dust floor: no deposit may mint fewer shares than this.
MIN_SHARES = 10


def shares_for_amount(net_amount: int, total_shares: int, pooled_value: int) -> int:
    """Shares minted for ``net_amount`` given the pool state before the deposit.

    An empty pool (no shares or no value) prices 1:1, which keeps the first
    depositor away from a division by zero and leaves no room for a donation to
    skew the opening share price.
    """
    if total_shares == 0 or pooled_value == 0:
        return net_amount
    return net_amount * total_shares // pooled_value


def amount_for_shares(shares: int, total_shares: int, pooled_value: int) -> int:
    """Gross pool value redeemable for ``shares`` (floored, pool-favoring)."""
    if total_shares == 0:
        return 0
    return shares * pooled_value // total_shares


class LedgerStore:
    """Per-asset totals live in the registry; positions live here, keyed by
    ``(asset, depositor)``.

    All methods take ``pooled_value`` from the caller: the store does not know
    where capital is deployed, only how claims on it are divided. Every
    ``preview_*`` method runs exactly the checks of its mutating twin, so a
    caller can validate, move funds, and only then commit.
    """

    def __init__(self, registry: AssetRegistry) -> None:
        self._registry = registry
        self._positions: dict[tuple[str, str], PositionRecord] = {}

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------

    def preview_mint(
        self, asset: str, net_amount: int, pooled_value: int, min_shares_accepted: int = 0
    ) -> int:
        record = self._registry.get(asset)
        if net_amount <= 0:
            raise InvalidAmount(f"Deposit amount must be positive, got {net_amount}")
        shares = shares_for_amount(net_amount, record.total_shares, pooled_value)
        if shares < min_shares_accepted:
            raise SlippageExceeded(shares, min_shares_accepted, what="shares")
        if shares < MIN_SHARES:
            raise BelowMinimumShares(shares, MIN_SHARES)
        return shares

    def mint_shares(
        self,
        asset: str,
        depositor: str,
        net_amount: int,
        pooled_value: int,
        *,
        gross_amount: int | None = None,
        min_shares_accepted: int = 0,
        now: datetime | None = None,
    ) -> int:
        shares = self.preview_mint(asset, net_amount, pooled_value, min_shares_accepted)
        gross = net_amount if gross_amount is None else gross_amount

        record = self._registry.get(asset)
        position = self._positions.setdefault((asset, depositor), PositionRecord())
        record.total_shares += shares
        record.total_deposited += gross
        position.shares += shares
        position.total_deposited += gross
        position.last_deposit_time = now or datetime.now(UTC)

        logger.debug(
            f"Minted {shares} shares of {asset} to {depositor} "
            f"(net={net_amount}, pooled={pooled_value}, total_shares={record.total_shares})"
        )
        return shares

    # ------------------------------------------------------------------
    # Burn
    # ------------------------------------------------------------------

    def preview_burn(
        self,
        asset: str,
        depositor: str,
        shares: int,
        pooled_value: int,
        min_amount_accepted: int = 0,
        fee_rate_bps: int = 0,
    ) -> Redemption:
        record = self._registry.get(asset)
        if shares <= 0:
            raise InvalidAmount(f"Shares to burn must be positive, got {shares}")
        held = self.shares_of(asset, depositor)
        if held < shares:
            raise InsufficientShares(shares, held)

        gross = amount_for_shares(shares, record.total_shares, pooled_value)
        # Bound is on the pre-fee amount.
        if gross < min_amount_accepted:
            raise SlippageExceeded(gross, min_amount_accepted, what="gross amount")
        net, fee = apply_fee(gross, fee_rate_bps)
        return Redemption(shares=shares, gross_amount=gross, fee_amount=fee, net_amount=net)

    def burn_shares(
        self,
        asset: str,
        depositor: str,
        shares: int,
        pooled_value: int,
        min_amount_accepted: int = 0,
        fee_rate_bps: int = 0,
    ) -> Redemption:
        redemption = self.preview_burn(
            asset, depositor, shares, pooled_value, min_amount_accepted, fee_rate_bps
        )
        record = self._registry.get(asset)
        position = self._positions[(asset, depositor)]
        position.shares -= shares
        position.total_withdrawn += redemption.gross_amount
        record.total_shares -= shares
        record.total_withdrawn += redemption.gross_amount

        logger.debug(
            f"Burned {shares} shares of {asset} from {depositor} "
            f"(gross={redemption.gross_amount}, fee={redemption.fee_amount})"
        )
        return redemption

    # ------------------------------------------------------------------
    # Transfers (receipt-token projection)
    # ------------------------------------------------------------------

    def transfer_shares(self, asset: str, sender: str, recipient: str, shares: int) -> None:
        self._registry.get(asset)
        if shares <= 0:
            raise InvalidAmount(f"Shares to transfer must be positive, got {shares}")
        if not recipient:
            raise InvalidAmount("Recipient identity must be non-empty")
        held = self.shares_of(asset, sender)
        if held < shares:
            raise InsufficientShares(shares, held)
        if sender == recipient:
            return
        self._positions[(asset, sender)].shares -= shares
        self._positions.setdefault((asset, recipient), PositionRecord()).shares += shares

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def shares_of(self, asset: str, depositor: str) -> int:
        position = self._positions.get((asset, depositor))
        return position.shares if position else 0

    def position(self, asset: str, depositor: str) -> PositionRecord:
        """Copy of the position; a zero position when the depositor never deposited."""
        position = self._positions.get((asset, depositor))
        if position is None:
            return PositionRecord()
        return PositionRecord(
            shares=position.shares,
            last_deposit_time=position.last_deposit_time,
            total_deposited=position.total_deposited,
            total_withdrawn=position.total_withdrawn,
        )

    def holders(self, asset: str) -> dict[str, int]:
        """Depositors with nonzero shares in ``asset``."""
        return {
            depositor: pos.shares
            for (a, depositor), pos in self._positions.items()
            if a == asset and pos.shares > 0
        }

    def assets_of(self, depositor: str) -> list[str]:
        return [
            asset
            for (asset, d), pos in self._positions.items()
            if d == depositor and pos.shares > 0
        ]

    def is_conserved(self, asset: str) -> bool:
        """True when the positions of ``asset`` sum exactly to its total shares."""
        record = self._registry.get(asset)
        return sum(self.holders(asset).values()) == record.total_shares

    def forget_asset(self, asset: str) -> None:
        """Drop zero-share positions of a de-registered asset."""
        for key in [k for k in self._positions if k[0] == asset]:
            del self._positions[key]

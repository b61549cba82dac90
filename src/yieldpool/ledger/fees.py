"""Deposit/withdrawal fee policy."""

from collections import defaultdict

from yieldpool.config import MAX_FEE_BPS
from yieldpool.core.errors import FeeRateTooHigh, InvalidAmount
from yieldpool.core.types import BPS_DENOMINATOR, FeeKind
from yieldpool.logging import get_logger

logger = get_logger(__name__)


def apply_fee(gross_amount: int, rate_bps: int) -> tuple[int, int]:
    """Split ``gross_amount`` into ``(net_amount, fee_amount)``.

    The fee is floored, so any rounding dust stays with the payer. The rate is
    trusted here: the ceiling is enforced when a rate is configured.
    """
    fee_amount = gross_amount * rate_bps // BPS_DENOMINATOR
    return gross_amount - fee_amount, fee_amount


class FeePolicy:
    """Holds the configured fee rates, the recipient, and fees accrued so far."""

    def __init__(
        self,
        deposit_fee_bps: int = 0,
        withdrawal_fee_bps: int = 0,
        recipient: str = "treasury",
        ceiling_bps: int = MAX_FEE_BPS,
    ) -> None:
        self._ceiling_bps = ceiling_bps
        self._rates: dict[FeeKind, int] = {FeeKind.DEPOSIT: 0, FeeKind.WITHDRAWAL: 0}
        self._recipient = recipient
        # (recipient, asset) -> accrued amount
        self._accrued: dict[tuple[str, str], int] = defaultdict(int)
        self.set_fee(FeeKind.DEPOSIT, deposit_fee_bps)
        self.set_fee(FeeKind.WITHDRAWAL, withdrawal_fee_bps)

    @property
    def recipient(self) -> str:
        return self._recipient

    @property
    def deposit_fee_bps(self) -> int:
        return self._rates[FeeKind.DEPOSIT]

    @property
    def withdrawal_fee_bps(self) -> int:
        return self._rates[FeeKind.WITHDRAWAL]

    def rate(self, kind: FeeKind) -> int:
        return self._rates[kind]

    def set_fee(self, kind: FeeKind | str, rate_bps: int) -> None:
        """Configure a fee rate; the only place the ceiling is checked."""
        kind = FeeKind(kind)
        if rate_bps < 0:
            raise InvalidAmount(f"Fee rate must be non-negative, got {rate_bps}")
        if rate_bps > self._ceiling_bps:
            raise FeeRateTooHigh(rate_bps, self._ceiling_bps)
        old = self._rates[kind]
        self._rates[kind] = rate_bps
        if old != rate_bps:
            logger.info(f"{kind.value} fee updated: {old} -> {rate_bps} bps")

    def set_recipient(self, recipient: str) -> None:
        if not recipient:
            raise InvalidAmount("Fee recipient must be a non-empty identity")
        logger.info(f"Fee recipient updated: {self._recipient} -> {recipient}")
        self._recipient = recipient

    def apply(self, kind: FeeKind, gross_amount: int) -> tuple[int, int]:
        return apply_fee(gross_amount, self._rates[kind])

    def accrue(self, asset: str, fee_amount: int) -> None:
        """Credit a collected fee to the current recipient."""
        if fee_amount > 0:
            self._accrued[(self._recipient, asset)] += fee_amount

    def accrued(self, asset: str, recipient: str | None = None) -> int:
        return self._accrued.get((recipient or self._recipient, asset), 0)

    def accrued_by_recipient(self) -> dict[str, dict[str, int]]:
        out: dict[str, dict[str, int]] = {}
        for (recipient, asset), amount in self._accrued.items():
            out.setdefault(recipient, {})[asset] = amount
        return out

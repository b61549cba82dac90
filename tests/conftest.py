"""Shared test fixtures."""

import pytest

from yieldpool.adapters.simulated import SimulatedStrategyAdapter
from yieldpool.config import YieldPoolSettings
from yieldpool.core.capabilities import Capabilities
from yieldpool.core.types import StrategyMetrics
from yieldpool.observability.journal import LedgerJournal
from yieldpool.vault import YieldVault

ASSET = "USDC"


def make_settings(**overrides) -> YieldPoolSettings:
    """Settings isolated from the process environment and any .env file."""
    values = {
        "deposit_fee_bps": 0,
        "withdrawal_fee_bps": 0,
        "fee_recipient": "treasury",
        "risk_free_rate_bps": 200,
        "min_yield_improvement_bps": 50,
        "max_slippage_bps": 100,
        "rebalance_deadline_seconds": 3600,
        "receipt_tokens_enabled": False,
        "journal_dir": None,
    }
    values.update(overrides)
    return YieldPoolSettings(_env_file=None, **values)


def safe_metrics(identity: str, apy_bps: int, volatility_bps: int = 0) -> StrategyMetrics:
    """Metrics with enough liquidity and market cap to avoid either penalty."""
    return StrategyMetrics(
        identity=identity,
        current_apy_bps=apy_bps,
        volatility_bps=volatility_bps,
        liquidity_depth_usd=5_000_000,
        market_cap_usd=50_000_000,
    )


@pytest.fixture
def operator() -> Capabilities:
    return Capabilities.operator()


@pytest.fixture
def alice() -> Capabilities:
    return Capabilities.depositor("alice")


@pytest.fixture
def bob() -> Capabilities:
    return Capabilities.depositor("bob")


@pytest.fixture
def adapters() -> dict[str, SimulatedStrategyAdapter]:
    return {
        "aave": SimulatedStrategyAdapter("aave", apy_bps=300),
        "compound": SimulatedStrategyAdapter("compound", apy_bps=600),
        "curve": SimulatedStrategyAdapter("curve", apy_bps=900),
    }


def build_vault(operator: Capabilities, adapters=None, **overrides) -> YieldVault:
    vault = YieldVault(make_settings(**overrides), journal=LedgerJournal())
    vault.add_asset(operator, ASSET)
    for adapter in (adapters or {}).values():
        vault.register_strategy(operator, adapter)
    return vault


@pytest.fixture
def vault(operator, adapters) -> YieldVault:
    """Vault with one asset and three registered (not yet targeted) strategies."""
    return build_vault(operator, adapters)

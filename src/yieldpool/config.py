"""Configuration management using Pydantic v2."""

import os
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Hard ceiling for any configured fee rate (5%).
MAX_FEE_BPS = 500


def _find_env_file() -> str:
    """Find .env file: check project root first, then CWD."""
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    env_path = os.path.join(project_root, ".env")
    if os.path.exists(env_path):
        return env_path
    return ".env"


class YieldPoolSettings(BaseSettings):
    """Main configuration for the yieldpool vault."""

    model_config = SettingsConfigDict(
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development",
        description="Application environment (development or production)",
    )
    debug_mode: bool = Field(default=False, description="Expose error details in API responses")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["text", "json"] = Field(
        default="text", description="Log output format: 'text' for humans, 'json' for aggregators"
    )

    # Fees
    deposit_fee_bps: int = Field(
        default=0, ge=0, le=MAX_FEE_BPS, description="Deposit fee in basis points (max 500 = 5%)"
    )
    withdrawal_fee_bps: int = Field(
        default=0, ge=0, le=MAX_FEE_BPS, description="Withdrawal fee in basis points (max 500 = 5%)"
    )
    fee_recipient: str = Field(default="treasury", description="Identity credited with collected fees")

    # Allocation policy
    risk_free_rate_bps: int = Field(
        default=200, ge=0, le=10_000, description="Risk-free baseline used for risk-adjusted return"
    )
    min_yield_improvement_bps: int = Field(
        default=50,
        ge=0,
        le=10_000,
        description="Minimum blended APY gain a rebalance must deliver over the current allocation",
    )
    max_slippage_bps: int = Field(
        default=100,
        ge=0,
        le=10_000,
        description="Maximum tolerated slippage on adapter calls during a rebalance",
    )
    rebalance_deadline_seconds: int = Field(
        default=3600, gt=0, description="Default validity window of a proposed rebalance"
    )

    # Ledger features
    receipt_tokens_enabled: bool = Field(
        default=False, description="Mint transferable receipt tokens 1:1 with ledger shares"
    )
    journal_dir: str | None = Field(
        default=None, description="Directory for the append-only ledger journal (None = in-memory)"
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=8000, gt=0, le=65535, description="API bind port")
    api_admin_key: str | None = Field(
        default=None, description="API key required for administrative endpoints"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


# Global settings instance
settings = YieldPoolSettings()

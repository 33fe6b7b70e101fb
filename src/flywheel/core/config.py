"""Flywheel runtime configuration definitions."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flywheel.core.errors import ConfigurationError
from flywheel.core.types import AllocationStrategy, RiskLimits
from flywheel.strategy.allocation import STRATEGY_TOLERANCE_PCT

DEFAULT_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class Settings(BaseSettings):
    """Application settings loaded from env and .env files."""

    app_name: str = "flywheel-engine"
    environment: str = Field(default="dev", pattern="^(dev|test|prod)$")
    db_url: str = "sqlite:///./flywheel_state.db"
    dry_run: bool = True

    # Network
    solana_rpc_url: str = "https://api.devnet.solana.com"
    solana_network: Literal["devnet", "mainnet-beta", "testnet"] = "devnet"
    rpc_timeout_s: float = Field(default=10.0, gt=0)
    rpc_max_retries: int = Field(default=3, ge=0)
    rpc_retry_delay_ms: int = Field(default=500, ge=0)

    # Wallets
    executor_secret_key: str = ""
    executor_keypair_path: str = ""
    fee_collector_pubkey: str = ""
    usdc_mint: str = DEFAULT_USDC_MINT

    # Fee detection
    fee_source: Literal["mock", "wallet"] = "mock"
    mock_fees_usd: float = Field(default=1000.0, ge=0)
    sol_price_usd: float = Field(default=100.0, gt=0)

    # Strategy
    buyback_percent: float = Field(default=50.0, ge=0, le=100)
    ads_percent: float = Field(default=50.0, ge=0, le=100)
    burn_percent: float = Field(default=0.0, ge=0, le=100)
    lp_add_percent: float = Field(default=0.0, ge=0, le=100)

    # Risk parameters
    max_budget_per_epoch_usd: float = Field(default=1000.0, gt=0)
    max_slippage_bps: int = Field(default=300, ge=0, le=10_000)
    max_price_impact_bps: int = Field(default=500, ge=0, le=10_000)
    min_interval_seconds: float = Field(default=3600.0, gt=0)
    max_ad_spend_per_epoch_usd: float = Field(default=500.0, gt=0)
    require_manual_approval: bool = True

    # Swap execution
    swap_input_asset: str = "USDC"
    swap_output_asset: str = "TOKEN"
    dry_run_token_price_usd: float = Field(default=0.01, gt=0)
    dry_run_pool_liquidity_usd: float = Field(default=250_000.0, gt=0)
    dry_run_slippage_bps: int = Field(default=50, ge=0, le=10_000)

    # Ads engine
    ads_engine_mode: Literal["dry-run", "manual"] = "dry-run"
    ads_target_post_id: str = ""
    ads_manual_queue_path: str = "artifacts/ads_manual_queue.jsonl"

    # Execution
    epoch_interval_seconds: float = Field(default=3600.0, gt=0)
    enable_scheduler: bool = False

    # Control plane
    enable_webhook: bool = False
    webhook_host: str = "127.0.0.1"
    webhook_port: int = Field(default=3000, gt=0, lt=65_536)
    webhook_secret: str = ""

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    # Circuit breaker
    circuit_breaker_failure_threshold: int = Field(default=3, gt=0)
    circuit_breaker_reset_timeout_ms: int = Field(default=300_000, gt=0)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FLYWHEEL_", extra="ignore")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().upper()
            return "WARNING" if normalized == "WARN" else normalized
        return value

    @model_validator(mode="after")
    def _check_combinations(self) -> Settings:
        total = self.strategy().total_pct
        if abs(total - 100) > STRATEGY_TOLERANCE_PCT:
            raise ValueError(f"Strategy percentages must sum to 100%, got {total}%")
        if not self.dry_run and not (self.executor_secret_key or self.executor_keypair_path):
            raise ValueError(
                "Must provide either FLYWHEEL_EXECUTOR_SECRET_KEY or FLYWHEEL_EXECUTOR_KEYPAIR_PATH"
            )
        if self.fee_source == "wallet" and not self.fee_collector_pubkey:
            raise ValueError("FLYWHEEL_FEE_COLLECTOR_PUBKEY is required for the wallet fee source")
        if self.ads_engine_mode == "manual" and not self.ads_target_post_id:
            raise ValueError("FLYWHEEL_ADS_TARGET_POST_ID is required for manual ads mode")
        if self.enable_webhook and not self.webhook_secret:
            raise ValueError("FLYWHEEL_WEBHOOK_SECRET is required when the webhook is enabled")
        return self

    def strategy(self) -> AllocationStrategy:
        return AllocationStrategy(
            buyback_pct=self.buyback_percent,
            ads_pct=self.ads_percent,
            burn_pct=self.burn_percent,
            lp_add_pct=self.lp_add_percent,
        )

    def risk_limits(self) -> RiskLimits:
        return RiskLimits(
            max_budget_per_epoch_usd=self.max_budget_per_epoch_usd,
            max_slippage_bps=self.max_slippage_bps,
            max_price_impact_bps=self.max_price_impact_bps,
            min_interval_seconds=self.min_interval_seconds,
            max_ad_spend_per_epoch_usd=self.max_ad_spend_per_epoch_usd,
            require_manual_approval=self.require_manual_approval,
        )


def load_settings(**overrides: Any) -> Settings:
    """Build validated settings or raise :class:`ConfigurationError`.

    Overrides take precedence over environment variables and the ``.env`` file.
    """

    try:
        return Settings(**overrides)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {details}") from exc

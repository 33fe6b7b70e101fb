"""Canonical domain types shared across flywheel layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


@dataclass(slots=True, frozen=True)
class FeeEntry:
    """One asset slice of detected revenue."""

    asset: str
    amount: float
    usd_value: float


@dataclass(slots=True, frozen=True)
class FeeDetectionResult:
    """Detection collaborator output, consumed read-only by allocation."""

    timestamp_ms: int
    sources: tuple[FeeEntry, ...] = field(default_factory=tuple)
    total_usd: float = 0.0


@dataclass(slots=True, frozen=True)
class AllocationStrategy:
    """Percentage split of revenue across treasury actions."""

    buyback_pct: float
    ads_pct: float
    burn_pct: float
    lp_add_pct: float

    @property
    def total_pct(self) -> float:
        return self.buyback_pct + self.ads_pct + self.burn_pct + self.lp_add_pct


@dataclass(slots=True, frozen=True)
class AllocationResult:
    """USD amounts per category; total_allocated is the exact category sum."""

    buyback_usd: float
    ads_usd: float
    burn_usd: float
    lp_add_usd: float
    total_allocated: float


@dataclass(slots=True, frozen=True)
class RiskLimits:
    """Spend and timing guardrails loaded once at startup."""

    max_budget_per_epoch_usd: float = 1000.0
    max_slippage_bps: int = 300
    max_price_impact_bps: int = 500
    min_interval_seconds: float = 3600.0
    max_ad_spend_per_epoch_usd: float = 500.0
    require_manual_approval: bool = True


@dataclass(slots=True, frozen=True)
class RiskCheckRequest:
    budget_usd: float
    time_since_last_epoch_seconds: float
    manually_approved: bool = False


@dataclass(slots=True, frozen=True)
class RiskCheckResult:
    allowed: bool
    reason: str | None = None


class CircuitBreakerState(StrEnum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(slots=True, frozen=True)
class SwapRequest:
    input_asset: str
    output_asset: str
    amount_usd: float


@dataclass(slots=True, frozen=True)
class SwapResult:
    """Executed (or simulated) swap receipt."""

    signature: str
    input_asset: str
    output_asset: str
    amount_usd: float
    output_amount: float
    price_impact_bps: int
    slippage_bps: int


@dataclass(slots=True, frozen=True)
class AdsRequest:
    budget_usd: float


@dataclass(slots=True, frozen=True)
class AdsResult:
    campaign_id: str
    mode: str
    budget_usd: float


@dataclass(slots=True, frozen=True)
class SummaryRequest:
    """Inputs for the human-readable epoch announcement."""

    epoch_id: int
    fees_usd: float
    buyback_usd: float
    ads_usd: float
    buyback_tx_ref: str | None = None
    report_ref: str | None = None


@dataclass(slots=True, frozen=True)
class EpochResult:
    """Outcome of one cycle, created once by the Execution Engine."""

    epoch_id: int
    success: bool
    fees_usd: float
    buyback_tx_ref: str | None = None
    ads_campaign_ref: str | None = None
    report_ref: str | None = None
    error: str | None = None
    summary: str | None = None
    started_at_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

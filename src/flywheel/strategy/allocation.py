"""Allocation Splitter: revenue -> per-action USD amounts."""

from __future__ import annotations

import logging

from flywheel.core.errors import ConfigurationError
from flywheel.core.types import AllocationResult, AllocationStrategy
from flywheel.core.units import percentage

ROUNDING_TOLERANCE_USD = 0.01
STRATEGY_TOLERANCE_PCT = 0.01

logger = logging.getLogger(__name__)


def validate_strategy(strategy: AllocationStrategy) -> None:
    """Reject strategies that cannot be allocated.

    Raises:
        ConfigurationError: If any percentage is outside [0, 100] or the
            percentages do not sum to 100.
    """

    for name in ("buyback_pct", "ads_pct", "burn_pct", "lp_add_pct"):
        value = getattr(strategy, name)
        if not 0 <= value <= 100:
            raise ConfigurationError(f"Strategy {name} must be within [0, 100], got {value}")
    if abs(strategy.total_pct - 100) > STRATEGY_TOLERANCE_PCT:
        raise ConfigurationError(
            f"Strategy allocation must total 100%, got {strategy.total_pct}%"
        )


def allocate(total_revenue_usd: float, strategy: AllocationStrategy) -> AllocationResult:
    """Split revenue by the strategy percentages.

    Pure and deterministic. Floating-point drift beyond one cent is logged,
    never raised.
    """
    buyback_usd = percentage(total_revenue_usd, strategy.buyback_pct)
    ads_usd = percentage(total_revenue_usd, strategy.ads_pct)
    burn_usd = percentage(total_revenue_usd, strategy.burn_pct)
    lp_add_usd = percentage(total_revenue_usd, strategy.lp_add_pct)
    total_allocated = buyback_usd + ads_usd + burn_usd + lp_add_usd

    drift = total_allocated - total_revenue_usd
    if abs(drift) > ROUNDING_TOLERANCE_USD:
        logger.warning(
            "allocation_mismatch total_revenue_usd=%s total_allocated=%s diff=%s",
            total_revenue_usd,
            total_allocated,
            drift,
        )

    result = AllocationResult(
        buyback_usd=buyback_usd,
        ads_usd=ads_usd,
        burn_usd=burn_usd,
        lp_add_usd=lp_add_usd,
        total_allocated=total_allocated,
    )
    logger.info(
        "allocation_complete buyback_usd=%.2f ads_usd=%.2f burn_usd=%.2f lp_add_usd=%.2f",
        buyback_usd,
        ads_usd,
        burn_usd,
        lp_add_usd,
    )
    return result

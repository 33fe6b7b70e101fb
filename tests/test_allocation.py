import logging

import pytest

from flywheel.core.errors import ConfigurationError
from flywheel.core.types import AllocationStrategy
from flywheel.core.units import (
    bps_to_decimal,
    calculate_price_impact,
    decimal_to_bps,
    format_usd,
    safe_divide,
)
from flywheel.strategy.allocation import allocate, validate_strategy


def test_allocate_splits_by_percentages() -> None:
    strategy = AllocationStrategy(buyback_pct=50, ads_pct=30, burn_pct=10, lp_add_pct=10)

    result = allocate(1000.0, strategy)

    assert result.buyback_usd == 500.0
    assert result.ads_usd == 300.0
    assert result.burn_usd == 100.0
    assert result.lp_add_usd == 100.0
    assert result.total_allocated == 1000.0


@pytest.mark.parametrize("revenue", [0.0, 0.01, 1.0, 333.33, 1234.5678, 99_999.99])
def test_allocation_sums_to_revenue(revenue: float) -> None:
    strategy = AllocationStrategy(buyback_pct=33.33, ads_pct=33.33, burn_pct=33.34, lp_add_pct=0)

    result = allocate(revenue, strategy)

    assert abs(result.total_allocated - revenue) <= 0.01


def test_allocate_zero_revenue() -> None:
    result = allocate(0.0, AllocationStrategy(buyback_pct=50, ads_pct=50, burn_pct=0, lp_add_pct=0))

    assert result.total_allocated == 0.0
    assert result.buyback_usd == 0.0


def test_allocate_logs_drift_without_raising(caplog: pytest.LogCaptureFixture) -> None:
    strategy = AllocationStrategy(buyback_pct=60, ads_pct=50, burn_pct=0, lp_add_pct=0)

    with caplog.at_level(logging.WARNING, logger="flywheel.strategy.allocation"):
        result = allocate(100.0, strategy)

    assert result.total_allocated == 110.0
    assert "allocation_mismatch" in caplog.text


def test_validate_strategy_accepts_tolerance() -> None:
    validate_strategy(AllocationStrategy(buyback_pct=50.005, ads_pct=50, burn_pct=0, lp_add_pct=0))


@pytest.mark.parametrize(
    "strategy",
    [
        AllocationStrategy(buyback_pct=50, ads_pct=40, burn_pct=0, lp_add_pct=0),
        AllocationStrategy(buyback_pct=120, ads_pct=-20, burn_pct=0, lp_add_pct=0),
    ],
)
def test_validate_strategy_rejects_invalid(strategy: AllocationStrategy) -> None:
    with pytest.raises(ConfigurationError):
        validate_strategy(strategy)


def test_unit_helpers() -> None:
    assert bps_to_decimal(300) == 0.03
    assert decimal_to_bps(0.05) == 500
    assert format_usd(1234.5) == "$1,234.50"
    assert safe_divide(1.0, 0.0) == 0.0
    assert calculate_price_impact(100.0, 99.0, 1.0) == 100

"""Basis-point, percentage and USD formatting helpers."""

from __future__ import annotations


def bps_to_decimal(bps: float) -> float:
    """Convert basis points to a decimal fraction (300 bps -> 0.03)."""
    return bps / 10_000


def decimal_to_bps(decimal: float) -> int:
    """Convert a decimal fraction to whole basis points (0.03 -> 300)."""
    return round(decimal * 10_000)


def percentage(value: float, pct: float) -> float:
    return (value * pct) / 100


def format_usd(value: float) -> str:
    """Format a USD amount with thousands separators and two decimals."""
    return f"${value:,.2f}"


def calculate_price_impact(input_amount: float, output_amount: float, expected_rate: float) -> int:
    """Price impact in bps of an executed rate against the expected rate."""
    actual_rate = safe_divide(output_amount, input_amount)
    impact = abs(1 - safe_divide(actual_rate, expected_rate))
    return decimal_to_bps(impact)


def safe_divide(numerator: float, denominator: float) -> float:
    return 0.0 if denominator == 0 else numerator / denominator

"""Dry-run DEX swapper: quotes against a simulated constant-product pool."""

from __future__ import annotations

import logging
import uuid

from flywheel.core.errors import PriceImpactExceededError, SlippageExceededError, SwapError
from flywheel.core.types import SwapRequest, SwapResult
from flywheel.core.units import bps_to_decimal, calculate_price_impact, format_usd

logger = logging.getLogger(__name__)


class DryRunSwapper:
    """Simulates a buyback without touching the chain.

    The pool holds ``pool_liquidity_usd`` split evenly between the quote asset
    and the token at ``token_price_usd``. A quote whose slippage or price
    impact is above the configured ceiling raises instead of executing.
    """

    def __init__(
        self,
        *,
        token_price_usd: float,
        pool_liquidity_usd: float,
        slippage_bps: int,
        max_slippage_bps: int,
        max_price_impact_bps: int,
    ) -> None:
        if token_price_usd <= 0 or pool_liquidity_usd <= 0:
            raise ValueError("token_price_usd and pool_liquidity_usd must be positive")
        self._token_price_usd = token_price_usd
        self._pool_liquidity_usd = pool_liquidity_usd
        self._slippage_bps = slippage_bps
        self._max_slippage_bps = max_slippage_bps
        self._max_price_impact_bps = max_price_impact_bps

    def quote(self, amount_usd: float) -> tuple[float, int]:
        """Return ``(token_output, price_impact_bps)`` for a USD input."""
        quote_reserve = self._pool_liquidity_usd / 2
        token_reserve = quote_reserve / self._token_price_usd
        output = token_reserve * amount_usd / (quote_reserve + amount_usd)
        impact_bps = calculate_price_impact(amount_usd, output, 1 / self._token_price_usd)
        return output, impact_bps

    async def swap(self, request: SwapRequest) -> SwapResult:
        if request.amount_usd <= 0:
            raise SwapError(f"Swap amount must be positive, got {request.amount_usd}")

        if self._slippage_bps > self._max_slippage_bps:
            raise SlippageExceededError(
                f"Slippage {self._slippage_bps}bps exceeds max {self._max_slippage_bps}bps"
            )

        output, impact_bps = self.quote(request.amount_usd)
        if impact_bps > self._max_price_impact_bps:
            raise PriceImpactExceededError(
                f"Price impact {impact_bps}bps exceeds max {self._max_price_impact_bps}bps"
            )

        min_output = output * (1 - bps_to_decimal(self._slippage_bps))
        signature = f"dryrun-{uuid.uuid4().hex}"
        logger.info(
            "dry_run_swap input=%s output=%s amount=%s out=%.6f min_out=%.6f impact_bps=%s signature=%s",
            request.input_asset,
            request.output_asset,
            format_usd(request.amount_usd),
            output,
            min_output,
            impact_bps,
            signature,
        )
        return SwapResult(
            signature=signature,
            input_asset=request.input_asset,
            output_asset=request.output_asset,
            amount_usd=request.amount_usd,
            output_amount=output,
            price_impact_bps=impact_bps,
            slippage_bps=self._slippage_bps,
        )

"""Deterministic fee source for dry runs and tests."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from flywheel.core.types import FeeDetectionResult, FeeEntry

logger = logging.getLogger(__name__)


class MockFeeSource:
    """Reports a fixed USD amount split evenly between SOL and USDC."""

    def __init__(
        self,
        mock_fees_usd: float = 1000.0,
        *,
        sol_price_usd: float = 100.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._mock_fees_usd = mock_fees_usd
        self._sol_price_usd = sol_price_usd
        self._clock = clock

    async def detect_fees(self, since_ms: int | None = None) -> FeeDetectionResult:
        logger.info("mock_fee_source mock_fees_usd=%s since_ms=%s", self._mock_fees_usd, since_ms)
        half_usd = self._mock_fees_usd / 2
        sources: tuple[FeeEntry, ...] = ()
        if self._mock_fees_usd > 0:
            sources = (
                FeeEntry(asset="SOL", amount=half_usd / self._sol_price_usd, usd_value=half_usd),
                FeeEntry(asset="USDC", amount=half_usd, usd_value=half_usd),
            )
        return FeeDetectionResult(
            timestamp_ms=int(self._clock() * 1000),
            sources=sources,
            total_usd=self._mock_fees_usd,
        )

    async def get_current_balance(self) -> dict[str, float]:
        return {"SOL": 10.0, "USDC": 5000.0}

    def set_mock_fees_usd(self, amount: float) -> None:
        self._mock_fees_usd = amount

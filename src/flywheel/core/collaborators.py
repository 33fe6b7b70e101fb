"""Collaborator contracts consumed by the Execution Engine."""

from __future__ import annotations

from typing import Protocol

from flywheel.core.types import (
    AdsRequest,
    AdsResult,
    AllocationResult,
    FeeDetectionResult,
    SummaryRequest,
    SwapRequest,
    SwapResult,
)


class FeeSourceDetector(Protocol):
    """Must return ``total_usd == 0`` (not raise) when nothing new arrived."""

    async def detect_fees(self, since_ms: int | None = None) -> FeeDetectionResult: ...

    async def get_current_balance(self) -> dict[str, float]: ...


class DexSwapper(Protocol):
    """Raises on execution failure, including slippage or price-impact breaches."""

    async def swap(self, request: SwapRequest) -> SwapResult: ...


class AdsEngine(Protocol):
    async def execute(self, request: AdsRequest) -> AdsResult: ...


class ReportWriter(Protocol):
    async def write(
        self,
        *,
        epoch_id: int,
        timestamp_ms: int,
        fees: FeeDetectionResult,
        allocation: AllocationResult,
        buyback_tx_ref: str | None = None,
        ads_campaign_ref: str | None = None,
    ) -> str: ...


class SummaryGenerator(Protocol):
    def generate(self, request: SummaryRequest) -> str: ...

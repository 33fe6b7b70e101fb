"""Execution Engine: one detect -> allocate -> gate -> act -> report cycle per call."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from flywheel.core.collaborators import (
    AdsEngine,
    DexSwapper,
    FeeSourceDetector,
    ReportWriter,
    SummaryGenerator,
)
from flywheel.core.types import (
    AdsRequest,
    AllocationStrategy,
    CircuitBreakerState,
    EpochResult,
    RiskCheckRequest,
    RiskLimits,
    SummaryRequest,
    SwapRequest,
)
from flywheel.executor.policies import ADS_STEP, BUYBACK_STEP, ActionStep
from flywheel.risk.breaker import CircuitBreaker
from flywheel.risk.gate import RiskGate
from flywheel.strategy.allocation import allocate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _CycleProgress:
    """What a cycle already achieved, kept for the failure result."""

    fees_usd: float = 0.0
    buyback_tx_ref: str | None = None
    ads_campaign_ref: str | None = None
    report_ref: str | None = None


class ExecutionEngine:
    """Per-cycle state machine.

    Not safe for concurrent ``execute_epoch`` calls: callers must keep at most
    one cycle in flight.
    """

    def __init__(
        self,
        *,
        fee_source: FeeSourceDetector,
        swapper: DexSwapper,
        ads_engine: AdsEngine,
        report_writer: ReportWriter,
        summary_generator: SummaryGenerator,
        strategy: AllocationStrategy,
        risk_limits: RiskLimits,
        circuit_breaker: CircuitBreaker | None = None,
        swap_input_asset: str = "USDC",
        swap_output_asset: str = "TOKEN",
        buyback_step: ActionStep = BUYBACK_STEP,
        ads_step: ActionStep = ADS_STEP,
        initial_epoch_counter: int = 0,
        last_epoch_time_ms: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fee_source = fee_source
        self._swapper = swapper
        self._ads_engine = ads_engine
        self._report_writer = report_writer
        self._summary_generator = summary_generator
        self._strategy = strategy
        self._risk_limits = risk_limits
        self._risk_gate = RiskGate(risk_limits)
        self._circuit_breaker = circuit_breaker or CircuitBreaker(clock=clock)
        self._swap_input_asset = swap_input_asset
        self._swap_output_asset = swap_output_asset
        self._buyback_step = buyback_step
        self._ads_step = ads_step
        self._epoch_counter = initial_epoch_counter
        self._last_epoch_time_ms = last_epoch_time_ms
        self._clock = clock

    @property
    def epoch_counter(self) -> int:
        return self._epoch_counter

    @property
    def last_epoch_time_ms(self) -> int | None:
        return self._last_epoch_time_ms

    @property
    def circuit_breaker_state(self) -> CircuitBreakerState:
        return self._circuit_breaker.get_state()

    @property
    def circuit_breaker_failures(self) -> int:
        return self._circuit_breaker.failure_count

    async def execute_epoch(self, *, manually_approved: bool = False) -> EpochResult:
        """Run one cycle and return its result; never raises for cycle failures."""
        self._epoch_counter += 1
        epoch_id = self._epoch_counter
        now_ms = int(self._clock() * 1000)
        logger.info("epoch_started epoch_id=%s", epoch_id)

        if not self._circuit_breaker.can_proceed():
            error = "Circuit breaker is OPEN, skipping epoch"
            logger.error("epoch_denied epoch_id=%s reason=%s", epoch_id, error)
            return EpochResult(epoch_id=epoch_id, success=False, fees_usd=0.0, error=error, started_at_ms=now_ms)

        seconds_since_last = self._seconds_since_last(now_ms)
        min_interval = self._risk_limits.min_interval_seconds
        if self._last_epoch_time_ms is not None and seconds_since_last < min_interval:
            error = f"Minimum interval not met: {seconds_since_last:.1f}s < {min_interval}s"
            logger.warning("epoch_denied epoch_id=%s reason=%s", epoch_id, error)
            return EpochResult(epoch_id=epoch_id, success=False, fees_usd=0.0, error=error, started_at_ms=now_ms)

        progress = _CycleProgress()
        try:
            return await self._run_cycle(
                epoch_id,
                now_ms,
                seconds_since_last,
                manually_approved=manually_approved,
                progress=progress,
            )
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("epoch_failed epoch_id=%s error=%s", epoch_id, message)
            self._circuit_breaker.record_failure()
            return EpochResult(
                epoch_id=epoch_id,
                success=False,
                fees_usd=progress.fees_usd,
                buyback_tx_ref=progress.buyback_tx_ref,
                ads_campaign_ref=progress.ads_campaign_ref,
                report_ref=progress.report_ref,
                error=message,
                started_at_ms=now_ms,
            )

    async def _run_cycle(
        self,
        epoch_id: int,
        now_ms: int,
        seconds_since_last: float,
        *,
        manually_approved: bool,
        progress: _CycleProgress,
    ) -> EpochResult:
        logger.info("epoch_step epoch_id=%s step=detect", epoch_id)
        fees = await self._fee_source.detect_fees(self._last_epoch_time_ms)
        if fees.total_usd <= 0:
            logger.info("epoch_noop epoch_id=%s reason=no_fees_detected", epoch_id)
            self._last_epoch_time_ms = now_ms
            return EpochResult(epoch_id=epoch_id, success=True, fees_usd=0.0, started_at_ms=now_ms)
        progress.fees_usd = fees.total_usd
        logger.info("fees_detected epoch_id=%s fees_usd=%.2f", epoch_id, fees.total_usd)

        logger.info("epoch_step epoch_id=%s step=allocate", epoch_id)
        allocation = allocate(fees.total_usd, self._strategy)

        logger.info("epoch_step epoch_id=%s step=risk_check", epoch_id)
        risk = self._risk_gate.check_risk(
            RiskCheckRequest(
                budget_usd=allocation.total_allocated,
                time_since_last_epoch_seconds=seconds_since_last,
                manually_approved=manually_approved,
            )
        )
        if not risk.allowed:
            error = f"Risk check failed: {risk.reason}"
            logger.error("epoch_denied epoch_id=%s reason=%s", epoch_id, error)
            self._circuit_breaker.record_failure()
            return EpochResult(
                epoch_id=epoch_id,
                success=False,
                fees_usd=fees.total_usd,
                error=error,
                started_at_ms=now_ms,
            )

        if allocation.buyback_usd > 0:
            logger.info("epoch_step epoch_id=%s step=buyback amount_usd=%.2f", epoch_id, allocation.buyback_usd)
            request = SwapRequest(
                input_asset=self._swap_input_asset,
                output_asset=self._swap_output_asset,
                amount_usd=allocation.buyback_usd,
            )
            swap = await self._buyback_step.run(lambda: self._swapper.swap(request))
            if swap is not None:
                progress.buyback_tx_ref = swap.signature
                logger.info("buyback_complete epoch_id=%s tx=%s", epoch_id, swap.signature)

        if allocation.ads_usd > 0:
            logger.info("epoch_step epoch_id=%s step=ads amount_usd=%.2f", epoch_id, allocation.ads_usd)
            ads_request = AdsRequest(budget_usd=allocation.ads_usd)
            ads = await self._ads_step.run(lambda: self._ads_engine.execute(ads_request))
            if ads is not None:
                progress.ads_campaign_ref = ads.campaign_id
                logger.info("ads_complete epoch_id=%s campaign_id=%s", epoch_id, ads.campaign_id)

        logger.info("epoch_step epoch_id=%s step=report", epoch_id)
        report_ref = await self._report_writer.write(
            epoch_id=epoch_id,
            timestamp_ms=now_ms,
            fees=fees,
            allocation=allocation,
            buyback_tx_ref=progress.buyback_tx_ref,
            ads_campaign_ref=progress.ads_campaign_ref,
        )
        progress.report_ref = report_ref

        summary = self._summary_generator.generate(
            SummaryRequest(
                epoch_id=epoch_id,
                fees_usd=fees.total_usd,
                buyback_usd=allocation.buyback_usd,
                ads_usd=allocation.ads_usd,
                buyback_tx_ref=progress.buyback_tx_ref,
                report_ref=report_ref,
            )
        )
        logger.info("summary_generated epoch_id=%s summary=%r", epoch_id, summary)

        self._circuit_breaker.record_success()
        self._last_epoch_time_ms = now_ms
        logger.info("epoch_completed epoch_id=%s", epoch_id)
        return EpochResult(
            epoch_id=epoch_id,
            success=True,
            fees_usd=fees.total_usd,
            buyback_tx_ref=progress.buyback_tx_ref,
            ads_campaign_ref=progress.ads_campaign_ref,
            report_ref=report_ref,
            summary=summary,
            started_at_ms=now_ms,
        )

    def _seconds_since_last(self, now_ms: int) -> float:
        if self._last_epoch_time_ms is None:
            return math.inf
        return (now_ms - self._last_epoch_time_ms) / 1000

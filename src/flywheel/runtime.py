"""Composition root: wires settings into the engine, store and scheduler."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from flywheel.ads.engine import build_ads_engine
from flywheel.core.collaborators import AdsEngine, DexSwapper, FeeSourceDetector
from flywheel.core.config import Settings
from flywheel.core.errors import ConfigurationError, CycleInProgressError
from flywheel.core.types import EpochResult
from flywheel.dex.swapper import DryRunSwapper
from flywheel.executor.engine import ExecutionEngine
from flywheel.executor.scheduler import EpochScheduler
from flywheel.reporting.store import ReportStore
from flywheel.reporting.summary import TweetSummary
from flywheel.risk.breaker import CircuitBreaker
from flywheel.sources.factory import build_fee_source
from flywheel.strategy.allocation import validate_strategy

logger = logging.getLogger(__name__)


def _build_swapper(settings: Settings) -> DexSwapper:
    if not settings.dry_run:
        raise ConfigurationError(
            "No live DEX swapper is configured; set FLYWHEEL_DRY_RUN=true or inject a swapper"
        )
    return DryRunSwapper(
        token_price_usd=settings.dry_run_token_price_usd,
        pool_liquidity_usd=settings.dry_run_pool_liquidity_usd,
        slippage_bps=settings.dry_run_slippage_bps,
        max_slippage_bps=settings.max_slippage_bps,
        max_price_impact_bps=settings.max_price_impact_bps,
    )


class FlywheelRuntime:
    """Owns one engine and serializes every cycle behind a single lock.

    Both the scheduler and manual triggers go through :meth:`run_epoch`, so at
    most one cycle is in flight per process.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        fee_source: FeeSourceDetector | None = None,
        swapper: DexSwapper | None = None,
        ads_engine: AdsEngine | None = None,
        report_store: ReportStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        strategy = settings.strategy()
        validate_strategy(strategy)
        self._settings = settings
        self._store = report_store or ReportStore(settings.db_url)

        latest = self._store.latest_epoch()
        latest_success = self._store.latest_epoch(success_only=True)
        self._engine = ExecutionEngine(
            fee_source=fee_source or build_fee_source(settings),
            swapper=swapper or _build_swapper(settings),
            ads_engine=ads_engine or build_ads_engine(settings),
            report_writer=self._store,
            summary_generator=TweetSummary(token_symbol=settings.swap_output_asset),
            strategy=strategy,
            risk_limits=settings.risk_limits(),
            circuit_breaker=CircuitBreaker(
                settings.circuit_breaker_failure_threshold,
                settings.circuit_breaker_reset_timeout_ms,
                clock=clock,
            ),
            swap_input_asset=settings.swap_input_asset,
            swap_output_asset=settings.swap_output_asset,
            initial_epoch_counter=latest["epoch_id"] if latest else 0,
            last_epoch_time_ms=latest_success["started_at_ms"] if latest_success else None,
            clock=clock,
        )
        self._lock = asyncio.Lock()
        self._scheduler = EpochScheduler(self.run_epoch, settings.epoch_interval_seconds)
        logger.info(
            "runtime_ready dry_run=%s fee_source=%s ads_mode=%s epoch_counter=%s",
            settings.dry_run,
            settings.fee_source,
            settings.ads_engine_mode,
            self._engine.epoch_counter,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> ReportStore:
        return self._store

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    @property
    def scheduler(self) -> EpochScheduler:
        return self._scheduler

    def is_busy(self) -> bool:
        return self._lock.locked()

    async def run_epoch(self, *, manually_approved: bool = False) -> EpochResult:
        """Run one cycle (waiting for any cycle in flight) and persist its result."""
        async with self._lock:
            result = await self._engine.execute_epoch(manually_approved=manually_approved)
            await asyncio.to_thread(self._store.record_epoch, result)
        if result.success:
            logger.info("epoch_recorded epoch_id=%s success=true", result.epoch_id)
        else:
            logger.warning("epoch_recorded epoch_id=%s success=false error=%s", result.epoch_id, result.error)
        return result

    async def trigger_epoch(self, *, manually_approved: bool = False) -> EpochResult:
        """Run one cycle now, refusing instead of queueing behind a running one."""
        if self._lock.locked():
            raise CycleInProgressError("An epoch cycle is already in progress")
        return await self.run_epoch(manually_approved=manually_approved)

    def start_scheduler(self) -> None:
        self._scheduler.start()

    async def stop_scheduler(self) -> None:
        if self._scheduler.is_active():
            self._scheduler.stop()
            await self._scheduler.wait_closed()

    def status(self) -> dict[str, Any]:
        return {
            "app_name": self._settings.app_name,
            "environment": self._settings.environment,
            "dry_run": self._settings.dry_run,
            "epoch_counter": self._engine.epoch_counter,
            "last_epoch_time_ms": self._engine.last_epoch_time_ms,
            "circuit_breaker_state": self._engine.circuit_breaker_state.value,
            "circuit_breaker_failures": self._engine.circuit_breaker_failures,
            "scheduler_active": self._scheduler.is_active(),
            "cycle_in_progress": self.is_busy(),
            "last_epoch": self._store.latest_epoch(),
        }

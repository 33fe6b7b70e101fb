"""Ad spend collaborators."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path

from flywheel.core.collaborators import AdsEngine
from flywheel.core.config import Settings
from flywheel.core.errors import AdsError, AdSpendLimitError
from flywheel.core.types import AdsRequest, AdsResult

logger = logging.getLogger(__name__)


class AdsMode(StrEnum):
    DRY_RUN = "dry-run"
    MANUAL = "manual"


def _check_budget(budget_usd: float, max_spend_usd: float) -> None:
    if budget_usd <= 0:
        raise AdsError(f"Ad budget must be positive, got {budget_usd}")
    if budget_usd > max_spend_usd:
        raise AdSpendLimitError(f"Ad budget ${budget_usd:.2f} exceeds max ${max_spend_usd:.2f} per epoch")


class DryRunAdsEngine:
    def __init__(self, *, max_spend_per_epoch_usd: float) -> None:
        self._max_spend_usd = max_spend_per_epoch_usd

    async def execute(self, request: AdsRequest) -> AdsResult:
        _check_budget(request.budget_usd, self._max_spend_usd)
        campaign_id = f"dryrun-ads-{uuid.uuid4().hex[:12]}"
        logger.info("dry_run_ads campaign_id=%s budget_usd=%.2f", campaign_id, request.budget_usd)
        return AdsResult(campaign_id=campaign_id, mode=AdsMode.DRY_RUN.value, budget_usd=request.budget_usd)


class ManualAdsEngine:
    """Queues boost instructions as JSON lines for an operator to place by hand."""

    def __init__(
        self,
        queue_path: str | Path,
        *,
        target_post_id: str,
        max_spend_per_epoch_usd: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not target_post_id:
            raise ValueError("target_post_id is required")
        self._queue_path = Path(queue_path)
        self._target_post_id = target_post_id
        self._max_spend_usd = max_spend_per_epoch_usd
        self._clock = clock

    @property
    def queue_path(self) -> Path:
        return self._queue_path

    async def execute(self, request: AdsRequest) -> AdsResult:
        _check_budget(request.budget_usd, self._max_spend_usd)
        instruction_id = f"manual-{uuid.uuid4().hex[:12]}"
        instruction = {
            "id": instruction_id,
            "created_at_ms": int(self._clock() * 1000),
            "target_post_id": self._target_post_id,
            "budget_usd": round(request.budget_usd, 2),
            "status": "pending",
        }
        await asyncio.to_thread(self._append, instruction)
        logger.info(
            "manual_ads_queued id=%s post_id=%s budget_usd=%.2f",
            instruction_id,
            self._target_post_id,
            request.budget_usd,
        )
        return AdsResult(campaign_id=instruction_id, mode=AdsMode.MANUAL.value, budget_usd=request.budget_usd)

    def _append(self, instruction: dict[str, object]) -> None:
        self._queue_path.parent.mkdir(parents=True, exist_ok=True)
        with self._queue_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(instruction, sort_keys=True) + "\n")


def build_ads_engine(settings: Settings) -> AdsEngine:
    mode = AdsMode(settings.ads_engine_mode)
    if mode is AdsMode.MANUAL:
        return ManualAdsEngine(
            settings.ads_manual_queue_path,
            target_post_id=settings.ads_target_post_id,
            max_spend_per_epoch_usd=settings.max_ad_spend_per_epoch_usd,
        )
    return DryRunAdsEngine(max_spend_per_epoch_usd=settings.max_ad_spend_per_epoch_usd)

import asyncio
import json
from pathlib import Path

import pytest

from flywheel.ads.engine import AdsMode, DryRunAdsEngine, ManualAdsEngine, build_ads_engine
from flywheel.core.config import load_settings
from flywheel.core.errors import (
    AdSpendLimitError,
    PriceImpactExceededError,
    SlippageExceededError,
    SwapError,
)
from flywheel.core.types import AdsRequest, SwapRequest
from flywheel.dex.swapper import DryRunSwapper


def _swapper(**overrides: float) -> DryRunSwapper:
    params = {
        "token_price_usd": 0.01,
        "pool_liquidity_usd": 250_000.0,
        "slippage_bps": 50,
        "max_slippage_bps": 300,
        "max_price_impact_bps": 500,
    }
    params.update(overrides)
    return DryRunSwapper(**params)  # type: ignore[arg-type]


def test_dry_run_swap_quotes_constant_product_pool() -> None:
    result = asyncio.run(_swapper().swap(SwapRequest("USDC", "TOKEN", 500.0)))

    assert result.signature.startswith("dryrun-")
    assert result.price_impact_bps == 40
    assert result.slippage_bps == 50
    assert result.output_amount == pytest.approx(12_500_000 * 500 / 125_500)
    assert result.output_asset == "TOKEN"


def test_swap_refuses_high_price_impact() -> None:
    with pytest.raises(PriceImpactExceededError):
        asyncio.run(_swapper().swap(SwapRequest("USDC", "TOKEN", 10_000.0)))


def test_swap_refuses_configured_slippage_above_limit() -> None:
    with pytest.raises(SlippageExceededError):
        asyncio.run(_swapper(slippage_bps=400).swap(SwapRequest("USDC", "TOKEN", 10.0)))


def test_swap_refuses_non_positive_amount() -> None:
    with pytest.raises(SwapError):
        asyncio.run(_swapper().swap(SwapRequest("USDC", "TOKEN", 0.0)))


def test_dry_run_ads_respects_spend_limit() -> None:
    engine = DryRunAdsEngine(max_spend_per_epoch_usd=500.0)

    result = asyncio.run(engine.execute(AdsRequest(budget_usd=500.0)))

    assert result.mode == AdsMode.DRY_RUN.value
    assert result.campaign_id.startswith("dryrun-ads-")
    with pytest.raises(AdSpendLimitError):
        asyncio.run(engine.execute(AdsRequest(budget_usd=500.01)))


def test_manual_ads_appends_operator_instruction(tmp_path: Path) -> None:
    queue = tmp_path / "queue" / "ads.jsonl"
    engine = ManualAdsEngine(queue, target_post_id="1789", max_spend_per_epoch_usd=500.0, clock=lambda: 3.0)

    first = asyncio.run(engine.execute(AdsRequest(budget_usd=120.25)))
    asyncio.run(engine.execute(AdsRequest(budget_usd=80.0)))

    lines = [json.loads(line) for line in queue.read_text(encoding="utf-8").splitlines()]
    assert len(lines) == 2
    assert lines[0] == {
        "id": first.campaign_id,
        "created_at_ms": 3000,
        "target_post_id": "1789",
        "budget_usd": 120.25,
        "status": "pending",
    }
    assert first.mode == "manual"


def test_build_ads_engine_follows_mode(tmp_path: Path) -> None:
    dry = build_ads_engine(load_settings(_env_file=None))
    manual = build_ads_engine(
        load_settings(
            _env_file=None,
            ads_engine_mode="manual",
            ads_target_post_id="1789",
            ads_manual_queue_path=str(tmp_path / "q.jsonl"),
        )
    )

    assert isinstance(dry, DryRunAdsEngine)
    assert isinstance(manual, ManualAdsEngine)
    assert manual.queue_path == tmp_path / "q.jsonl"

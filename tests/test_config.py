import json
import logging

import pytest

from flywheel.core.config import DEFAULT_USDC_MINT, Settings, load_settings
from flywheel.core.errors import ConfigurationError
from flywheel.core.logging import JsonLogFormatter, configure_logging
from flywheel.core.types import AllocationStrategy, RiskLimits


def test_defaults_build_domain_records() -> None:
    settings = load_settings(_env_file=None)

    assert settings.dry_run is True
    assert settings.fee_source == "mock"
    assert settings.usdc_mint == DEFAULT_USDC_MINT
    assert settings.strategy() == AllocationStrategy(buyback_pct=50, ads_pct=50, burn_pct=0, lp_add_pct=0)
    assert settings.risk_limits() == RiskLimits()


def test_env_prefix_is_applied(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLYWHEEL_MOCK_FEES_USD", "250")
    monkeypatch.setenv("FLYWHEEL_LOG_LEVEL", "warn")

    settings = load_settings(_env_file=None)

    assert settings.mock_fees_usd == 250.0
    assert settings.log_level == "WARNING"


@pytest.mark.parametrize(
    ("overrides", "match"),
    [
        ({"buyback_percent": 60}, "sum to 100"),
        ({"dry_run": False}, "EXECUTOR"),
        ({"fee_source": "wallet"}, "FEE_COLLECTOR_PUBKEY"),
        ({"ads_engine_mode": "manual"}, "ADS_TARGET_POST_ID"),
        ({"enable_webhook": True}, "WEBHOOK_SECRET"),
        ({"max_slippage_bps": 20_000}, "max_slippage_bps"),
    ],
)
def test_invalid_combinations_raise_configuration_error(overrides: dict[str, object], match: str) -> None:
    with pytest.raises(ConfigurationError, match=match):
        load_settings(_env_file=None, **overrides)


def test_live_mode_with_keypair_path_is_valid() -> None:
    settings = load_settings(_env_file=None, dry_run=False, executor_keypair_path="/keys/executor.json")

    assert settings.dry_run is False


def test_buyback_target_comes_from_swap_output_asset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLYWHEEL_TOKEN_MINT", "LegacyMint111")
    monkeypatch.setenv("FLYWHEEL_SWAP_OUTPUT_ASSET", "FLY")

    settings = load_settings(_env_file=None)

    assert settings.swap_output_asset == "FLY"
    assert "token_mint" not in Settings.model_fields


def test_json_formatter_emits_structured_record() -> None:
    record = logging.LogRecord("flywheel.executor.engine", logging.INFO, __file__, 1, "epoch_started epoch_id=%s", (7,), None)

    entry = json.loads(JsonLogFormatter().format(record))

    assert entry["type"] == "log"
    assert entry["level"] == "info"
    assert entry["component"] == "flywheel.executor.engine"
    assert entry["message"] == "epoch_started epoch_id=7"
    assert "ts" in entry


def test_configure_logging_installs_single_handler() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging("debug", json_output=True)

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonLogFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)

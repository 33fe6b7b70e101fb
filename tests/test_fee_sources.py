from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx
import pytest

import flywheel.core.retry as retry_module
from flywheel.core.config import load_settings
from flywheel.core.errors import SolanaRpcError
from flywheel.core.retry import RetryOptions
from flywheel.sources import (
    MockFeeSource,
    SolanaRpcClient,
    WalletWatcherFeeSource,
    build_fee_source,
)

RPC_URL = "https://rpc.test"
USDC_MINT = "USDCmint111"


def _response(body: dict[str, Any], status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=body, request=httpx.Request("POST", RPC_URL))


def _token_account(mint: str, ui_amount: float) -> dict[str, Any]:
    return {
        "pubkey": f"acct-{mint}",
        "account": {
            "data": {
                "parsed": {"info": {"mint": mint, "tokenAmount": {"uiAmount": ui_amount}}},
                "program": "spl-token",
            }
        },
    }


class FakeRpc:
    """Scripted JSON-RPC node keyed by method name."""

    def __init__(self) -> None:
        self.lamports = 0
        self.usdc = 0.0
        self.usdc_error = False
        self.methods: list[str] = []

    async def post(self, url: str, *, json: dict[str, Any]) -> httpx.Response:
        method = json["method"]
        self.methods.append(method)
        if method == "getBalance":
            return _response({"jsonrpc": "2.0", "id": 1, "result": {"value": self.lamports}})
        if self.usdc_error:
            return _response({"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad mint"}})
        accounts = [_token_account(USDC_MINT, self.usdc)]
        if "programId" in json["params"][1]:
            accounts.append(_token_account("TOKENmint", 42.0))
        return _response({"jsonrpc": "2.0", "id": 1, "result": {"value": accounts}})


@pytest.fixture
def fake_rpc(monkeypatch: pytest.MonkeyPatch) -> FakeRpc:
    rpc = FakeRpc()

    async def fake_post(self, url, *, json):  # type: ignore[no-untyped-def]
        del self
        return await rpc.post(url, json=json)

    async def no_sleep(ms: float) -> None:
        del ms

    monkeypatch.setattr("httpx.AsyncClient.post", fake_post)
    monkeypatch.setattr(retry_module, "sleep", no_sleep)
    return rpc


def _watcher(clock: Callable[[], float] = lambda: 1.0) -> WalletWatcherFeeSource:
    client = SolanaRpcClient(RPC_URL, retry_options=RetryOptions(max_retries=2, delay_ms=0))
    return WalletWatcherFeeSource(client, "Collector111", usdc_mint=USDC_MINT, sol_price_usd=100.0, clock=clock)


def test_mock_source_splits_between_sol_and_usdc() -> None:
    source = MockFeeSource(1000.0, sol_price_usd=100.0, clock=lambda: 2.5)

    result = asyncio.run(source.detect_fees())

    assert result.total_usd == 1000.0
    assert result.timestamp_ms == 2500
    assert [entry.asset for entry in result.sources] == ["SOL", "USDC"]
    assert result.sources[0].amount == 5.0
    assert result.sources[1].usd_value == 500.0


def test_mock_source_can_report_no_fees() -> None:
    source = MockFeeSource()
    source.set_mock_fees_usd(0)

    result = asyncio.run(source.detect_fees())

    assert result.total_usd == 0
    assert result.sources == ()
    assert asyncio.run(source.get_current_balance()) == {"SOL": 10.0, "USDC": 5000.0}


def test_wallet_watcher_counts_only_positive_deltas(fake_rpc: FakeRpc) -> None:
    now = {"s": 1.0}
    watcher = _watcher(clock=lambda: now["s"])

    fake_rpc.lamports, fake_rpc.usdc = 2_000_000_000, 50.0
    first = asyncio.run(watcher.detect_fees())

    now["s"] = 2.0
    fake_rpc.lamports, fake_rpc.usdc = 3_000_000_000, 40.0
    second = asyncio.run(watcher.detect_fees(since_ms=1000))

    now["s"] = 3.0
    fake_rpc.usdc = 45.0
    third = asyncio.run(watcher.detect_fees(since_ms=2000))

    assert first.total_usd == 250.0
    assert {entry.asset: entry.amount for entry in first.sources} == {"SOL": 2.0, "USDC": 50.0}
    assert second.total_usd == 100.0
    assert [entry.asset for entry in second.sources] == ["SOL"]
    assert third.total_usd == 5.0
    assert [entry.asset for entry in third.sources] == ["USDC"]


def test_wallet_watcher_repeats_fees_for_same_window(fake_rpc: FakeRpc) -> None:
    now = {"s": 1.0}
    watcher = _watcher(clock=lambda: now["s"])
    fake_rpc.lamports, fake_rpc.usdc = 2_000_000_000, 0.0
    asyncio.run(watcher.detect_fees())

    fake_rpc.lamports = 4_000_000_000
    now["s"] = 2.0
    denied_window = asyncio.run(watcher.detect_fees(since_ms=1000))
    now["s"] = 3.0
    retried_window = asyncio.run(watcher.detect_fees(since_ms=1000))

    assert denied_window.total_usd == 200.0
    assert retried_window.total_usd == 200.0


def test_wallet_watcher_skips_failing_usdc_lookup(fake_rpc: FakeRpc, caplog: pytest.LogCaptureFixture) -> None:
    fake_rpc.lamports = 1_000_000_000
    fake_rpc.usdc_error = True

    with caplog.at_level(logging.WARNING):
        result = asyncio.run(_watcher().detect_fees())

    assert result.total_usd == 100.0
    assert "usdc_lookup_failed" in caplog.text
    assert fake_rpc.methods.count("getTokenAccountsByOwner") == 3


def test_wallet_current_balance_lists_every_token(fake_rpc: FakeRpc) -> None:
    fake_rpc.lamports, fake_rpc.usdc = 1_500_000_000, 12.0

    balances = asyncio.run(_watcher().get_current_balance())

    assert balances == {"SOL": 1.5, USDC_MINT: 12.0, "TOKENmint": 42.0}


def test_rpc_client_raises_after_http_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"count": 0}

    async def fake_post(self, url, *, json):  # type: ignore[no-untyped-def]
        del self, json
        calls["count"] += 1
        return httpx.Response(status_code=503, request=httpx.Request("POST", url), text="busy")

    async def no_sleep(ms: float) -> None:
        del ms

    monkeypatch.setattr("httpx.AsyncClient.post", fake_post)
    monkeypatch.setattr(retry_module, "sleep", no_sleep)
    client = SolanaRpcClient(RPC_URL, retry_options=RetryOptions(max_retries=1, delay_ms=0))

    with pytest.raises(SolanaRpcError, match="status=503"):
        asyncio.run(client.get_balance("Collector111"))

    assert calls["count"] == 2


def test_rpc_client_rejects_ambiguous_token_filter() -> None:
    client = SolanaRpcClient(RPC_URL)

    with pytest.raises(ValueError):
        asyncio.run(client.get_parsed_token_accounts("owner"))


def test_factory_selects_variant() -> None:
    mock = build_fee_source(load_settings(_env_file=None, mock_fees_usd=42))
    wallet = build_fee_source(load_settings(_env_file=None, fee_source="wallet", fee_collector_pubkey="Collector111"))

    assert isinstance(mock, MockFeeSource)
    assert isinstance(wallet, WalletWatcherFeeSource)

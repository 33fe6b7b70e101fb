"""Startup selection of the fee detection variant."""

from __future__ import annotations

from enum import StrEnum

from flywheel.core.collaborators import FeeSourceDetector
from flywheel.core.config import Settings
from flywheel.core.retry import RetryOptions
from flywheel.sources.mock import MockFeeSource
from flywheel.sources.wallet import SolanaRpcClient, WalletWatcherFeeSource


class FeeSourceKind(StrEnum):
    MOCK = "mock"
    WALLET = "wallet"


def build_fee_source(settings: Settings) -> FeeSourceDetector:
    kind = FeeSourceKind(settings.fee_source)
    if kind is FeeSourceKind.MOCK:
        return MockFeeSource(settings.mock_fees_usd, sol_price_usd=settings.sol_price_usd)

    rpc = SolanaRpcClient(
        settings.solana_rpc_url,
        timeout_s=settings.rpc_timeout_s,
        retry_options=RetryOptions(
            max_retries=settings.rpc_max_retries,
            delay_ms=settings.rpc_retry_delay_ms,
        ),
    )
    return WalletWatcherFeeSource(
        rpc,
        settings.fee_collector_pubkey,
        usdc_mint=settings.usdc_mint,
        sol_price_usd=settings.sol_price_usd,
    )

"""Fee detection by watching the fee-collector wallet over Solana JSON-RPC."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from flywheel.core.errors import SolanaRpcError
from flywheel.core.retry import RetryOptions, retry
from flywheel.core.types import FeeDetectionResult, FeeEntry

LAMPORTS_PER_SOL = 1_000_000_000
SPL_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

logger = logging.getLogger(__name__)


class SolanaRpcClient:
    """Async JSON-RPC client with per-call timeout and retry-with-backoff."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: float = 10.0,
        retry_options: RetryOptions | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout_s = timeout_s
        self._retry_options = retry_options or RetryOptions(max_retries=3, delay_ms=500)

    async def get_balance(self, pubkey: str) -> int:
        """Return the account balance in lamports."""
        result = await self._call("getBalance", [pubkey, {"commitment": "confirmed"}])
        if not isinstance(result, dict) or not isinstance(result.get("value"), int):
            raise SolanaRpcError("getBalance response without integer value")
        return int(result["value"])

    async def get_parsed_token_accounts(
        self,
        owner: str,
        *,
        mint: str | None = None,
        program_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return parsed ``info`` objects of the owner's SPL token accounts."""
        if (mint is None) == (program_id is None):
            raise ValueError("Exactly one of mint or program_id is required")
        account_filter = {"mint": mint} if mint is not None else {"programId": program_id}
        result = await self._call(
            "getTokenAccountsByOwner",
            [owner, account_filter, {"encoding": "jsonParsed", "commitment": "confirmed"}],
        )
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, list):
            raise SolanaRpcError("getTokenAccountsByOwner response without account list")

        infos: list[dict[str, Any]] = []
        for item in value:
            try:
                info = item["account"]["data"]["parsed"]["info"]
            except (KeyError, TypeError) as exc:
                raise SolanaRpcError("Token account without jsonParsed info") from exc
            if isinstance(info, dict):
                infos.append(info)
        return infos

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        async def attempt() -> Any:
            try:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_s)) as client:
                    response = await client.post(self._rpc_url, json=payload)
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPStatusError as exc:
                raise SolanaRpcError(
                    f"Solana RPC {method} failed (status={exc.response.status_code})"
                ) from exc
            except (httpx.HTTPError, ValueError) as exc:
                raise SolanaRpcError(f"Solana RPC {method} failed: {exc}") from exc

            if not isinstance(body, dict):
                raise SolanaRpcError(f"Solana RPC {method} returned a non-object body")
            if body.get("error") is not None:
                raise SolanaRpcError(f"Solana RPC {method} error: {body['error']}")
            return body.get("result")

        return await retry(attempt, self._retry_options)


def _ui_amount(info: dict[str, Any]) -> float:
    token_amount = info.get("tokenAmount")
    if not isinstance(token_amount, dict):
        return 0.0
    return float(token_amount.get("uiAmount") or 0.0)


class WalletWatcherFeeSource:
    """Counts positive balance deltas of the fee collector as new fees.

    Every detection records a balance snapshot per asset. The baseline for a
    call is the earliest snapshot taken at or after ``since_ms``, which is the
    one the cycle that set ``since_ms`` observed. Repeated calls with the same
    ``since_ms`` therefore report the same fees, so a denied or failed cycle
    does not consume them. With no usable baseline the whole balance counts.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        fee_collector_pubkey: str,
        *,
        usdc_mint: str,
        sol_price_usd: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._rpc = rpc
        self._fee_collector = fee_collector_pubkey
        self._usdc_mint = usdc_mint
        self._sol_price_usd = sol_price_usd
        self._clock = clock
        self._snapshots: dict[str, list[tuple[int, float]]] = {"SOL": [], "USDC": []}

    async def detect_fees(self, since_ms: int | None = None) -> FeeDetectionResult:
        logger.info("detecting_fees fee_collector=%s since_ms=%s", self._fee_collector, since_ms)
        now_ms = int(self._clock() * 1000)
        self._prune(since_ms)
        sources: list[FeeEntry] = []

        sol_amount = await self._rpc.get_balance(self._fee_collector) / LAMPORTS_PER_SOL
        sol_delta = sol_amount - self._baseline("SOL", since_ms)
        if sol_delta > 0:
            sol_usd = sol_delta * self._sol_price_usd
            sources.append(FeeEntry(asset="SOL", amount=sol_delta, usd_value=sol_usd))
            logger.info("sol_fees_detected sol=%s usd=%.2f", sol_delta, sol_usd)
        self._snapshots["SOL"].append((now_ms, sol_amount))

        try:
            accounts = await self._rpc.get_parsed_token_accounts(self._fee_collector, mint=self._usdc_mint)
        except SolanaRpcError as exc:
            logger.warning("usdc_lookup_failed error=%s", exc)
            accounts = []

        if accounts:
            usdc_balance = _ui_amount(accounts[0])
            usdc_delta = usdc_balance - self._baseline("USDC", since_ms)
            if usdc_delta > 0:
                sources.append(FeeEntry(asset="USDC", amount=usdc_delta, usd_value=usdc_delta))
                logger.info("usdc_fees_detected usdc=%s", usdc_delta)
            self._snapshots["USDC"].append((now_ms, usdc_balance))

        return FeeDetectionResult(
            timestamp_ms=now_ms,
            sources=tuple(sources),
            total_usd=sum(entry.usd_value for entry in sources),
        )

    async def get_current_balance(self) -> dict[str, float]:
        balances: dict[str, float] = {
            "SOL": await self._rpc.get_balance(self._fee_collector) / LAMPORTS_PER_SOL
        }
        accounts = await self._rpc.get_parsed_token_accounts(
            self._fee_collector, program_id=SPL_TOKEN_PROGRAM_ID
        )
        for info in accounts:
            mint = info.get("mint")
            if isinstance(mint, str):
                balances[mint] = _ui_amount(info)
        return balances

    def _baseline(self, asset: str, since_ms: int | None) -> float:
        if since_ms is None:
            return 0.0
        for taken_at_ms, amount in self._snapshots[asset]:
            if taken_at_ms >= since_ms:
                return amount
        return 0.0

    def _prune(self, since_ms: int | None) -> None:
        # snapshots older than the window start can no longer be a baseline
        if since_ms is None:
            return
        for asset, history in self._snapshots.items():
            self._snapshots[asset] = [entry for entry in history if entry[0] >= since_ms]

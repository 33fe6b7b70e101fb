"""Short public announcement for a completed epoch."""

from __future__ import annotations

from flywheel.core.types import SummaryRequest
from flywheel.core.units import format_usd

MAX_SUMMARY_CHARS = 280


def shorten_ref(ref: str, keep: int = 8) -> str:
    if len(ref) <= keep * 2 + 3:
        return ref
    return f"{ref[:keep]}...{ref[-keep:]}"


class TweetSummary:
    """Formats epoch numbers into a post that fits a single tweet."""

    def __init__(self, *, token_symbol: str = "TOKEN") -> None:
        self._token_symbol = token_symbol

    def generate(self, request: SummaryRequest) -> str:
        lines = [
            f"Flywheel epoch #{request.epoch_id} complete.",
            f"Fees collected: {format_usd(request.fees_usd)}",
            f"Buyback: {format_usd(request.buyback_usd)} of ${self._token_symbol}",
            f"Ads: {format_usd(request.ads_usd)}",
        ]
        if request.buyback_tx_ref:
            lines.append(f"Tx: {shorten_ref(request.buyback_tx_ref)}")
        if request.report_ref:
            lines.append(f"Report: {shorten_ref(request.report_ref)}")

        text = "\n".join(lines)
        if len(text) > MAX_SUMMARY_CHARS:
            text = text[: MAX_SUMMARY_CHARS - 3] + "..."
        return text

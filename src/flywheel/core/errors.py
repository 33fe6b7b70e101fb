"""Error hierarchy shared by the engine and its collaborators."""

from __future__ import annotations


class FlywheelError(Exception):
    """Base flywheel error."""


class ConfigurationError(FlywheelError):
    """Raised at startup when settings cannot describe a runnable system."""


class ActionStepError(FlywheelError):
    """Raised when a fatal-on-failure action step aborts the cycle."""

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause


class SwapError(FlywheelError):
    """Swap could not be executed."""


class SlippageExceededError(SwapError):
    """Quoted slippage is above the configured limit."""


class PriceImpactExceededError(SwapError):
    """Quoted price impact is above the configured limit."""


class AdsError(FlywheelError):
    """Advertising spend could not be placed."""


class AdSpendLimitError(AdsError):
    """Requested ad budget is above the per-epoch ceiling."""


class SolanaRpcError(FlywheelError):
    """JSON-RPC call returned an error payload or an unusable body."""


class ReportValidationError(FlywheelError, ValueError):
    """Report payload does not satisfy the report contract."""


class CycleInProgressError(FlywheelError):
    """An epoch cycle is already running."""

"""Risk Gate: budget, approval and timing checks before any action runs."""

from __future__ import annotations

import logging

from flywheel.core.types import RiskCheckRequest, RiskCheckResult, RiskLimits

logger = logging.getLogger(__name__)


class RiskGate:
    """Evaluates rules in order; the first failing rule decides.

    Slippage and price impact are enforced by the swap collaborator at
    execution time, not here.
    """

    def __init__(self, limits: RiskLimits) -> None:
        self._limits = limits

    @property
    def limits(self) -> RiskLimits:
        return self._limits

    def check_risk(self, request: RiskCheckRequest) -> RiskCheckResult:
        limits = self._limits
        if request.budget_usd > limits.max_budget_per_epoch_usd:
            return self._deny(
                f"Budget ${request.budget_usd:.2f} exceeds max "
                f"${limits.max_budget_per_epoch_usd:.2f} per epoch"
            )
        if limits.require_manual_approval and not request.manually_approved:
            return self._deny("Manual approval required before executing epoch actions")
        if request.time_since_last_epoch_seconds < limits.min_interval_seconds:
            return self._deny(
                f"Minimum interval not met: {request.time_since_last_epoch_seconds:.1f}s "
                f"< {limits.min_interval_seconds}s"
            )
        return RiskCheckResult(allowed=True)

    @staticmethod
    def _deny(reason: str) -> RiskCheckResult:
        logger.warning("risk_check_denied reason=%s", reason)
        return RiskCheckResult(allowed=False, reason=reason)

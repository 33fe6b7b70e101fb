"""Failure policies attached to each action step of a cycle."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from flywheel.core.errors import ActionStepError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class FailurePolicy(Protocol):
    name: str

    def on_failure(self, step: str, error: Exception) -> None:
        """Either raise to abort the cycle or return to continue without a result."""


class FatalOnFailure:
    """Budget-moving actions: any failure aborts the rest of the cycle."""

    name = "fatal_on_failure"

    def on_failure(self, step: str, error: Exception) -> None:
        logger.error("action_step_failed step=%s policy=%s error=%s", step, self.name, error)
        raise ActionStepError(step, error) from error


class BestEffort:
    """Failures are logged and the cycle continues without the step's result."""

    name = "best_effort"

    def on_failure(self, step: str, error: Exception) -> None:
        logger.warning("action_step_failed step=%s policy=%s error=%s", step, self.name, error)


@dataclass(slots=True, frozen=True)
class ActionStep:
    """Named action with its failure policy declared once."""

    name: str
    policy: FailurePolicy

    async def run(self, action: Callable[[], Awaitable[T]]) -> T | None:
        try:
            return await action()
        except Exception as exc:
            self.policy.on_failure(self.name, exc)
            return None


BUYBACK_STEP = ActionStep("buyback", FatalOnFailure())
ADS_STEP = ActionStep("ads", BestEffort())

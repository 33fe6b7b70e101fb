"""Circuit Breaker gating new cycles after consecutive failures."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from flywheel.core.types import CircuitBreakerState

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """CLOSED -> OPEN after ``failure_threshold`` failures; one probe after cooldown.

    A probe granted in HALF_OPEN that is never resolved is re-granted once
    ``reset_timeout_ms`` has passed since the previous grant.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout_ms: int = 300_000,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self._failure_threshold = failure_threshold
        self._reset_timeout_ms = reset_timeout_ms
        self._clock = clock
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._opened_at_ms: int | None = None
        self._probe_granted_at_ms: int | None = None

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def get_state(self) -> CircuitBreakerState:
        return self._state

    def can_proceed(self) -> bool:
        if self._state is CircuitBreakerState.CLOSED:
            return True

        now_ms = self._now_ms()
        if self._state is CircuitBreakerState.OPEN:
            assert self._opened_at_ms is not None
            if now_ms - self._opened_at_ms < self._reset_timeout_ms:
                return False
            self._transition(CircuitBreakerState.HALF_OPEN)
            self._probe_granted_at_ms = now_ms
            return True

        # HALF_OPEN: the single probe is already out
        assert self._probe_granted_at_ms is not None
        if now_ms - self._probe_granted_at_ms >= self._reset_timeout_ms:
            logger.warning("circuit_breaker_probe_regranted")
            self._probe_granted_at_ms = now_ms
            return True
        return False

    def record_success(self) -> None:
        if self._state is CircuitBreakerState.HALF_OPEN:
            self._transition(CircuitBreakerState.CLOSED)
            self._probe_granted_at_ms = None
            self._opened_at_ms = None
        self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._state is CircuitBreakerState.HALF_OPEN:
            self._open()
            return
        if self._state is CircuitBreakerState.CLOSED and self._failure_count >= self._failure_threshold:
            self._open()

    def _open(self) -> None:
        self._opened_at_ms = self._now_ms()
        self._probe_granted_at_ms = None
        self._transition(CircuitBreakerState.OPEN)
        logger.error(
            "circuit_breaker_opened failures=%s reset_timeout_ms=%s",
            self._failure_count,
            self._reset_timeout_ms,
        )

    def _transition(self, state: CircuitBreakerState) -> None:
        if state is not self._state:
            logger.info("circuit_breaker_transition from=%s to=%s", self._state, state)
        self._state = state

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

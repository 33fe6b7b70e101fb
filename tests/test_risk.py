import math

import pytest

from flywheel.core.types import CircuitBreakerState, RiskCheckRequest, RiskLimits
from flywheel.risk.breaker import CircuitBreaker
from flywheel.risk.gate import RiskGate


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def test_breaker_opens_after_threshold_and_grants_one_probe() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(3, 1_000, clock=clock)

    for _ in range(3):
        assert breaker.can_proceed() is True
        breaker.record_failure()

    assert breaker.get_state() is CircuitBreakerState.OPEN
    assert breaker.can_proceed() is False

    clock.now += 1.0
    assert breaker.can_proceed() is True
    assert breaker.get_state() is CircuitBreakerState.HALF_OPEN
    assert breaker.can_proceed() is False


def test_half_open_success_closes() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(1, 500, clock=clock)
    breaker.record_failure()
    clock.now += 0.5
    assert breaker.can_proceed() is True

    breaker.record_success()

    assert breaker.get_state() is CircuitBreakerState.CLOSED
    assert breaker.failure_count == 0
    assert breaker.can_proceed() is True


def test_half_open_failure_reopens() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(2, 500, clock=clock)
    breaker.record_failure()
    breaker.record_failure()
    clock.now += 0.5
    assert breaker.can_proceed() is True

    breaker.record_failure()

    assert breaker.get_state() is CircuitBreakerState.OPEN
    assert breaker.can_proceed() is False


def test_unresolved_probe_is_regranted_after_timeout() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(1, 500, clock=clock)
    breaker.record_failure()
    clock.now += 0.5
    assert breaker.can_proceed() is True
    assert breaker.can_proceed() is False

    clock.now += 0.5

    assert breaker.can_proceed() is True
    assert breaker.get_state() is CircuitBreakerState.HALF_OPEN


def test_success_in_closed_resets_count() -> None:
    breaker = CircuitBreaker(3, 500, clock=FakeClock())
    breaker.record_failure()
    breaker.record_failure()

    breaker.record_success()
    breaker.record_failure()

    assert breaker.get_state() is CircuitBreakerState.CLOSED
    assert breaker.failure_count == 1


def test_breaker_rejects_zero_threshold() -> None:
    with pytest.raises(ValueError):
        CircuitBreaker(0)


def test_gate_allows_within_limits() -> None:
    gate = RiskGate(RiskLimits())

    result = gate.check_risk(RiskCheckRequest(budget_usd=1000.0, time_since_last_epoch_seconds=math.inf, manually_approved=True))

    assert result.allowed is True
    assert result.reason is None


def test_gate_checks_budget_first() -> None:
    gate = RiskGate(RiskLimits())

    result = gate.check_risk(RiskCheckRequest(budget_usd=1500.0, time_since_last_epoch_seconds=0.0))

    assert result.allowed is False
    assert result.reason == "Budget $1500.00 exceeds max $1000.00 per epoch"


def test_gate_requires_approval_before_interval() -> None:
    gate = RiskGate(RiskLimits())

    result = gate.check_risk(RiskCheckRequest(budget_usd=10.0, time_since_last_epoch_seconds=0.0))

    assert result.reason == "Manual approval required before executing epoch actions"


def test_gate_checks_interval() -> None:
    gate = RiskGate(RiskLimits(require_manual_approval=False, min_interval_seconds=3600))

    result = gate.check_risk(RiskCheckRequest(budget_usd=10.0, time_since_last_epoch_seconds=60.0))

    assert result.allowed is False
    assert result.reason is not None and result.reason.startswith("Minimum interval not met")

from __future__ import annotations

from src.application.services.llm_gateway.circuit_breaker import (
    BreakerStatus,
    CircuitBreakerRegistry,
)


class _FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _registry(clock: _FakeClock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(
        failure_threshold=3,
        reset_timeout_ms=60_000,
        half_open_requests=1,
        clock=clock,
    )


def test_opens_after_threshold_failures():
    clock = _FakeClock()
    reg = _registry(clock)

    reg.record_failure("google")
    reg.record_failure("google")
    assert reg.is_open("google") is False
    assert reg.status("google") is BreakerStatus.CLOSED

    reg.record_failure("google")
    assert reg.is_open("google") is True
    assert reg.status("google") is BreakerStatus.OPEN
    assert reg.allow_request("google") is False


def test_providers_are_isolated():
    clock = _FakeClock()
    reg = _registry(clock)
    for _ in range(3):
        reg.record_failure("google")

    assert reg.is_open("google") is True
    assert reg.is_open("openai") is False
    assert reg.allow_request("openai") is True


def test_half_open_after_reset_window_allows_exactly_one_trial():
    clock = _FakeClock()
    reg = _registry(clock)
    for _ in range(3):
        reg.record_failure("groq")

    clock.advance(59.0)
    assert reg.status("groq") is BreakerStatus.OPEN
    assert reg.allow_request("groq") is False

    clock.advance(2.0)
    assert reg.status("groq") is BreakerStatus.HALF_OPEN
    assert reg.is_open("groq") is False
    assert reg.allow_request("groq") is True
    # 第二个并发请求在试探完成前被拒绝
    assert reg.is_open("groq") is True
    assert reg.allow_request("groq") is False


def test_trial_success_closes_and_resets():
    clock = _FakeClock()
    reg = _registry(clock)
    for _ in range(3):
        reg.record_failure("groq")
    clock.advance(61.0)
    assert reg.allow_request("groq") is True

    reg.record_success("groq")
    st = reg.state("groq")
    assert st.is_open is False
    assert st.failure_count == 0
    assert reg.status("groq") is BreakerStatus.CLOSED


def test_trial_failure_reopens_with_fresh_window():
    clock = _FakeClock()
    reg = _registry(clock)
    for _ in range(3):
        reg.record_failure("groq")
    clock.advance(61.0)
    assert reg.allow_request("groq") is True

    reg.record_failure("groq")
    assert reg.status("groq") is BreakerStatus.OPEN
    assert reg.state("groq").failure_count == 4
    clock.advance(30.0)
    assert reg.allow_request("groq") is False


def test_success_below_threshold_resets_count():
    clock = _FakeClock()
    reg = _registry(clock)
    reg.record_failure("openai")
    reg.record_failure("openai")
    reg.record_success("openai")
    reg.record_failure("openai")
    reg.record_failure("openai")
    assert reg.is_open("openai") is False


def test_release_trial_returns_slot():
    clock = _FakeClock()
    reg = _registry(clock)
    for _ in range(3):
        reg.record_failure("openai")
    clock.advance(61.0)
    assert reg.allow_request("openai") is True
    assert reg.allow_request("openai") is False

    reg.release_trial("openai")
    assert reg.allow_request("openai") is True


def test_snapshot_reports_status_per_provider():
    clock = _FakeClock()
    reg = _registry(clock)
    for _ in range(3):
        reg.record_failure("google")
    reg.record_success("openai")
    clock.advance(1.5)

    snap = reg.snapshot()
    assert snap["google"]["status"] == "open"
    assert snap["google"]["failure_count"] == 3
    assert snap["google"]["last_failure_age_ms"] == 1500
    assert snap["openai"]["status"] == "closed"
    assert snap["openai"]["last_failure_age_ms"] is None

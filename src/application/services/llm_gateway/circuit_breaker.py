"""按 Provider 维度的熔断器注册表。

状态机：Closed -> Open -> HalfOpen -> Closed（试探成功）/ Open（试探失败）。

注册表在进程内由应用工厂构造一次，注入到网关中，跨请求共享；
只有网关会写入状态。单线程协作式调度下，每次调用只做一次读-改-写，无需加锁。
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Any, Callable

from src.shared.constants.generation import (
    CIRCUIT_BREAKER_HALF_OPEN_REQUESTS,
    CIRCUIT_BREAKER_RESET_MS,
    CIRCUIT_BREAKER_THRESHOLD,
)
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


class BreakerStatus(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    failure_count: int = 0
    last_failure_at: float | None = None
    is_open: bool = False
    trials_in_flight: int = 0


class CircuitBreakerRegistry:
    def __init__(
        self,
        *,
        failure_threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        reset_timeout_ms: int = CIRCUIT_BREAKER_RESET_MS,
        half_open_requests: int = CIRCUIT_BREAKER_HALF_OPEN_REQUESTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._threshold = max(1, int(failure_threshold))
        self._reset_s = max(0, int(reset_timeout_ms)) / 1000.0
        self._half_open_requests = max(1, int(half_open_requests))
        self._clock = clock
        self._states: dict[str, CircuitBreakerState] = {}

    def _get(self, provider: str) -> CircuitBreakerState:
        st = self._states.get(provider)
        if st is None:
            st = CircuitBreakerState()
            self._states[provider] = st
        return st

    def _window_elapsed(self, st: CircuitBreakerState) -> bool:
        if st.last_failure_at is None:
            return True
        return (self._clock() - st.last_failure_at) > self._reset_s

    def status(self, provider: str) -> BreakerStatus:
        st = self._get(provider)
        if not st.is_open:
            return BreakerStatus.CLOSED
        if self._window_elapsed(st):
            return BreakerStatus.HALF_OPEN
        return BreakerStatus.OPEN

    def is_open(self, provider: str) -> bool:
        """窗口期内打开，或半开试探名额已被占满时返回 True。"""
        st = self._get(provider)
        if not st.is_open:
            return False
        if not self._window_elapsed(st):
            return True
        return st.trials_in_flight >= self._half_open_requests

    def allow_request(self, provider: str) -> bool:
        """网关调用前的闸门；半开状态下占用一个试探名额。"""
        st = self._get(provider)
        if not st.is_open:
            return True
        if not self._window_elapsed(st):
            return False
        if st.trials_in_flight >= self._half_open_requests:
            return False
        st.trials_in_flight += 1
        log.info(
            "circuit_breaker.half_open_trial",
            extra=log_extra(provider=provider, failure_count=st.failure_count),
        )
        return True

    def record_failure(self, provider: str) -> None:
        st = self._get(provider)
        st.failure_count += 1
        st.last_failure_at = self._clock()
        st.trials_in_flight = 0
        if st.failure_count >= self._threshold:
            if not st.is_open:
                log.warning(
                    "circuit_breaker.opened",
                    extra=log_extra(provider=provider, failure_count=st.failure_count),
                )
            st.is_open = True

    def record_success(self, provider: str) -> None:
        st = self._get(provider)
        if st.is_open:
            log.info("circuit_breaker.closed", extra=log_extra(provider=provider))
        st.failure_count = 0
        st.is_open = False
        st.trials_in_flight = 0

    def release_trial(self, provider: str) -> None:
        """试探调用以无需熔断记账的结果结束（如 4xx）时归还名额。"""
        st = self._get(provider)
        if st.trials_in_flight > 0:
            st.trials_in_flight -= 1

    def state(self, provider: str) -> CircuitBreakerState:
        st = self._get(provider)
        return CircuitBreakerState(
            failure_count=st.failure_count,
            last_failure_at=st.last_failure_at,
            is_open=st.is_open,
            trials_in_flight=st.trials_in_flight,
        )

    def snapshot(self) -> dict[str, dict[str, Any]]:
        now = self._clock()
        out: dict[str, dict[str, Any]] = {}
        for provider, st in sorted(self._states.items()):
            age_ms = None
            if st.last_failure_at is not None:
                age_ms = int((now - st.last_failure_at) * 1000)
            out[provider] = {
                "status": self.status(provider).value,
                "failure_count": st.failure_count,
                "last_failure_age_ms": age_ms,
            }
        return out

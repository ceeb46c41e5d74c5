"""Provider 网关：熔断检查、超时控制、后端分发与熔断记账。

网关是熔断器状态的唯一写入方；除此之外只做透传。
"""

from __future__ import annotations

import asyncio
import time
from typing import Mapping

from src.application.services.llm_gateway.backends import GenerationOptions, ProviderBackend
from src.application.services.llm_gateway.circuit_breaker import (
    BreakerStatus,
    CircuitBreakerRegistry,
)
from src.application.services.llm_gateway.errors import (
    CircuitOpenError,
    ProviderError,
    ProviderTimeoutError,
    UnknownProviderError,
)
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


class ProviderGateway:
    def __init__(
        self,
        *,
        registry: CircuitBreakerRegistry,
        backends: Mapping[str, ProviderBackend],
    ):
        self._registry = registry
        self._backends = dict(backends)

    @property
    def registry(self) -> CircuitBreakerRegistry:
        return self._registry

    def providers(self) -> list[str]:
        return sorted(self._backends.keys())

    async def call(
        self,
        provider: str,
        model: str | None,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 8000,
        timeout_ms: int,
    ) -> str:
        backend = self._backends.get(provider)
        if backend is None:
            raise UnknownProviderError(provider)

        is_trial = self._registry.status(provider) is BreakerStatus.HALF_OPEN
        if not self._registry.allow_request(provider):
            log.warning("gateway.call.rejected", extra=log_extra(provider=provider))
            raise CircuitOpenError(provider)

        options = GenerationOptions(temperature=temperature, max_tokens=max_tokens, model=model)
        started = time.perf_counter()
        try:
            text = await asyncio.wait_for(
                backend.generate(system_prompt, user_prompt, options),
                timeout=max(0.001, timeout_ms / 1000.0),
            )
        except asyncio.TimeoutError:
            self._registry.record_failure(provider)
            log.warning(
                "gateway.call.timeout",
                extra=log_extra(provider=provider, model=model, timeout_ms=timeout_ms),
            )
            raise ProviderTimeoutError(provider, timeout_ms) from None
        except ProviderError as e:
            if e.transient:
                self._registry.record_failure(provider)
            log.warning(
                "gateway.call.failed",
                extra=log_extra(provider=provider, model=model, code=e.code, transient=e.transient),
            )
            raise
        finally:
            if is_trial:
                self._registry.release_trial(provider)

        self._registry.record_success(provider)
        log.info(
            "gateway.call.done",
            extra=log_extra(
                provider=provider,
                model=model,
                chars=len(text or ""),
                elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
            ),
        )
        return text or ""

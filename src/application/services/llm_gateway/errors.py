"""Provider 网关错误定义。

分类：
- transient：超时、429、5xx、网络层错误，计入熔断失败次数，可由上层重试
- fatal：熔断打开、未知 provider、其他 4xx，立即抛出，不重试
"""

from __future__ import annotations

from typing import Any

from src.shared.errors import AppError


class ProviderError(AppError):
    """Provider 调用错误基类。"""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int = 502,
        code: str = "provider_error",
        transient: bool = False,
        details: dict[str, Any] | None = None,
    ):
        merged = {"provider": provider, "transient": transient, **(details or {})}
        super().__init__(
            message=message,
            status_code=status_code,
            code=code,
            details=merged,
        )

    @property
    def provider(self) -> str:
        return str((self.details or {}).get("provider") or "")

    @property
    def transient(self) -> bool:
        return bool((self.details or {}).get("transient"))


class UnknownProviderError(ProviderError):
    def __init__(self, provider: str):
        super().__init__(
            f"unknown provider: {provider}",
            provider=provider,
            status_code=400,
            code="unknown_provider",
        )


class CircuitOpenError(ProviderError):
    """熔断打开：不发起网络请求，直接拒绝。"""

    def __init__(self, provider: str):
        super().__init__(
            f"circuit breaker open for {provider}",
            provider=provider,
            status_code=503,
            code="circuit_open",
        )


class ProviderTimeoutError(ProviderError):
    def __init__(self, provider: str, timeout_ms: int):
        super().__init__(
            f"request to {provider} timed out after {timeout_ms}ms",
            provider=provider,
            status_code=504,
            code="provider_timeout",
            transient=True,
            details={"timeout_ms": timeout_ms},
        )


class ProviderHTTPError(ProviderError):
    """上游返回非 2xx。429/5xx 视为 transient。"""

    def __init__(self, provider: str, upstream_status: int, body_preview: str = ""):
        transient = upstream_status == 429 or upstream_status >= 500
        super().__init__(
            f"{provider} error {upstream_status}",
            provider=provider,
            status_code=502,
            code="rate_limited" if upstream_status == 429 else "provider_http_error",
            transient=transient,
            details={"upstream_status": upstream_status, "body_preview": body_preview[:200]},
        )

    @property
    def upstream_status(self) -> int:
        return int((self.details or {}).get("upstream_status") or 0)


class ProviderTransportError(ProviderError):
    """网络层错误（连接失败、读超时等），视为 transient。"""

    def __init__(self, provider: str, error: Exception):
        super().__init__(
            f"{provider} transport error: {error.__class__.__name__}: {error}",
            provider=provider,
            status_code=502,
            code="provider_transport_error",
            transient=True,
        )


class ProviderResponseError(ProviderError):
    """响应体无法解析（非 JSON 等）。"""

    def __init__(self, provider: str, reason: str):
        super().__init__(
            f"{provider} returned an unreadable response: {reason}",
            provider=provider,
            status_code=502,
            code="provider_bad_response",
        )


class MissingCredentialError(ProviderError):
    """请求与环境均未提供该 provider 的凭据。"""

    def __init__(self, provider: str):
        super().__init__(
            f"no api key configured for provider {provider}",
            provider=provider,
            status_code=400,
            code="missing_api_key",
        )

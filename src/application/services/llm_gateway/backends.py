"""Provider 后端适配器。

每个后端实现同一个接口 `generate(system_prompt, user_prompt, options) -> str`，
只负责把各家的认证头、请求体、响应结构归一为纯文本。
新增 provider 只需新增实现并登记到 `BACKEND_TYPES`，无需修改网关。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

from src.application.services.llm_gateway.errors import (
    MissingCredentialError,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTransportError,
)
from src.shared.constants.llm_providers import DEFAULT_PROVIDERS
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float = 0.7
    max_tokens: int = 8000
    model: str | None = None


class ProviderBackend(Protocol):
    provider: str

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions,
    ) -> str: ...


class HTTPBackend:
    """基于共享 httpx.AsyncClient 的后端基类。"""

    def __init__(
        self,
        *,
        provider: str,
        http: httpx.AsyncClient,
        api_key: str,
        base_url: str,
        default_model: str,
        max_tokens_cap: int | None = None,
        extra_headers: Mapping[str, str] | None = None,
    ):
        self.provider = provider
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._max_tokens_cap = max_tokens_cap
        self._extra_headers = dict(extra_headers or {})

    def _model(self, options: GenerationOptions) -> str:
        return (options.model or "").strip() or self._default_model

    def _max_tokens(self, options: GenerationOptions) -> int:
        if self._max_tokens_cap is not None:
            return min(int(options.max_tokens), int(self._max_tokens_cap))
        return int(options.max_tokens)

    def _require_key(self) -> str:
        if not self._api_key:
            raise MissingCredentialError(self.provider)
        return self._api_key

    async def _post_json(
        self,
        url: str,
        *,
        headers: dict[str, str],
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            resp = await self._http.post(
                url,
                headers={"Content-Type": "application/json", **self._extra_headers, **headers},
                json=payload,
            )
        except httpx.RequestError as e:
            raise ProviderTransportError(self.provider, e) from e

        if resp.status_code < 200 or resp.status_code >= 300:
            log.warning(
                "provider.http_error",
                extra=log_extra(provider=self.provider, status=resp.status_code),
            )
            raise ProviderHTTPError(self.provider, resp.status_code, resp.text)

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderResponseError(self.provider, "body is not JSON") from e
        if not isinstance(data, dict):
            raise ProviderResponseError(self.provider, "body is not a JSON object")
        return data


class OpenAICompatibleBackend(HTTPBackend):
    """OpenAI / OpenRouter / Groq：`/chat/completions`，Bearer 认证。"""

    async def generate(self, system_prompt: str, user_prompt: str, options: GenerationOptions) -> str:
        key = self._require_key()
        data = await self._post_json(
            f"{self._base_url}/chat/completions",
            headers={"Authorization": f"Bearer {key}"},
            payload={
                "model": self._model(options),
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": options.temperature,
                "max_tokens": self._max_tokens(options),
            },
        )
        choices = data.get("choices") or []
        if not choices:
            return ""
        message = (choices[0] or {}).get("message") or {}
        return str(message.get("content") or "")


class AnthropicBackend(HTTPBackend):
    """Anthropic Messages API：`x-api-key` + `anthropic-version`。"""

    async def generate(self, system_prompt: str, user_prompt: str, options: GenerationOptions) -> str:
        key = self._require_key()
        data = await self._post_json(
            f"{self._base_url}/messages",
            headers={"x-api-key": key},
            payload={
                "model": self._model(options),
                "system": system_prompt,
                "messages": [{"role": "user", "content": user_prompt}],
                "temperature": options.temperature,
                "max_tokens": self._max_tokens(options),
            },
        )
        blocks = data.get("content") or []
        texts = [str(b.get("text") or "") for b in blocks if isinstance(b, dict) and b.get("type", "text") == "text"]
        return "".join(texts)


class GeminiBackend(HTTPBackend):
    """Google Gemini REST：`models/{model}:generateContent`。"""

    async def generate(self, system_prompt: str, user_prompt: str, options: GenerationOptions) -> str:
        key = self._require_key()
        data = await self._post_json(
            f"{self._base_url}/models/{self._model(options)}:generateContent",
            headers={"x-goog-api-key": key},
            payload={
                "systemInstruction": {"parts": [{"text": system_prompt}]},
                "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
                "generationConfig": {
                    "temperature": options.temperature,
                    "maxOutputTokens": self._max_tokens(options),
                },
            },
        )
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))


BACKEND_TYPES: dict[str, type[HTTPBackend]] = {
    "openai_compatible": OpenAICompatibleBackend,
    "anthropic": AnthropicBackend,
    "gemini": GeminiBackend,
}


def build_backends(
    http: httpx.AsyncClient,
    api_keys: Mapping[str, str],
    *,
    providers: Mapping[str, Mapping[str, Any]] = DEFAULT_PROVIDERS,
) -> dict[str, ProviderBackend]:
    """按 provider 定义构建后端实例（凭据缺失时延迟到调用时报错）。"""
    out: dict[str, ProviderBackend] = {}
    for key, spec in providers.items():
        cls = BACKEND_TYPES.get(str(spec.get("provider_type") or ""))
        if cls is None:
            continue
        out[key] = cls(
            provider=key,
            http=http,
            api_key=str(api_keys.get(key) or ""),
            base_url=str(spec["base_url"]),
            default_model=str(spec["default_model"]),
            max_tokens_cap=spec.get("max_tokens_cap"),
            extra_headers=spec.get("extra_headers") or {},
        )
    return out

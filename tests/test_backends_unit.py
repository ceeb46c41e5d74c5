from __future__ import annotations

import json

import httpx
import pytest

from src.application.services.llm_gateway.backends import GenerationOptions, build_backends
from src.application.services.llm_gateway.errors import (
    MissingCredentialError,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTransportError,
)


class _Recorder:
    def __init__(self, response: httpx.Response | Exception):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


def _backends(recorder: _Recorder, keys: dict[str, str] | None = None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    api_keys = keys if keys is not None else {p: f"key-{p}" for p in ("google", "openrouter", "openai", "anthropic", "groq")}
    return http, build_backends(http, api_keys)


@pytest.mark.asyncio
async def test_build_backends_registers_all_default_providers():
    http, backends = _backends(_Recorder(httpx.Response(200, json={})))
    async with http:
        assert sorted(backends) == ["anthropic", "google", "groq", "openai", "openrouter"]


@pytest.mark.asyncio
async def test_openai_compatible_request_and_response_shape():
    rec = _Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "<p>ok</p>"}}]}))
    http, backends = _backends(rec)
    async with http:
        text = await backends["openai"].generate("sys", "user", GenerationOptions(temperature=0.75, max_tokens=3000))

    assert text == "<p>ok</p>"
    req = rec.requests[0]
    assert str(req.url) == "https://api.openai.com/v1/chat/completions"
    assert req.headers["Authorization"] == "Bearer key-openai"
    body = rec.last_body
    assert body["model"] == "gpt-4o"
    assert body["messages"][0] == {"role": "system", "content": "sys"}
    assert body["messages"][1] == {"role": "user", "content": "user"}
    assert body["temperature"] == 0.75
    assert body["max_tokens"] == 3000


@pytest.mark.asyncio
async def test_openrouter_sends_attribution_headers_and_requested_model():
    rec = _Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "x"}}]}))
    http, backends = _backends(rec)
    async with http:
        await backends["openrouter"].generate("s", "u", GenerationOptions(model="openai/gpt-4o-mini"))

    req = rec.requests[0]
    assert req.headers["HTTP-Referer"]
    assert req.headers["X-Title"]
    assert rec.last_body["model"] == "openai/gpt-4o-mini"


@pytest.mark.asyncio
async def test_groq_caps_max_tokens():
    rec = _Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "x"}}]}))
    http, backends = _backends(rec)
    async with http:
        await backends["groq"].generate("s", "u", GenerationOptions(max_tokens=16000))
    assert rec.last_body["max_tokens"] == 8000


@pytest.mark.asyncio
async def test_anthropic_request_and_text_blocks_are_joined():
    rec = _Recorder(
        httpx.Response(
            200,
            json={"content": [{"type": "text", "text": "Hello "}, {"type": "text", "text": "world"}]},
        )
    )
    http, backends = _backends(rec)
    async with http:
        text = await backends["anthropic"].generate("sys", "user", GenerationOptions())

    assert text == "Hello world"
    req = rec.requests[0]
    assert str(req.url) == "https://api.anthropic.com/v1/messages"
    assert req.headers["x-api-key"] == "key-anthropic"
    assert req.headers["anthropic-version"] == "2023-06-01"
    assert rec.last_body["system"] == "sys"


@pytest.mark.asyncio
async def test_gemini_request_and_parts_are_joined():
    rec = _Recorder(
        httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "{\"a\":"}, {"text": " 1}"}]}}]},
        )
    )
    http, backends = _backends(rec)
    async with http:
        text = await backends["google"].generate("sys", "user", GenerationOptions(temperature=0.9, max_tokens=16000))

    assert text == '{"a": 1}'
    req = rec.requests[0]
    assert req.url.path.endswith("/models/gemini-2.5-flash-preview-05-20:generateContent")
    assert req.headers["x-goog-api-key"] == "key-google"
    body = rec.last_body
    assert body["systemInstruction"]["parts"][0]["text"] == "sys"
    assert body["generationConfig"] == {"temperature": 0.9, "maxOutputTokens": 16000}


@pytest.mark.asyncio
@pytest.mark.parametrize("status,transient,code", [(429, True, "rate_limited"), (500, True, "provider_http_error"), (401, False, "provider_http_error")])
async def test_http_errors_are_classified(status: int, transient: bool, code: str):
    rec = _Recorder(httpx.Response(status, text="upstream says no"))
    http, backends = _backends(rec)
    async with http:
        with pytest.raises(ProviderHTTPError) as ei:
            await backends["openai"].generate("s", "u", GenerationOptions())

    assert ei.value.transient is transient
    assert ei.value.code == code
    assert ei.value.upstream_status == status


@pytest.mark.asyncio
async def test_transport_error_is_transient():
    rec = _Recorder(httpx.ConnectError("refused"))
    http, backends = _backends(rec)
    async with http:
        with pytest.raises(ProviderTransportError) as ei:
            await backends["openai"].generate("s", "u", GenerationOptions())
    assert ei.value.transient is True


@pytest.mark.asyncio
async def test_non_json_body_is_response_error():
    rec = _Recorder(httpx.Response(200, text="<html>gateway</html>"))
    http, backends = _backends(rec)
    async with http:
        with pytest.raises(ProviderResponseError):
            await backends["anthropic"].generate("s", "u", GenerationOptions())


@pytest.mark.asyncio
async def test_missing_key_fails_before_network():
    rec = _Recorder(httpx.Response(200, json={}))
    http, backends = _backends(rec, keys={})
    async with http:
        with pytest.raises(MissingCredentialError):
            await backends["groq"].generate("s", "u", GenerationOptions())
    assert rec.requests == []

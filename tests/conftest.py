from __future__ import annotations

import os
import sys
from pathlib import Path

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.shared.config import reset_settings_for_tests


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """每个用例使用干净的配置：禁用 .env，清空环境级凭据。"""
    monkeypatch.setenv("LONGFORM_DISABLE_DOTENV", "1")
    for name in list(os.environ):
        if name.startswith("LONGFORM_") and name.endswith("_API_KEY"):
            monkeypatch.delenv(name, raising=False)
    reset_settings_for_tests()
    yield
    reset_settings_for_tests()


@pytest.fixture()
async def app():
    """应用实例（ASGITransport 不触发 lifespan，上游 http 客户端在此手动注入且禁止真实外呼）。"""
    from src.interfaces.api.app import create_app

    application = create_app()
    async with httpx.AsyncClient(transport=httpx.MockTransport(_no_network)) as upstream:
        application.state.http = upstream
        yield application


@pytest.fixture()
async def api_client(app):
    """全局 API 客户端 Fixture。"""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _no_network(request: httpx.Request) -> httpx.Response:
    return httpx.Response(599, json={"error": f"unexpected upstream call: {request.url}"})

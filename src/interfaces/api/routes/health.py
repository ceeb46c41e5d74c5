from __future__ import annotations

from fastapi import APIRouter, Request

from src.interfaces.api.app import API_VERSION


router = APIRouter()


@router.get("/health")
def health(request: Request):
    breakers = request.app.state.breakers.snapshot()
    open_providers = sorted(p for p, s in breakers.items() if s["status"] == "open")
    return {
        # 熔断只影响单个 Provider，服务本身仍可用
        "status": "degraded" if open_providers else "ok",
        "version": API_VERSION,
        "components": {
            "http_client": request.app.state.http is not None,
        },
        "circuit_breakers": breakers,
        "info": {
            "open_providers": open_providers,
            "description": "Provider 熔断状态为进程内内存状态，重启后重置",
        },
    }

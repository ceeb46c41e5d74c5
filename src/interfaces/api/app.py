from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.application.services.llm_gateway.circuit_breaker import CircuitBreakerRegistry
from src.shared.config import get_settings
from src.shared.errors import (
    AppError,
    ERROR_INTERNAL,
    ERROR_VALIDATION,
    error_response,
)
from src.shared.logging import configure_logging, get_logger, log_extra
from src.shared.request_id import get_request_id, new_request_id, set_request_id

log = get_logger(__name__)

API_VERSION = "0.1.0"


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 单次调用的总超时由网关按阶段控制，这里只限制连接建立
        timeout = httpx.Timeout(None, connect=settings.http_connect_timeout_s)
        async with httpx.AsyncClient(timeout=timeout) as client:
            app.state.http = client
            log.info("api.started", extra=log_extra(providers_configured=sorted(settings.fallback_api_keys())))
            yield
        app.state.http = None

    app = FastAPI(title="Longform Orchestrator API", version=API_VERSION, lifespan=lifespan)

    # 注意：`allow_credentials=True` 时，浏览器不接受 `Access-Control-Allow-Origin: *`。
    # 因此默认仅放行本地开发前端（可用 LONGFORM_CORS_ORIGINS 覆盖）。
    allow_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # 熔断器状态在进程内跨请求共享，重启即丢失
    app.state.breakers = CircuitBreakerRegistry()
    app.state.http = None

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or new_request_id()
        set_request_id(rid)
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(
                code=exc.code,
                message=exc.message,
                request_id=get_request_id(),
                details=exc.details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                code=ERROR_VALIDATION,
                message="request validation failed",
                request_id=get_request_id(),
                details={"errors": jsonable_errors(exc)},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(
                code=f"http_{exc.status_code}",
                message=exc.detail if isinstance(exc.detail, str) else "http error",
                request_id=get_request_id(),
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception("unhandled_error")
        return JSONResponse(
            status_code=500,
            content=error_response(
                code=ERROR_INTERNAL,
                message="internal server error",
                request_id=get_request_id(),
                details={"error": str(exc), "type": exc.__class__.__name__},
            ),
        )

    from src.interfaces.api.routes.generate import router as generate_router
    from src.interfaces.api.routes.health import router as health_router

    app.include_router(health_router, prefix="/v1")
    app.include_router(generate_router, prefix="/v1")

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic v2 的 ctx 中可能含异常对象，JSON 序列化前转成字符串
    out: list[dict] = []
    for err in exc.errors():
        item = dict(err)
        if "ctx" in item:
            item["ctx"] = {k: str(v) for k, v in (item["ctx"] or {}).items()}
        out.append(item)
    return out

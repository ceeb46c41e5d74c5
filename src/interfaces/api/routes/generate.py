"""长文生成 API 路由。

同步执行一次生成任务并返回结果（含进度事件历史）；终止性错误经 AppError 处理器转为统一错误响应。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from src.application.schemas.content_generation import GenerateRequest, GenerateResponse
from src.application.services.content_generation.types import ProgressEvent
from src.application.services.content_generation_service import ContentGenerationService
from src.shared.errors import AppError
from src.shared.logging import get_logger, log_extra


router = APIRouter()
log = get_logger(__name__)


def get_generation_service(request: Request) -> ContentGenerationService:
    """获取生成服务实例（测试中可通过 dependency_overrides 替换）。"""
    http = request.app.state.http
    if http is None:
        raise AppError(
            code="service_unavailable",
            message="http client is not initialized",
            status_code=503,
        )
    return ContentGenerationService(registry=request.app.state.breakers, http=http)


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    payload: GenerateRequest,
    service: ContentGenerationService = Depends(get_generation_service),
) -> GenerateResponse:
    events: list[ProgressEvent] = []
    result = await service.generate(payload, on_progress=events.append)
    log.info(
        "api.generate.done",
        extra=log_extra(
            method=result.method,
            attempts=result.attempts,
            word_count=result.contract.word_count,
            total_ms=round(result.total_time_ms, 1),
        ),
    )
    return GenerateResponse.from_result(result, progress=events)

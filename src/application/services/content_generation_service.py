"""长文生成服务（入口）。

- staged 模式：先走分阶段流水线，任何终止性失败（大纲被拒、Provider 不可用等）转入单次生成回退
- single-shot 模式：直接单次生成
- 整个任务受 `job_timeout_s` 约束，超时抛出 `ContentGenerationError(code="job_timeout")`

熔断器注册表与 httpx 客户端由调用方（应用工厂）持有并注入，跨请求共享。
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence

import httpx

from src.application.schemas.content_generation import GenerateRequest
from src.application.services.content_generation.enrichment import SerperClient, SerperEnrichment
from src.application.services.content_generation.errors import ContentGenerationError
from src.application.services.content_generation.events import ProgressListener, ProgressReporter
from src.application.services.content_generation.pipeline import (
    PipelineOptions,
    StagedGenerationPipeline,
)
from src.application.services.content_generation.postprocessors import Finalizer
from src.application.services.content_generation.single_shot import SingleShotPipeline
from src.application.services.content_generation.types import GenerationContext, GenerationResult
from src.application.services.llm_gateway.backends import build_backends
from src.application.services.llm_gateway.circuit_breaker import CircuitBreakerRegistry
from src.application.services.llm_gateway.gateway import ProviderGateway
from src.shared.config import Settings, get_settings
from src.shared.logging import get_logger, log_extra
from src.shared.request_id import ensure_request_id

log = get_logger(__name__)

# 重新导出，便于路由层统一捕获
__all__ = ["ContentGenerationError", "ContentGenerationService"]


class ContentGenerationService:
    def __init__(
        self,
        *,
        registry: CircuitBreakerRegistry,
        http: httpx.AsyncClient,
        settings: Settings | None = None,
        finalizers: Sequence[Finalizer] = (),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._registry = registry
        self._http = http
        self._settings = settings or get_settings()
        self._finalizers = tuple(finalizers)
        self._sleep = sleep

    def _build_gateway(self, api_keys: dict[str, str]) -> ProviderGateway:
        return ProviderGateway(
            registry=self._registry,
            backends=build_backends(self._http, api_keys),
        )

    def _build_enrichment(self, api_keys: dict[str, str]) -> SerperEnrichment | None:
        key = api_keys.get("serper") or ""
        if not (self._settings.enrichment_enabled and key):
            return None
        client = SerperClient(
            http=self._http,
            api_key=key,
            base_url=self._settings.serper_base_url,
            timeout_s=self._settings.serper_timeout_s,
            max_retries=self._settings.serper_max_retries,
        )
        return SerperEnrichment(client, sleep=self._sleep)

    async def generate(
        self,
        request: GenerateRequest,
        on_progress: ProgressListener | None = None,
    ) -> GenerationResult:
        with ensure_request_id():
            try:
                return await asyncio.wait_for(
                    self._generate(request, on_progress),
                    timeout=self._settings.job_timeout_s,
                )
            except asyncio.TimeoutError as e:
                log.error(
                    "generation.job_timeout",
                    extra=log_extra(topic=request.topic[:80], timeout_s=self._settings.job_timeout_s),
                )
                raise ContentGenerationError(
                    f"generation job exceeded {self._settings.job_timeout_s:.0f}s",
                    status_code=504,
                    code="job_timeout",
                ) from e

    async def _generate(
        self,
        request: GenerateRequest,
        on_progress: ProgressListener | None,
    ) -> GenerationResult:
        # 请求携带的凭据优先，缺失项回退到环境配置
        api_keys = {**self._settings.fallback_api_keys(), **{k: v for k, v in request.api_keys.items() if v}}
        ctx = request.to_context(self._settings.default_provider)
        gateway = self._build_gateway(api_keys)
        reporter = ProgressReporter([on_progress] if on_progress else None)

        log.info(
            "generation.start",
            extra=log_extra(topic=ctx.topic[:80], mode=request.mode, provider=ctx.provider, model=ctx.model),
        )

        if request.mode == "single-shot":
            return await self._single_shot(gateway, reporter, ctx)

        staged = StagedGenerationPipeline(
            gateway=gateway,
            reporter=reporter,
            options=PipelineOptions(
                batch_size=self._settings.section_batch_size,
                batch_delay_s=self._settings.section_batch_delay_s,
            ),
            enrichment=self._build_enrichment(api_keys),
            finalizers=self._finalizers,
            sleep=self._sleep,
        )
        try:
            return await staged.run(ctx)
        except Exception as e:
            log.warning(
                "generation.staged_failed",
                extra=log_extra(
                    phase=staged.phase,
                    error=str(e),
                    error_type=e.__class__.__name__,
                ),
            )
        await reporter.emit("fallback", 0, "Staged generation failed, falling back to single-shot...")
        return await self._single_shot(gateway, reporter, ctx)

    async def _single_shot(
        self,
        gateway: ProviderGateway,
        reporter: ProgressReporter,
        ctx: GenerationContext,
    ) -> GenerationResult:
        pipeline = SingleShotPipeline(
            gateway=gateway,
            reporter=reporter,
            finalizers=self._finalizers,
            sleep=self._sleep,
        )
        return await pipeline.run(ctx)

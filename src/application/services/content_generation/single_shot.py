"""单次生成（回退路径）。

一次调用产出完整文档 JSON，最多尝试 `max_attempts` 次，每次温度递增；
尝试之间按指数退避等待。若全部尝试都未达标，但最佳一次仍超过降级字数下限，则返回该降级结果。
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Sequence

from src.application.services.content_generation.errors import ContentGenerationError
from src.application.services.content_generation.events import ProgressReporter
from src.application.services.content_generation.postprocessors import (
    Finalizer,
    apply_finalizers,
    finalize_contract,
)
from src.application.services.content_generation.prompts import build_full_prompt, build_system_prompt
from src.application.services.content_generation.response_healing import heal_json
from src.application.services.content_generation.text_utils import count_words, strip_code_fences
from src.application.services.content_generation.types import (
    ContentContract,
    GenerationContext,
    GenerationResult,
)
from src.application.services.llm_gateway.backoff import calculate_backoff
from src.application.services.llm_gateway.errors import CircuitOpenError, ProviderError
from src.application.services.llm_gateway.gateway import ProviderGateway
from src.shared.constants import generation as C
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


def attempt_temperature(attempt: int) -> float:
    """第 n 次尝试（从 1 开始）的温度：0.7 起步，每次 +0.05，封顶 0.9。"""
    t = C.BASE_TEMPERATURE + max(0, attempt - 1) * C.TEMPERATURE_INCREMENT
    return round(min(t, C.MAX_TEMPERATURE), 2)


class SingleShotPipeline:
    def __init__(
        self,
        *,
        gateway: ProviderGateway,
        reporter: ProgressReporter | None = None,
        finalizers: Sequence[Finalizer] = (),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        backoff: Callable[[int], float] = calculate_backoff,
        max_attempts: int = C.MAX_ATTEMPTS,
    ):
        self._gateway = gateway
        self._reporter = reporter
        self._finalizers = tuple(finalizers)
        self._sleep = sleep
        self._backoff = backoff
        self._max_attempts = max(1, int(max_attempts))

    async def _emit(self, phase: str, percent: int, message: str) -> None:
        if self._reporter is not None:
            await self._reporter.emit(phase, percent, message)

    async def _attempt(self, ctx: GenerationContext, attempt: int) -> ContentContract:
        raw = await self._gateway.call(
            ctx.provider,
            ctx.model,
            build_system_prompt(),
            build_full_prompt(
                ctx.topic,
                entities=ctx.entities,
                paa_questions=ctx.paa_questions,
                critical_terms=ctx.critical_terms,
                internal_links=ctx.internal_links,
            ),
            temperature=attempt_temperature(attempt),
            max_tokens=C.SINGLE_SHOT_MAX_TOKENS,
            timeout_ms=C.SINGLE_SHOT_TIMEOUT_MS,
        )
        parsed = heal_json(raw)
        if not parsed.success or parsed.data is None:
            raise ContentGenerationError(
                parsed.error or "JSON parse failed",
                status_code=502,
                code="unparsable_response",
            )
        contract = ContentContract.from_dict(parsed.data)
        contract.html_content = strip_code_fences(contract.html_content)
        # 模型自报的 word_count 不可信，始终按正文重算
        contract.word_count = count_words(contract.html_content)
        if parsed.is_truncated:
            log.warning(
                "single_shot.truncated_response",
                extra=log_extra(attempt=attempt, strategy=parsed.strategy, words=contract.word_count),
            )
        return contract

    def _finish(self, contract: ContentContract, ctx: GenerationContext) -> ContentContract:
        out = finalize_contract(contract)
        if not out.title:
            out.title = ctx.topic
        return apply_finalizers(out, ctx, self._finalizers)

    async def run(self, ctx: GenerationContext) -> GenerationResult:
        started = time.perf_counter()
        best: ContentContract | None = None
        last_error: str | None = None
        attempts_made = 0

        await self._emit("single_shot", C.PROGRESS_OUTLINE_START, "Generating full article...")

        for attempt in range(1, self._max_attempts + 1):
            attempts_made = attempt
            try:
                contract = await self._attempt(ctx, attempt)
            except CircuitOpenError as e:
                last_error = str(e)
                log.warning("single_shot.circuit_open", extra=log_extra(attempt=attempt, provider=ctx.provider))
                break
            except ProviderError as e:
                last_error = str(e)
                log.warning(
                    "single_shot.attempt_failed",
                    extra=log_extra(attempt=attempt, error=last_error, transient=e.transient),
                )
                if not e.transient:
                    break
            except Exception as e:
                last_error = str(e)
                log.warning("single_shot.attempt_failed", extra=log_extra(attempt=attempt, error=last_error))
            else:
                words = contract.word_count
                html_len = len(contract.html_content)
                log.info(
                    "single_shot.attempt",
                    extra=log_extra(attempt=attempt, words=words, html_chars=html_len),
                )
                if best is None or words > best.word_count:
                    best = contract
                if words >= C.MIN_ACCEPTABLE_WORDS and html_len > C.MIN_HTML_CHARS:
                    final = self._finish(contract, ctx)
                    await self._emit("validation", C.PROGRESS_COMPLETE, "Complete!")
                    return GenerationResult(
                        contract=final,
                        method="single-shot",
                        attempts=attempt,
                        total_time_ms=(time.perf_counter() - started) * 1000,
                        stats={"degraded": False},
                    )
                last_error = f"too short: {words} words, {html_len} chars"

            if attempt < self._max_attempts:
                delay_ms = self._backoff(attempt - 1)
                await self._emit(
                    "single_shot",
                    C.PROGRESS_OUTLINE_START,
                    f"Retrying (attempt {attempt + 1}/{self._max_attempts})...",
                )
                await self._sleep(delay_ms / 1000.0)

        if best is not None and best.word_count >= C.DEGRADED_WORD_FLOOR:
            log.warning(
                "single_shot.degraded",
                extra=log_extra(words=best.word_count, attempts=attempts_made),
            )
            final = self._finish(best, ctx)
            await self._emit("validation", C.PROGRESS_COMPLETE, "Complete (below target length)")
            return GenerationResult(
                contract=final,
                method="single-shot",
                attempts=attempts_made,
                total_time_ms=(time.perf_counter() - started) * 1000,
                stats={"degraded": True},
            )

        raise ContentGenerationError(
            f"content generation failed after {attempts_made} attempts: {last_error}",
            status_code=502,
            code="single_shot_exhausted",
            details={"attempts": attempts_made, "last_error": last_error},
        )

"""分阶段长文生成流水线。

状态：idle -> outline -> sections -> enrichment -> merge -> validation -> complete

- outline 阶段失败（调用出错、无法解析、章节数不足）直接抛出，由服务层转入单次生成回退
- sections 阶段按固定批大小并发，整批完成后才开始下一批；单章节失败降级为仅含标题的占位块
- enrichment / merge 阶段尽力而为：失败时使用模板占位，不中断流程
- validation 阶段只重算统计，不否决文档
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Sequence

from src.application.services.content_generation.errors import OutlineRejectedError
from src.application.services.content_generation.events import ProgressReporter
from src.application.services.content_generation.html_renderer import (
    ArticleHtmlRenderer,
    conclusion_placeholder,
    faq_accordion,
    faq_answer_placeholder,
    intro_placeholder,
    section_placeholder,
)
from src.application.services.content_generation.postprocessors import (
    Finalizer,
    apply_finalizers,
    finalize_contract,
)
from src.application.services.content_generation.prompts import (
    HTML_WRITER_SYSTEM,
    build_conclusion_prompt,
    build_faq_prompt,
    build_intro_prompt,
    build_outline_prompt,
    build_section_prompt,
    build_system_prompt,
)
from src.application.services.content_generation.response_healing import heal_json
from src.application.services.content_generation.text_utils import count_words, strip_code_fences
from src.application.services.content_generation.types import (
    FAQ,
    ContentContract,
    ContentOutline,
    GenerationContext,
    GenerationResult,
    Reference,
    SectionResult,
    SectionSpec,
    YouTubeVideo,
)
from src.application.services.llm_gateway.gateway import ProviderGateway
from src.shared.constants import generation as C
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

OUTLINE_REQUIRED_FIELDS = ("sections",)


class EnrichmentSource(Protocol):
    async def find_video(self, topic: str) -> YouTubeVideo | None: ...

    async def find_references(self, topic: str) -> list[Reference]: ...


@dataclass
class PipelineOptions:
    batch_size: int = 2
    batch_delay_s: float = 1.0
    min_outline_sections: int = C.MIN_OUTLINE_SECTIONS
    min_section_words: int = C.MIN_SECTION_WORDS


@dataclass
class PipelineStats:
    sections_total: int = 0
    sections_failed: int = 0
    faq_fallback: bool = False
    intro_fallback: bool = False
    conclusion_fallback: bool = False
    video_found: bool = False
    references_found: int = 0
    outline_time_ms: float = 0.0
    sections_time_ms: float = 0.0
    phase_errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sections_total": self.sections_total,
            "sections_failed": self.sections_failed,
            "faq_fallback": self.faq_fallback,
            "intro_fallback": self.intro_fallback,
            "conclusion_fallback": self.conclusion_fallback,
            "video_found": self.video_found,
            "references_found": self.references_found,
            "outline_time_ms": round(self.outline_time_ms, 2),
            "sections_time_ms": round(self.sections_time_ms, 2),
            "phase_errors": dict(self.phase_errors),
        }


class StagedGenerationPipeline:
    def __init__(
        self,
        *,
        gateway: ProviderGateway,
        reporter: ProgressReporter,
        options: PipelineOptions | None = None,
        enrichment: EnrichmentSource | None = None,
        finalizers: Sequence[Finalizer] = (),
        renderer: ArticleHtmlRenderer | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._gateway = gateway
        self._reporter = reporter
        self._opt = options or PipelineOptions()
        self._enrichment = enrichment
        self._finalizers = tuple(finalizers)
        self._renderer = renderer or ArticleHtmlRenderer()
        self._sleep = sleep
        self.phase = "idle"

    async def _call(
        self,
        ctx: GenerationContext,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        timeout_ms: int,
    ) -> str:
        return await self._gateway.call(
            ctx.provider,
            ctx.model,
            system_prompt,
            user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout_ms=timeout_ms,
        )

    async def run(self, ctx: GenerationContext) -> GenerationResult:
        started = time.perf_counter()
        stats = PipelineStats()
        log.info(
            "staged.start",
            extra=log_extra(topic=ctx.topic[:80], provider=ctx.provider, model=ctx.model),
        )

        # ---------- outline ----------
        self.phase = "outline"
        await self._reporter.emit("outline", C.PROGRESS_OUTLINE_START, "Generating content outline...")
        t0 = time.perf_counter()
        outline = await self._generate_outline(ctx)
        stats.outline_time_ms = (time.perf_counter() - t0) * 1000
        stats.sections_total = len(outline.sections)
        await self._reporter.emit(
            "outline",
            C.PROGRESS_OUTLINE_READY,
            f"Outline ready: {len(outline.sections)} sections",
        )

        # ---------- sections（视频检索并行进行） ----------
        video_task: asyncio.Task[YouTubeVideo | None] | None = None
        if self._enrichment is not None:
            await self._reporter.emit("youtube", C.PROGRESS_VIDEO_SEARCH, "Searching for relevant video...")
            video_task = asyncio.create_task(self._find_video(ctx, stats))

        self.phase = "sections"
        try:
            t1 = time.perf_counter()
            section_results = await self._generate_sections(ctx, outline.sections)
            stats.sections_time_ms = (time.perf_counter() - t1) * 1000
        except BaseException:
            if video_task is not None and not video_task.done():
                video_task.cancel()
            raise

        stats.sections_failed = sum(1 for r in section_results if not r.success)
        section_blocks = [
            r.html if r.success else section_placeholder(outline.sections[r.index].heading)
            for r in section_results
        ]
        log.info(
            "staged.sections.done",
            extra=log_extra(total=len(section_results), failed=stats.sections_failed),
        )

        # ---------- enrichment ----------
        self.phase = "enrichment"
        video = await video_task if video_task is not None else None
        stats.video_found = video is not None

        await self._reporter.emit("sections", C.PROGRESS_FAQ, "Generating FAQ...")
        faq_html = await self._generate_faq(ctx, outline.faq_topics, stats)

        references: list[Reference] = []
        if self._enrichment is not None:
            await self._reporter.emit(
                "references", C.PROGRESS_REFERENCES, "Discovering authoritative references..."
            )
            references = await self._find_references(ctx, stats)
        stats.references_found = len(references)

        # ---------- merge ----------
        self.phase = "merge"
        await self._reporter.emit("merge", C.PROGRESS_MERGE, "Merging content...")
        intro_html = await self._generate_intro(ctx, outline, stats)
        conclusion_html = await self._generate_conclusion(ctx, stats)

        assembled = self._renderer.render(
            intro_html=intro_html,
            section_blocks=section_blocks,
            takeaways=outline.key_takeaways,
            faq_html=faq_html,
            conclusion_html=conclusion_html,
            video=video,
            references=references,
        )

        # ---------- validation ----------
        self.phase = "validation"
        await self._reporter.emit("polish", C.PROGRESS_POLISH, "Final validation...")
        contract = finalize_contract(
            ContentContract(
                title=outline.title or ctx.topic,
                meta_description=outline.meta_description,
                slug=outline.slug,
                excerpt=outline.meta_description,
                html_content=assembled,
                faqs=[FAQ(question=q) for q in outline.faq_topics],
            )
        )
        contract = apply_finalizers(contract, ctx, self._finalizers)
        await self._reporter.emit("validation", C.PROGRESS_COMPLETE, "Complete!")
        self.phase = "complete"

        total_ms = (time.perf_counter() - started) * 1000
        log.info(
            "staged.done",
            extra=log_extra(word_count=contract.word_count, total_ms=round(total_ms, 1), **stats.to_dict()),
        )
        return GenerationResult(
            contract=contract,
            method="staged",
            attempts=1,
            total_time_ms=total_ms,
            youtube_video=video,
            references=references,
            section_results=section_results,
            stats=stats.to_dict(),
        )

    async def _generate_outline(self, ctx: GenerationContext) -> ContentOutline:
        raw = await self._call(
            ctx,
            system_prompt=build_system_prompt(),
            user_prompt=build_outline_prompt(ctx.topic, paa_questions=ctx.paa_questions),
            temperature=C.OUTLINE_TEMPERATURE,
            max_tokens=C.OUTLINE_MAX_TOKENS,
            timeout_ms=C.OUTLINE_TIMEOUT_MS,
        )
        parsed = heal_json(raw, required_fields=OUTLINE_REQUIRED_FIELDS)
        if not parsed.success or parsed.data is None:
            raise OutlineRejectedError("unparsable outline", preview=parsed.error)

        outline = ContentOutline.from_dict(parsed.data)
        if len(outline.sections) < self._opt.min_outline_sections:
            raise OutlineRejectedError(
                f"only {len(outline.sections)} sections (need {self._opt.min_outline_sections})",
                sections=len(outline.sections),
            )
        log.info(
            "staged.outline.ready",
            extra=log_extra(
                sections=len(outline.sections),
                faq_topics=len(outline.faq_topics),
                strategy=parsed.strategy,
            ),
        )
        return outline

    async def _generate_sections(
        self,
        ctx: GenerationContext,
        sections: Sequence[SectionSpec],
    ) -> list[SectionResult]:
        total = len(sections)
        batch_size = max(1, int(self._opt.batch_size))
        results: list[SectionResult] = []

        await self._reporter.emit(
            "sections",
            C.PROGRESS_SECTIONS_START,
            "Generating sections...",
            sections_completed=0,
            total_sections=total,
        )

        for start in range(0, total, batch_size):
            batch = sections[start : start + batch_size]
            # gather 保持入参顺序，结果按大纲位置而非完成先后排列
            batch_results = await asyncio.gather(
                *(
                    self._generate_section(ctx, sec, start + offset, total)
                    for offset, sec in enumerate(batch)
                )
            )
            results.extend(batch_results)

            done = len(results)
            await self._reporter.emit(
                "sections",
                C.PROGRESS_SECTIONS_START + round(done / total * C.PROGRESS_SECTIONS_SPAN),
                f"Generated {done}/{total} sections",
                sections_completed=done,
                total_sections=total,
            )
            if start + batch_size < total and self._opt.batch_delay_s > 0:
                await self._sleep(self._opt.batch_delay_s)

        return results

    async def _generate_section(
        self,
        ctx: GenerationContext,
        section: SectionSpec,
        index: int,
        total: int,
    ) -> SectionResult:
        try:
            raw = await self._call(
                ctx,
                system_prompt=HTML_WRITER_SYSTEM,
                user_prompt=build_section_prompt(section, index=index, total=total, topic=ctx.topic),
                temperature=C.SECTION_TEMPERATURE,
                max_tokens=C.SECTION_MAX_TOKENS,
                timeout_ms=C.SECTION_TIMEOUT_MS,
            )
        except Exception as e:
            # 单章节失败不影响同批与后续章节
            log.warning(
                "staged.section.failed",
                extra=log_extra(index=index, heading=section.heading[:60], error=str(e)),
            )
            return SectionResult(index=index, success=False, error=str(e))

        html = strip_code_fences(raw)
        words = count_words(html)
        if words < self._opt.min_section_words:
            log.warning(
                "staged.section.too_short",
                extra=log_extra(index=index, heading=section.heading[:60], words=words),
            )
            return SectionResult(index=index, success=False, error=f"section too short: {words} words")

        return SectionResult(index=index, success=True, html=html, word_count=words)

    async def _generate_faq(
        self,
        ctx: GenerationContext,
        topics: Sequence[str],
        stats: PipelineStats,
    ) -> str:
        if not topics:
            return ""
        try:
            raw = await self._call(
                ctx,
                system_prompt=HTML_WRITER_SYSTEM,
                user_prompt=build_faq_prompt(ctx.topic, topics),
                temperature=C.FAQ_TEMPERATURE,
                max_tokens=C.FAQ_MAX_TOKENS,
                timeout_ms=C.SECTION_TIMEOUT_MS,
            )
            html = strip_code_fences(raw)
            if html:
                return html
            raise ValueError("empty FAQ response")
        except Exception as e:
            log.warning("staged.faq.fallback", extra=log_extra(error=str(e)))
            stats.faq_fallback = True
            stats.phase_errors["faq"] = str(e)
            return faq_accordion([FAQ(question=q, answer=faq_answer_placeholder(q)) for q in topics])

    async def _generate_intro(
        self,
        ctx: GenerationContext,
        outline: ContentOutline,
        stats: PipelineStats,
    ) -> str:
        try:
            raw = await self._call(
                ctx,
                system_prompt=HTML_WRITER_SYSTEM,
                user_prompt=build_intro_prompt(ctx.topic, outline.title),
                temperature=C.MERGE_TEMPERATURE,
                max_tokens=C.MERGE_MAX_TOKENS,
                timeout_ms=C.SECTION_TIMEOUT_MS,
            )
            html = strip_code_fences(raw)
            if html:
                return html
            raise ValueError("empty introduction")
        except Exception as e:
            log.warning("staged.intro.fallback", extra=log_extra(error=str(e)))
            stats.intro_fallback = True
            stats.phase_errors["intro"] = str(e)
            return intro_placeholder(ctx.topic)

    async def _generate_conclusion(self, ctx: GenerationContext, stats: PipelineStats) -> str:
        try:
            raw = await self._call(
                ctx,
                system_prompt=HTML_WRITER_SYSTEM,
                user_prompt=build_conclusion_prompt(ctx.topic),
                temperature=C.MERGE_TEMPERATURE,
                max_tokens=C.MERGE_MAX_TOKENS,
                timeout_ms=C.SECTION_TIMEOUT_MS,
            )
            html = strip_code_fences(raw)
            if html:
                return html
            raise ValueError("empty conclusion")
        except Exception as e:
            log.warning("staged.conclusion.fallback", extra=log_extra(error=str(e)))
            stats.conclusion_fallback = True
            stats.phase_errors["conclusion"] = str(e)
            return conclusion_placeholder(ctx.topic)

    async def _find_video(self, ctx: GenerationContext, stats: PipelineStats) -> YouTubeVideo | None:
        assert self._enrichment is not None
        try:
            return await self._enrichment.find_video(ctx.topic)
        except Exception as e:
            log.warning("staged.video.failed", extra=log_extra(error=str(e)))
            stats.phase_errors["video"] = str(e)
            return None

    async def _find_references(self, ctx: GenerationContext, stats: PipelineStats) -> list[Reference]:
        assert self._enrichment is not None
        try:
            return list(await self._enrichment.find_references(ctx.topic))
        except Exception as e:
            log.warning("staged.references.failed", extra=log_extra(error=str(e)))
            stats.phase_errors["references"] = str(e)
            return []

"""长文生成 API Pydantic 模型定义。"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from src.application.services.content_generation.types import (
    GenerationContext,
    GenerationResult,
    ProgressEvent,
)

# 单次生成提示词只使用重要度达到该阈值的 NLP 词
CRITICAL_TERM_IMPORTANCE = 80


class EntityGaps(BaseModel):
    """竞品分析得到的实体缺口与 PAA 问题。"""

    missing_entities: list[str] = Field(default_factory=list)
    paa_questions: list[str] = Field(default_factory=list)


class NlpTerm(BaseModel):
    term: str
    importance: int = Field(default=0, ge=0, le=100)


class InternalLink(BaseModel):
    title: str
    url: str


class GenerateRequest(BaseModel):
    """长文生成请求。"""

    topic: str = Field(..., min_length=1, max_length=500, description="文章主题")
    mode: Literal["staged", "single-shot"] = Field(
        default="staged",
        description="生成模式：staged 分阶段（失败回退单次），single-shot 直接单次生成",
    )
    provider: str | None = Field(default=None, description="Provider key；为空时使用配置默认值")
    model: str | None = Field(default=None, description="模型名；为空时使用 Provider 默认模型")
    api_keys: dict[str, str] = Field(
        default_factory=dict,
        description="按 Provider key 提供的凭据（可含 serper），未提供时回退到环境配置",
    )
    entity_gaps: EntityGaps | None = None
    nlp_terms: list[NlpTerm] = Field(default_factory=list)
    internal_links: list[InternalLink] = Field(default_factory=list)

    def to_context(self, default_provider: str) -> GenerationContext:
        gaps = self.entity_gaps or EntityGaps()
        return GenerationContext(
            topic=self.topic.strip(),
            provider=(self.provider or default_provider).strip(),
            model=self.model or None,
            entities=tuple(e for e in gaps.missing_entities if e.strip()),
            paa_questions=tuple(q for q in gaps.paa_questions if q.strip()),
            critical_terms=tuple(
                t.term for t in self.nlp_terms if t.importance >= CRITICAL_TERM_IMPORTANCE
            ),
            internal_links=tuple((link.title, link.url) for link in self.internal_links),
        )


class FAQResponse(BaseModel):
    question: str
    answer: str


class ContentContractResponse(BaseModel):
    title: str
    meta_description: str
    slug: str
    excerpt: str
    html_content: str
    faqs: list[FAQResponse] = Field(default_factory=list)
    word_count: int


class YouTubeVideoResponse(BaseModel):
    video_id: str
    title: str
    channel: str
    views: int
    thumbnail_url: str
    embed_url: str
    relevance_score: int
    published_at: str | None = None


class ReferenceResponse(BaseModel):
    url: str
    title: str
    source: str
    authority_score: int
    year: str | None = None
    snippet: str | None = None


class ProgressEventResponse(BaseModel):
    phase: str
    percent: int
    message: str
    sections_completed: int | None = None
    total_sections: int | None = None


class GenerateResponse(BaseModel):
    """长文生成响应。"""

    contract: ContentContractResponse
    method: Literal["staged", "single-shot"]
    attempts: int
    total_time_ms: float
    youtube_video: YouTubeVideoResponse | None = None
    references: list[ReferenceResponse] = Field(default_factory=list)
    progress: list[ProgressEventResponse] = Field(default_factory=list)
    stats: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(
        cls,
        result: GenerationResult,
        progress: list[ProgressEvent] | None = None,
    ) -> "GenerateResponse":
        c = result.contract
        video = result.youtube_video
        return cls(
            contract=ContentContractResponse(
                title=c.title,
                meta_description=c.meta_description,
                slug=c.slug,
                excerpt=c.excerpt,
                html_content=c.html_content,
                faqs=[FAQResponse(question=f.question, answer=f.answer) for f in c.faqs],
                word_count=c.word_count,
            ),
            method=result.method,
            attempts=result.attempts,
            total_time_ms=round(result.total_time_ms, 2),
            youtube_video=(
                YouTubeVideoResponse(
                    video_id=video.video_id,
                    title=video.title,
                    channel=video.channel,
                    views=video.views,
                    thumbnail_url=video.thumbnail_url,
                    embed_url=video.embed_url,
                    relevance_score=video.relevance_score,
                    published_at=video.published_at,
                )
                if video is not None
                else None
            ),
            references=[
                ReferenceResponse(
                    url=r.url,
                    title=r.title,
                    source=r.source,
                    authority_score=r.authority_score,
                    year=r.year,
                    snippet=r.snippet,
                )
                for r in result.references
            ],
            progress=[ProgressEventResponse(**e.to_dict()) for e in (progress or [])],
            stats=dict(result.stats),
        )

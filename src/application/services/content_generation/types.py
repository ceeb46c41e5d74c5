"""长文生成类型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

GenerationMethod = Literal["staged", "single-shot"]


@dataclass(frozen=True)
class SubsectionSpec:
    heading: str
    key_points: tuple[str, ...] = ()


@dataclass(frozen=True)
class SectionSpec:
    """大纲中的一个 H2 章节。"""

    heading: str
    key_points: tuple[str, ...] = ()
    subsections: tuple[SubsectionSpec, ...] = ()
    visual_components: tuple[str, ...] = ()


@dataclass(frozen=True)
class ContentOutline:
    title: str
    meta_description: str
    slug: str
    sections: tuple[SectionSpec, ...]
    faq_topics: tuple[str, ...] = ()
    key_takeaways: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentOutline":
        """从模型输出的 JSON 对象构建大纲（容忍缺失字段与类型偏差）。"""

        def _strs(v: Any) -> tuple[str, ...]:
            if not isinstance(v, list):
                return ()
            return tuple(str(x).strip() for x in v if str(x or "").strip())

        sections: list[SectionSpec] = []
        for raw in data.get("sections") or []:
            if not isinstance(raw, dict):
                continue
            heading = str(raw.get("heading") or "").strip()
            if not heading:
                continue
            subs = tuple(
                SubsectionSpec(
                    heading=str(s.get("heading") or "").strip(),
                    key_points=_strs(s.get("key_points")),
                )
                for s in (raw.get("subsections") or [])
                if isinstance(s, dict) and str(s.get("heading") or "").strip()
            )
            sections.append(
                SectionSpec(
                    heading=heading,
                    key_points=_strs(raw.get("key_points")),
                    subsections=subs,
                    visual_components=_strs(raw.get("visual_components")),
                )
            )

        return cls(
            title=str(data.get("title") or "").strip(),
            meta_description=str(data.get("meta_description") or "").strip(),
            slug=str(data.get("slug") or "").strip(),
            sections=tuple(sections),
            faq_topics=_strs(data.get("faq_topics")),
            key_takeaways=_strs(data.get("key_takeaways")),
        )


@dataclass(frozen=True)
class SectionResult:
    """单个章节的生成结果；失败时 html 为空并携带 error。"""

    index: int
    success: bool
    html: str = ""
    word_count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class ParsedResponse:
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    is_truncated: bool = False
    strategy: str | None = None


@dataclass
class FAQ:
    question: str
    answer: str = ""


@dataclass
class ContentContract:
    title: str
    meta_description: str
    slug: str
    excerpt: str
    html_content: str
    faqs: list[FAQ] = field(default_factory=list)
    word_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentContract":
        faqs: list[FAQ] = []
        for f in data.get("faqs") or []:
            if isinstance(f, dict) and str(f.get("question") or "").strip():
                faqs.append(FAQ(question=str(f["question"]).strip(), answer=str(f.get("answer") or "")))
        try:
            wc = int(data.get("word_count") or 0)
        except (TypeError, ValueError):
            wc = 0
        return cls(
            title=str(data.get("title") or ""),
            meta_description=str(data.get("meta_description") or ""),
            slug=str(data.get("slug") or ""),
            excerpt=str(data.get("excerpt") or ""),
            html_content=str(data.get("html_content") or ""),
            faqs=faqs,
            word_count=wc,
        )


@dataclass(frozen=True)
class YouTubeVideo:
    video_id: str
    title: str
    channel: str
    views: int
    thumbnail_url: str
    embed_url: str
    relevance_score: int
    channel_url: str | None = None
    duration: str | None = None
    published_at: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class VideoSearchResult:
    video: YouTubeVideo | None
    alternatives: tuple[YouTubeVideo, ...]
    search_query: str
    search_time_ms: float


@dataclass(frozen=True)
class Reference:
    url: str
    title: str
    source: str
    authority_score: int
    snippet: str | None = None
    year: str | None = None
    author: str | None = None
    favicon: str | None = None


@dataclass(frozen=True)
class ProgressEvent:
    phase: str
    percent: int
    message: str
    sections_completed: int | None = None
    total_sections: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"phase": self.phase, "percent": self.percent, "message": self.message}
        if self.sections_completed is not None:
            out["sections_completed"] = self.sections_completed
        if self.total_sections is not None:
            out["total_sections"] = self.total_sections
        return out


@dataclass
class GenerationResult:
    contract: ContentContract
    method: GenerationMethod
    attempts: int
    total_time_ms: float
    youtube_video: YouTubeVideo | None = None
    references: list[Reference] = field(default_factory=list)
    section_results: list[SectionResult] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerationContext:
    """单次生成任务的输入（流水线只读）。"""

    topic: str
    provider: str
    model: str | None = None
    entities: tuple[str, ...] = ()
    paa_questions: tuple[str, ...] = ()
    critical_terms: tuple[str, ...] = ()
    internal_links: tuple[tuple[str, str], ...] = ()

"""长文 HTML 组装。

目标：
- 提供占位块、要点框、FAQ 折叠、参考文献、视频嵌入等组装片段
- 按固定顺序拼接最终正文

说明：
- 这是纯渲染层：不做检索、不做 LLM 调用
- 正文由站点模板渲染 <h1>，这里只输出 <h2> 及以下层级
"""

from __future__ import annotations

import html as _html
import uuid
from typing import Sequence
from urllib.parse import urlsplit

from src.application.services.content_generation.types import FAQ, Reference, YouTubeVideo


def section_placeholder(heading: str) -> str:
    """章节生成失败时的占位块：仅保留原标题。"""
    return f"<h2>{_html.escape(heading)}</h2>"


def intro_placeholder(topic: str) -> str:
    return (
        f"<p>{_html.escape(topic)} is a topic that deserves careful attention. "
        "In this guide, you'll learn everything you need to know.</p>"
    )


def conclusion_placeholder(topic: str) -> str:
    return (
        "<h2>Conclusion</h2>"
        f"<p>Now you have all the tools you need to succeed with {_html.escape(topic)}. "
        "Take action today!</p>"
    )


def faq_answer_placeholder(question: str) -> str:
    return f"[Answer for: {question}]"


def key_takeaways(takeaways: Sequence[str]) -> str:
    items = [t for t in takeaways if t]
    if not items:
        return ""
    lis = "\n".join(
        f"    <li><span class='lf-num'>{i}</span><span>{_html.escape(t)}</span></li>"
        for i, t in enumerate(items, start=1)
    )
    return "\n".join(
        [
            "<div class='lf-box lf-takeaways'>",
            "  <h3>Key Takeaways</h3>",
            "  <ul>",
            lis,
            "  </ul>",
            "</div>",
        ]
    )


def faq_accordion(faqs: Sequence[FAQ]) -> str:
    """纯 CSS 折叠 FAQ，带 schema.org FAQPage 标记；答案允许内联 HTML。"""
    items = [f for f in faqs if f.question]
    if not items:
        return ""
    section_id = f"faq-{uuid.uuid4().hex[:8]}"
    blocks: list[str] = []
    for i, faq in enumerate(items):
        item_id = f"{section_id}-{i}"
        blocks.append(
            "\n".join(
                [
                    "  <div class='lf-faq-item' itemscope itemprop='mainEntity' itemtype='https://schema.org/Question'>",
                    f"    <input type='checkbox' id='{item_id}' />",
                    f"    <label for='{item_id}'><span itemprop='name'>{_html.escape(faq.question)}</span></label>",
                    "    <div itemscope itemprop='acceptedAnswer' itemtype='https://schema.org/Answer'>",
                    f"      <div itemprop='text'>{faq.answer}</div>",
                    "    </div>",
                    "  </div>",
                ]
            )
        )
    return "\n".join(
        [
            f"<section id='{section_id}' class='lf-faq' itemscope itemtype='https://schema.org/FAQPage'>",
            "  <h2>Frequently Asked Questions</h2>",
            f"  <p class='lf-muted'>{len(items)} questions answered</p>",
            *blocks,
            "</section>",
        ]
    )


def _domain(url: str) -> str:
    host = urlsplit(url).hostname or ""
    return host[4:] if host.startswith("www.") else host


def references_section(references: Sequence[Reference]) -> str:
    valid = [r for r in references if r.url and r.title]
    if not valid:
        return ""
    lis: list[str] = []
    for ref in valid:
        source = _html.escape(ref.source or _domain(ref.url))
        year = f" ({_html.escape(ref.year)})" if ref.year else ""
        author = f"{_html.escape(ref.author)}. " if ref.author else ""
        snippet = ""
        if ref.snippet:
            cut = ref.snippet[:150] + ("..." if len(ref.snippet) > 150 else "")
            snippet = f"<p class='lf-muted'>{_html.escape(cut)}</p>"
        lis.append(
            "    <li>"
            f"<span class='lf-source'>{source}{year}</span> "
            f"<a href='{_html.escape(ref.url)}' target='_blank' rel='noopener noreferrer nofollow'>"
            f"{author}{_html.escape(ref.title)}</a>{snippet}</li>"
        )
    return "\n".join(
        [
            "<section class='lf-box lf-references'>",
            "  <h2>References &amp; Sources</h2>",
            f"  <p class='lf-muted'>{len(valid)} authoritative sources cited</p>",
            "  <ol>",
            *lis,
            "  </ol>",
            "</section>",
        ]
    )


def _format_views(views: int) -> str:
    if views >= 1_000_000:
        return f"{views / 1_000_000:.1f}M"
    if views >= 1_000:
        return f"{views / 1_000:.1f}K"
    return str(views)


def youtube_embed(video: YouTubeVideo) -> str:
    meta = [_html.escape(video.channel), f"{_format_views(video.views)} views"]
    if video.duration:
        meta.append(_html.escape(video.duration))
    return "\n".join(
        [
            "<div class='lf-video'>",
            f"  <div class='lf-video-title'>{_html.escape(video.title)}</div>",
            f"  <div class='lf-muted'>{' &bull; '.join(meta)}</div>",
            "  <div class='lf-video-frame'>",
            f"    <iframe src='{_html.escape(video.embed_url)}?rel=0&amp;modestbranding=1'"
            f" title='{_html.escape(video.title)}' loading='lazy' allowfullscreen></iframe>",
            "  </div>",
            "</div>",
        ]
    )


class ArticleHtmlRenderer:
    """最终正文组装器（轻量、无依赖）。"""

    def render(
        self,
        *,
        intro_html: str,
        section_blocks: Sequence[str],
        takeaways: Sequence[str] = (),
        faq_html: str = "",
        conclusion_html: str = "",
        video: YouTubeVideo | None = None,
        references: Sequence[Reference] = (),
    ) -> str:
        parts = [
            "<style>",
            self._get_default_styles(),
            "</style>",
            "<div class='lf-content'>",
            intro_html,
        ]
        if video is not None:
            parts.append(youtube_embed(video))
        parts.extend(section_blocks)
        parts.append(key_takeaways(takeaways))
        parts.append(faq_html)
        if references:
            parts.append(references_section(references))
        parts.append(conclusion_html)
        parts.append("</div>")
        return "\n\n".join(p for p in parts if p)

    def _get_default_styles(self) -> str:
        return """
.lf-content { line-height: 1.75; }
.lf-box { border: 1px solid rgba(128,128,128,0.15); border-radius: 16px; padding: 24px; margin: 40px 0; }
.lf-takeaways ul { list-style: none; padding: 0; margin: 0; }
.lf-takeaways li { display: flex; gap: 12px; padding: 10px 0; }
.lf-num { min-width: 26px; font-weight: 700; color: #6366f1; }
.lf-muted { font-size: 13px; opacity: 0.7; }
.lf-faq { border: 1px solid rgba(128,128,128,0.15); border-radius: 16px; margin: 40px 0; }
.lf-faq input { position: absolute; opacity: 0; pointer-events: none; }
.lf-faq label { display: block; padding: 16px 20px; cursor: pointer; font-weight: 600; }
.lf-faq input + label + div { max-height: 0; overflow: hidden; padding: 0 20px; }
.lf-faq input:checked + label + div { max-height: 1000px; padding-bottom: 16px; }
.lf-source { font-size: 11px; text-transform: uppercase; opacity: 0.6; }
.lf-video { margin: 40px 0; }
.lf-video-frame { position: relative; padding-bottom: 56.25%; height: 0; }
.lf-video-frame iframe { position: absolute; inset: 0; width: 100%; height: 100%; border: none; }
""".strip()

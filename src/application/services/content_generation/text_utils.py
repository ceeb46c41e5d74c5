"""长文生成文本工具。

目标：
- 统一处理模型输出中可能出现的 think/analysis 痕迹与代码围栏
- 基于 HTML 正文的字数统计
- 移除 <h1>（站点模板负责渲染标题）
"""

from __future__ import annotations

import re

_THINK_BLOCK_RE = re.compile(r"(?is)<think>.*?</think>")
_THINK_FENCE_RE = re.compile(r"(?is)```(?:thinking|thought|analysis)[\s\S]*?```")

_LEADING_FENCE_RE = re.compile(r"^```(?:html|json)?\s*", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\s*```$")

_TAG_RE = re.compile(r"<[^>]+>")
_STYLE_SCRIPT_RE = re.compile(r"(?is)<(style|script)\b[^>]*>.*?</\1>")
_ENTITY_RE = re.compile(r"&[a-zA-Z#0-9]+;")

_H1_BLOCK_RE = re.compile(r"(?is)<h1[^>]*>.*?</h1>")
_H1_OPEN_RE = re.compile(r"(?i)<h1\b[^>]*>")
_H1_CLOSE_RE = re.compile(r"(?i)</h1>")


def strip_model_think(text: str) -> str:
    """移除模型输出中的“思考/推理”痕迹，保证最终产物为纯正文。"""
    if not text:
        return ""
    s = _THINK_BLOCK_RE.sub("", str(text))
    s = _THINK_FENCE_RE.sub("", s)
    return s.strip()


def strip_code_fences(text: str) -> str:
    """去掉包裹整段输出的 ```html / ``` 围栏。"""
    s = strip_model_think(text)
    s = _LEADING_FENCE_RE.sub("", s)
    s = _TRAILING_FENCE_RE.sub("", s)
    return s.strip()


def html_to_text(html: str) -> str:
    s = _STYLE_SCRIPT_RE.sub(" ", html or "")
    s = _TAG_RE.sub(" ", s)
    s = _ENTITY_RE.sub(" ", s)
    return s


def count_words(text: str) -> int:
    """统计正文词数（忽略标签、样式与实体）。"""
    if not text:
        return 0
    return len([w for w in html_to_text(text).split() if w])


def remove_h1_tags(html: str) -> str:
    if not html:
        return html or ""
    if not _H1_OPEN_RE.search(html):
        return html
    cleaned = _H1_BLOCK_RE.sub("", html)
    # 未闭合或嵌套残留的标签
    cleaned = _H1_OPEN_RE.sub("", cleaned)
    cleaned = _H1_CLOSE_RE.sub("", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


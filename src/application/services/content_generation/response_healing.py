"""模型结构化输出的完整性校验与 JSON 修复。

修复策略按“信任模型结构 -> 最小化重建”的顺序排列，逐个尝试，首个成功即返回：

1. direct            直接解析
2. fenced_block      提取 ``` 代码围栏内容后解析
3. boundary          截取第一个 `{` 到最后一个 `}` 后解析
4. syntax_repair     去除尾逗号、转义字符串内裸换行后解析
5. close_truncated   按嵌套顺序补齐未闭合的括号（标记 is_truncated）
6. field_extraction  正则逐字段提取正文/标题/描述（标记 is_truncated）

每个策略都是纯函数，可单独导入测试。
"""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Sequence

from src.application.services.content_generation.text_utils import count_words
from src.application.services.content_generation.types import ParsedResponse
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

DOCUMENT_FIELDS = ("html_content", "title", "meta_description")
DEFAULT_REQUIRED_FIELDS = ("html_content",)

_FENCE_RE = re.compile(r"```(?:[a-zA-Z0-9_-]+)?\s*([\s\S]*?)```")
_PREVIEW_CHARS = 150

_CLOSERS = {"{": "}", "[": "]"}


class Completeness(str, enum.Enum):
    COMPLETE = "complete"
    TRUNCATED_STRUCTURE = "truncated_structure"
    TRUNCATED_CONTENT = "truncated_content"
    EMPTY = "empty"


@dataclass(frozen=True)
class CompletenessReport:
    verdict: Completeness
    details: str

    @property
    def is_complete(self) -> bool:
        return self.verdict is Completeness.COMPLETE

    @property
    def is_truncated(self) -> bool:
        return self.verdict in (Completeness.TRUNCATED_STRUCTURE, Completeness.TRUNCATED_CONTENT)


def validate_response_completeness(
    text: str,
    required_fields: Sequence[str] = DOCUMENT_FIELDS,
) -> CompletenessReport:
    """检查括号配平、必需字段是否出现、结尾是否为 `}`。"""
    s = (text or "").strip()
    if not s:
        return CompletenessReport(Completeness.EMPTY, "empty response")

    open_braces = s.count("{") - s.count("}")
    open_brackets = s.count("[") - s.count("]")
    if open_braces or open_brackets:
        # 多出的闭合符同样视为结构损坏
        return CompletenessReport(
            Completeness.TRUNCATED_STRUCTURE,
            f"unbalanced delimiters: braces {open_braces:+d}, brackets {open_brackets:+d}",
        )

    missing = [f for f in required_fields if f'"{f}"' not in s]
    if missing:
        return CompletenessReport(Completeness.TRUNCATED_CONTENT, f"missing fields: {', '.join(missing)}")

    if not s.endswith("}"):
        return CompletenessReport(Completeness.TRUNCATED_STRUCTURE, "response does not end with }")

    return CompletenessReport(Completeness.COMPLETE, "response appears complete")


# ============== 工具函数 ==============


def _accept(obj: Any, required: Sequence[str]) -> dict[str, Any] | None:
    if not isinstance(obj, dict):
        return None
    for f in required:
        if not obj.get(f):
            return None
    return obj


def _loads(s: str, required: Sequence[str]) -> dict[str, Any] | None:
    try:
        obj = json.loads(s)
    except ValueError:
        return None
    return _accept(obj, required)


def _slice_object(s: str) -> str:
    i = s.find("{")
    if i < 0:
        return s
    return s[i:]


def remove_trailing_commas(s: str) -> str:
    """去掉紧跟 `}` 或 `]` 的尾逗号；字符串内的逗号原样保留。"""
    out: list[str] = []
    in_str = False
    esc = False
    n = len(s)
    for i, ch in enumerate(s):
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
        elif ch == '"':
            in_str = True
        elif ch == ",":
            j = i + 1
            while j < n and s[j].isspace():
                j += 1
            if j < n and s[j] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def escape_newlines_in_strings(s: str) -> str:
    """转义 JSON 字符串内的裸换行（模型常见输出问题）。"""
    out: list[str] = []
    in_str = False
    esc = False
    for ch in s:
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            elif ch == "\n":
                out.append("\\n")
                continue
            elif ch == "\r":
                out.append("\\r")
                continue
        elif ch == '"':
            in_str = True
        out.append(ch)
    return "".join(out)


def unclosed_delimiters(s: str) -> tuple[list[str], bool]:
    """返回 (未闭合的开括号栈, 是否停在字符串内部)；忽略字符串中的括号。"""
    stack: list[str] = []
    in_str = False
    esc = False
    for ch in s:
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]") and stack and _CLOSERS[stack[-1]] == ch:
            stack.pop()
    return stack, in_str


def close_truncated_json(s: str) -> str:
    """按嵌套逆序补齐闭合符；先闭合未结束的字符串。"""
    stack, in_str = unclosed_delimiters(s)
    out = s
    if in_str:
        if out.endswith("\\"):
            out = out[:-1]
        out += '"'
    out = out.rstrip()
    if out.endswith(","):
        out = out[:-1]
    elif out.endswith(":"):
        out += "null"
    return out + "".join(_CLOSERS[c] for c in reversed(stack))


def _unescape_json_string(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw


def _extract_field(text: str, name: str) -> str | None:
    pattern = re.compile(rf'"{re.escape(name)}"\s*:\s*"((?:[^"\\]|\\.)*)"')
    m = pattern.search(text)
    if not m:
        return None
    return _unescape_json_string(m.group(1))


# ============== 策略 ==============

HealingStrategy = Callable[[str, Sequence[str]], ParsedResponse | None]


def parse_direct(text: str, required: Sequence[str]) -> ParsedResponse | None:
    data = _loads(text, required)
    return ParsedResponse(success=True, data=data) if data is not None else None


def parse_fenced_block(text: str, required: Sequence[str]) -> ParsedResponse | None:
    m = _FENCE_RE.search(text)
    if not m:
        return None
    data = _loads(m.group(1).strip(), required)
    return ParsedResponse(success=True, data=data) if data is not None else None


def parse_boundary(text: str, required: Sequence[str]) -> ParsedResponse | None:
    first = text.find("{")
    last = text.rfind("}")
    if first < 0 or last <= first:
        return None
    data = _loads(text[first : last + 1], required)
    return ParsedResponse(success=True, data=data) if data is not None else None


def parse_syntax_repair(text: str, required: Sequence[str]) -> ParsedResponse | None:
    candidate = _slice_object(text)
    last = candidate.rfind("}")
    if last >= 0:
        candidate = candidate[: last + 1]
    fixed = remove_trailing_commas(escape_newlines_in_strings(candidate))
    data = _loads(fixed, required)
    return ParsedResponse(success=True, data=data) if data is not None else None


def parse_close_truncated(text: str, required: Sequence[str]) -> ParsedResponse | None:
    candidate = _slice_object(text)
    if not candidate.startswith("{"):
        return None
    stack, in_str = unclosed_delimiters(candidate)
    if not stack and not in_str:
        return None
    closed = remove_trailing_commas(close_truncated_json(escape_newlines_in_strings(candidate)))
    data = _loads(closed, required)
    return ParsedResponse(success=True, data=data, is_truncated=True) if data is not None else None


def parse_field_extraction(text: str, required: Sequence[str]) -> ParsedResponse | None:
    # 仅适用于文档类输出（正文/标题/描述）
    if not set(required) <= set(DOCUMENT_FIELDS):
        return None
    html_content = _extract_field(text, "html_content")
    title = _extract_field(text, "title")
    if not html_content or not title:
        return None
    data = {
        "html_content": html_content,
        "title": title,
        "meta_description": _extract_field(text, "meta_description") or "",
        "slug": "",
        "excerpt": "",
        "faqs": [],
        "word_count": count_words(html_content),
    }
    return ParsedResponse(success=True, data=data, is_truncated=True)


STRATEGIES: tuple[tuple[str, HealingStrategy], ...] = (
    ("direct", parse_direct),
    ("fenced_block", parse_fenced_block),
    ("boundary", parse_boundary),
    ("syntax_repair", parse_syntax_repair),
    ("close_truncated", parse_close_truncated),
    ("field_extraction", parse_field_extraction),
)


def heal_json(
    raw_text: str,
    required_fields: Sequence[str] = DEFAULT_REQUIRED_FIELDS,
    *,
    strategies: Sequence[tuple[str, HealingStrategy]] = STRATEGIES,
) -> ParsedResponse:
    """按顺序尝试修复策略；全部失败时返回带原文预览的失败结果。"""
    text = (raw_text or "").strip()
    if not text:
        return ParsedResponse(success=False, error="empty response text")

    required = tuple(required_fields)
    for name, strategy in strategies:
        result = strategy(text, required)
        if result is not None:
            if name != "direct":
                log.info(
                    "healing.recovered",
                    extra=log_extra(strategy=name, truncated=result.is_truncated),
                )
            return replace(result, strategy=name)

    report = validate_response_completeness(text)
    preview = text[:_PREVIEW_CHARS]
    log.warning(
        "healing.failed",
        extra=log_extra(verdict=report.verdict.value, chars=len(text)),
    )
    return ParsedResponse(
        success=False,
        error=f"JSON parse failed. Preview: {preview}...",
        is_truncated=report.is_truncated,
    )

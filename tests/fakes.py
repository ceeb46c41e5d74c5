"""测试用的脚本化网关与内容构造工具。"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

OUTLINE_MARK = "Create a detailed content outline"
SECTION_MARK = "Write section "
FAQ_MARK = "Write a comprehensive FAQ section"
INTRO_MARK = "Write an engaging introduction"
CONCLUSION_MARK = "Write a strong conclusion"
FULL_MARK = "word blog post about"


def paragraph_html(words: int, word: str = "lorem") -> str:
    return f"<p>{' '.join([word] * words)}</p>"


def section_html(heading: str, words: int = 150) -> str:
    return f"<h2>{heading}</h2>\n{paragraph_html(words)}"


def article_json(words: int, *, title: str = "A Title", truncate: bool = False) -> str:
    # 每段 100 词，保证 html 字符数远大于词数
    paras = [paragraph_html(100) for _ in range(words // 100)]
    if words % 100:
        paras.append(paragraph_html(words % 100))
    doc = {
        "title": title,
        "meta_description": "meta",
        "slug": "a-title",
        "excerpt": "excerpt",
        "html_content": "<h1>Drop me</h1>" + "".join(paras),
        "faqs": [{"question": "Q1?", "answer": "A1."}],
        "word_count": 99999,
    }
    text = json.dumps(doc)
    if truncate:
        # 模拟输出在 faqs 数组中途被截断
        text = text[: text.index('"answer"')] + '"answer": "A1'
    return text


def outline_json(n_sections: int, *, faq_topics: int = 3, takeaways: int = 2) -> str:
    return json.dumps(
        {
            "title": "Outline Title",
            "meta_description": "outline meta",
            "slug": "outline-title",
            "sections": [
                {
                    "heading": f"Heading {i + 1}",
                    "key_points": [f"point {i + 1}a", f"point {i + 1}b"],
                    "subsections": [{"heading": f"Sub {i + 1}", "key_points": ["d"]}],
                    "visual_components": ["pro_tip"],
                }
                for i in range(n_sections)
            ],
            "faq_topics": [f"Question {i + 1}?" for i in range(faq_topics)],
            "key_takeaways": [f"Takeaway {i + 1}" for i in range(takeaways)],
        }
    )


def section_number(user_prompt: str) -> int:
    # "Write section {n} of {total} ..."
    return int(user_prompt[len(SECTION_MARK):].split(" ", 1)[0])


Handler = Callable[[str, dict[str, Any]], Any]


class ScriptedGateway:
    """按用户提示词类型分发的假网关；handler 返回字符串或抛出异常。"""

    def __init__(self, handlers: dict[str, Handler], *, delay_s: float = 0.0):
        self.handlers = handlers
        self.delay_s = delay_s
        self.calls: list[dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight: dict[str, int] = {}

    @staticmethod
    def kind_of(user_prompt: str) -> str:
        for kind, mark in (
            ("outline", OUTLINE_MARK),
            ("section", SECTION_MARK),
            ("faq", FAQ_MARK),
            ("intro", INTRO_MARK),
            ("conclusion", CONCLUSION_MARK),
            ("full", FULL_MARK),
        ):
            if mark in user_prompt:
                return kind
        raise AssertionError(f"unexpected prompt: {user_prompt[:80]}")

    def calls_of(self, kind: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["kind"] == kind]

    async def call(
        self,
        provider: str,
        model: str | None,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 8000,
        timeout_ms: int,
    ) -> str:
        kind = self.kind_of(user_prompt)
        call = {
            "kind": kind,
            "provider": provider,
            "model": model,
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout_ms": timeout_ms,
        }
        self.calls.append(call)
        self.in_flight += 1
        self.max_in_flight[kind] = max(self.max_in_flight.get(kind, 0), self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            handler = self.handlers.get(kind)
            if handler is None:
                raise AssertionError(f"no handler for {kind}")
            result = handler(user_prompt, call)
            if isinstance(result, BaseException):
                raise result
            return result
        finally:
            self.in_flight -= 1


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

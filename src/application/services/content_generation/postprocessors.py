"""组装完成后的后处理。

- `finalize_contract`：移除 <h1>、按正文重算字数
- `apply_finalizers`：依次执行外部格式化/打分协作者（纯函数 `(contract, ctx) -> contract`）

后处理只在文档组装完成后执行，不会否决文档：单个 finalizer 出错时记录日志并保留上一版本。
"""

from __future__ import annotations

import copy
from dataclasses import replace
from typing import Callable, Sequence

from src.application.services.content_generation.text_utils import count_words, remove_h1_tags
from src.application.services.content_generation.types import ContentContract, GenerationContext
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

Finalizer = Callable[[ContentContract, GenerationContext], ContentContract]


def finalize_contract(contract: ContentContract) -> ContentContract:
    html = remove_h1_tags(contract.html_content)
    return replace(contract, html_content=html, word_count=count_words(html))


def apply_finalizers(
    contract: ContentContract,
    ctx: GenerationContext,
    finalizers: Sequence[Finalizer],
) -> ContentContract:
    out = contract
    applied = False
    for fn in finalizers:
        name = getattr(fn, "__name__", fn.__class__.__name__)
        try:
            # 只传深拷贝（含 faqs）：出错时保留上一版本
            result = fn(copy.deepcopy(out), ctx)
        except Exception:
            log.exception("finalizer.failed", extra=log_extra(finalizer=name))
            continue
        if isinstance(result, ContentContract):
            out = result
            applied = True
    if applied:
        out = replace(out, word_count=count_words(out.html_content))
    return out

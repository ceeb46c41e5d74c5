from __future__ import annotations

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager


request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)


def new_request_id() -> str:
    return uuid.uuid4().hex


def get_request_id() -> str | None:
    return request_id_var.get()


def set_request_id(request_id: str | None) -> None:
    request_id_var.set(request_id)


@contextmanager
def ensure_request_id() -> Iterator[str]:
    """保证当前上下文存在 request_id（脱离 HTTP 调用时为生成任务分配一个）。"""
    current = request_id_var.get()
    if current:
        yield current
        return
    token = request_id_var.set(new_request_id())
    try:
        yield request_id_var.get() or ""
    finally:
        request_id_var.reset(token)

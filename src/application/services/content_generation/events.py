"""生成进度事件流。

进度上报与控制流解耦：流水线只负责 `emit`，订阅者各自消费；
订阅者抛出的异常只记录日志，不影响生成。
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Union

from src.application.services.content_generation.types import ProgressEvent
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

ProgressListener = Callable[[ProgressEvent], Union[None, Awaitable[Any]]]


class ProgressReporter:
    def __init__(self, listeners: list[ProgressListener] | None = None):
        self._listeners: list[ProgressListener] = list(listeners or [])
        self._history: list[ProgressEvent] = []

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """注册订阅者，返回取消订阅函数。"""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def history(self) -> list[ProgressEvent]:
        return list(self._history)

    async def emit(
        self,
        phase: str,
        percent: int,
        message: str,
        *,
        sections_completed: int | None = None,
        total_sections: int | None = None,
    ) -> ProgressEvent:
        event = ProgressEvent(
            phase=phase,
            percent=max(0, min(100, int(percent))),
            message=message,
            sections_completed=sections_completed,
            total_sections=total_sections,
        )
        self._history.append(event)
        log.info("progress", extra=log_extra(**event.to_dict()))
        for listener in list(self._listeners):
            try:
                r = listener(event)
                if asyncio.iscoroutine(r):
                    await r
            except Exception:
                log.exception("progress.listener_failed", extra=log_extra(phase=phase))
        return event

"""长文生成错误定义。"""

from __future__ import annotations

from typing import Any

from src.shared.errors import AppError


class ContentGenerationError(AppError):
    """终止性生成错误（回退流程耗尽、任务超时等）。"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "content_generation_error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            code=code,
            details=details,
        )


class OutlineRejectedError(ContentGenerationError):
    """大纲不可用（解析失败或章节数不足），触发单次生成回退。"""

    def __init__(self, reason: str, *, sections: int = 0, preview: str | None = None):
        details: dict[str, Any] = {"sections": sections}
        if preview:
            details["preview"] = preview
        super().__init__(
            f"outline rejected: {reason}",
            status_code=502,
            code="outline_rejected",
            details=details,
        )

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class AppError(Exception):
    code: str
    message: str
    status_code: int = 400
    details: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        # 让 Exception.args 与 message 保持一致，便于 str()/repr() 与日志输出
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def error_response(
    *,
    code: str,
    message: str,
    request_id: str | None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
        }
    }
    if details is not None:
        payload["error"]["details"] = details
    return payload


ERROR_INTERNAL = "internal_error"
ERROR_VALIDATION = "validation_error"

from __future__ import annotations

import random
from typing import Callable

from src.shared.constants.generation import (
    BACKOFF_BASE_MS,
    BACKOFF_JITTER_MS,
    BACKOFF_MAX_MS,
)


def calculate_backoff(
    attempt: int,
    base_ms: float = BACKOFF_BASE_MS,
    *,
    max_ms: float = BACKOFF_MAX_MS,
    rng: Callable[[], float] = random.random,
) -> float:
    """指数退避（毫秒）：`base_ms * 2**attempt` + [0, 1000) 抖动，上限 `max_ms`。"""
    exponential = base_ms * (2 ** max(0, attempt))
    jitter = rng() * BACKOFF_JITTER_MS
    return min(exponential + jitter, max_ms)

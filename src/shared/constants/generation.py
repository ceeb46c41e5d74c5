"""生成编排常量：各阶段超时、字数目标、温度策略与熔断阈值。

单位约定：超时均为毫秒（与网关 `timeout_ms` 参数一致）。
"""

# ============== 超时（毫秒） ==============
OUTLINE_TIMEOUT_MS = 60_000
SECTION_TIMEOUT_MS = 90_000
SINGLE_SHOT_TIMEOUT_MS = 180_000
TOTAL_JOB_TIMEOUT_MS = 600_000
REFERENCE_DISCOVERY_TIMEOUT_MS = 30_000
YOUTUBE_SEARCH_TIMEOUT_MS = 20_000

# ============== 字数目标 ==============
INITIAL_WORD_TARGET = 3000
MIN_ACCEPTABLE_WORDS = 2500
# 多次尝试均未达标时，最佳结果至少需要的字数
DEGRADED_WORD_FLOOR = 2000
# 单次成功结果正文的最小字符数
MIN_HTML_CHARS = 5000
SECTION_WORD_TARGET = 300
MIN_SECTION_WORDS = 100

# ============== 大纲 ==============
MIN_OUTLINE_SECTIONS = 5
OUTLINE_TEMPERATURE = 0.7
OUTLINE_MAX_TOKENS = 4000

# ============== 分阶段调用参数 ==============
SECTION_TEMPERATURE = 0.75
SECTION_MAX_TOKENS = 3000
FAQ_TEMPERATURE = 0.7
FAQ_MAX_TOKENS = 4000
MERGE_TEMPERATURE = 0.7
MERGE_MAX_TOKENS = 2000

# ============== 单次生成（回退） ==============
MAX_ATTEMPTS = 3
BASE_TEMPERATURE = 0.7
TEMPERATURE_INCREMENT = 0.05
MAX_TEMPERATURE = 0.9
SINGLE_SHOT_MAX_TOKENS = 16000

# ============== 退避 ==============
BACKOFF_BASE_MS = 2000
BACKOFF_MAX_MS = 30_000
BACKOFF_JITTER_MS = 1000

# ============== 熔断 ==============
CIRCUIT_BREAKER_THRESHOLD = 3
CIRCUIT_BREAKER_RESET_MS = 60_000
CIRCUIT_BREAKER_HALF_OPEN_REQUESTS = 1

# ============== 进度百分比 ==============
PROGRESS_OUTLINE_START = 10
PROGRESS_OUTLINE_READY = 15
PROGRESS_VIDEO_SEARCH = 18
PROGRESS_SECTIONS_START = 20
PROGRESS_SECTIONS_SPAN = 35
PROGRESS_FAQ = 60
PROGRESS_REFERENCES = 65
PROGRESS_MERGE = 75
PROGRESS_POLISH = 90
PROGRESS_COMPLETE = 100

# ============== 辅助检索 ==============
VIDEO_MIN_VIEWS = 10_000
VIDEO_MAX_AGE_DAYS = 730
VIDEO_GOOD_SCORE = 60
REFERENCE_TARGET_COUNT = 10
REFERENCE_MIN_AUTHORITY = 60

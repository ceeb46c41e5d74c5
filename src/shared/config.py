from __future__ import annotations

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.shared.constants.generation import TOTAL_JOB_TIMEOUT_MS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LONGFORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_host: str = "127.0.0.1"
    api_port: int = 7901
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    log_level: str = "INFO"

    # ============== 生成编排参数 ==============
    # 章节并发批大小：受限于上游速率限制，按部署调整
    section_batch_size: int = 2
    section_batch_delay_s: float = 1.0
    # 整个生成任务的总超时（秒），在服务入口强制执行
    job_timeout_s: float = TOTAL_JOB_TIMEOUT_MS / 1000.0
    # httpx 连接超时；单次调用的总超时由网关按阶段控制
    http_connect_timeout_s: float = 10.0

    # 默认 Provider（请求未指定时使用）
    default_provider: str = "google"

    # ============== Provider 凭据（请求未携带时回退） ==============
    google_api_key: str = ""
    openrouter_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    groq_api_key: str = ""

    # ============== 辅助检索（Serper） ==============
    serper_api_key: str = ""
    serper_base_url: str = "https://google.serper.dev"
    serper_timeout_s: float = 20.0
    serper_max_retries: int = 2
    enrichment_enabled: bool = True

    def fallback_api_keys(self) -> dict[str, str]:
        """返回非空的环境级凭据，按 provider key 索引。"""
        keys = {
            "google": self.google_api_key,
            "openrouter": self.openrouter_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "groq": self.groq_api_key,
            "serper": self.serper_api_key,
        }
        return {k: v for k, v in keys.items() if v}


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        # 允许测试或部署环境显式禁用 .env
        if os.getenv("LONGFORM_DISABLE_DOTENV") == "1":
            _settings = Settings(_env_file=None)
        else:
            _settings = Settings()
    return _settings


def reset_settings_for_tests() -> None:
    """仅用于测试：清空配置缓存，便于使用 monkeypatch 设置环境变量。"""
    global _settings
    _settings = None

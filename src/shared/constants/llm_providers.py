"""LLM Provider 相关常量。

用于构建各 Provider 的后端适配器（认证方式、端点、默认模型）。
"""

# provider_type 取值（对应 backends.BACKEND_TYPES）
# - openai_compatible: /chat/completions，Bearer 认证
# - anthropic: /v1/messages，x-api-key 认证
# - gemini: models/{model}:generateContent，x-goog-api-key 认证

# Provider 定义（key 必须是唯一标识符）
DEFAULT_PROVIDERS = {
    "google": {
        "name": "Google Gemini",
        "provider_type": "gemini",
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "default_model": "gemini-2.5-flash-preview-05-20",
        "max_tokens_cap": None,
        "extra_headers": {},
        "description": "Google Gemini REST API",
    },
    "openrouter": {
        "name": "OpenRouter",
        "provider_type": "openai_compatible",
        "base_url": "https://openrouter.ai/api/v1",
        "default_model": "anthropic/claude-sonnet-4",
        "max_tokens_cap": None,
        "extra_headers": {
            "HTTP-Referer": "https://longform-orchestrator.local",
            "X-Title": "Longform Orchestrator",
        },
        "description": "OpenRouter 聚合网关（OpenAI 兼容协议）",
    },
    "openai": {
        "name": "OpenAI",
        "provider_type": "openai_compatible",
        "base_url": "https://api.openai.com/v1",
        "default_model": "gpt-4o",
        "max_tokens_cap": None,
        "extra_headers": {},
        "description": "OpenAI 官方 API",
    },
    "anthropic": {
        "name": "Anthropic",
        "provider_type": "anthropic",
        "base_url": "https://api.anthropic.com/v1",
        "default_model": "claude-sonnet-4-20250514",
        "max_tokens_cap": None,
        "extra_headers": {"anthropic-version": "2023-06-01"},
        "description": "Anthropic Messages API",
    },
    "groq": {
        "name": "Groq",
        "provider_type": "openai_compatible",
        "base_url": "https://api.groq.com/openai/v1",
        "default_model": "llama-3.3-70b-versatile",
        "max_tokens_cap": 8000,
        "extra_headers": {},
        "description": "Groq（OpenAI 兼容协议，max_tokens 上限 8000）",
    },
}

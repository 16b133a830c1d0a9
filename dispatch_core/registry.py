"""
模型/提供商注册表
只读查询：提供商的模型列表、按 ID 查找模型、所有提供商
用于在加载时校验路由配置和显式模型覆盖
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderInfo:
    """提供商信息"""

    id: str
    base_url: str
    env_key: Optional[str] = None  # 提供 API Key 的环境变量
    requests_per_minute: Optional[int] = None  # 每个认证档案的每分钟请求上限
    extra_headers: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "base_url": self.base_url,
            "env_key": self.env_key,
            "requests_per_minute": self.requests_per_minute,
        }


@dataclass(frozen=True)
class ModelInfo:
    """模型信息"""

    id: str
    provider: str
    context_length: Optional[int] = None
    display_name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "context_length": self.context_length,
            "display_name": self.display_name or self.id,
        }


DEFAULT_PROVIDERS: list[ProviderInfo] = [
    ProviderInfo("openai", "https://api.openai.com/v1", "OPENAI_API_KEY"),
    ProviderInfo(
        "google",
        "https://generativelanguage.googleapis.com/v1beta/openai",
        "GEMINI_API_KEY",
    ),
    ProviderInfo("deepseek", "https://api.deepseek.com/v1", "DEEPSEEK_API_KEY"),
    ProviderInfo("anthropic", "https://api.anthropic.com/v1", "ANTHROPIC_API_KEY"),
    ProviderInfo(
        "nvidia", "https://integrate.api.nvidia.com/v1", "NVIDIA_API_KEY", requests_per_minute=40
    ),
    ProviderInfo("groq", "https://api.groq.com/openai/v1", "GROQ_API_KEY", requests_per_minute=30),
    ProviderInfo("xai", "https://api.x.ai/v1", "XAI_API_KEY"),
    ProviderInfo("openrouter", "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
]

DEFAULT_MODELS: list[ModelInfo] = [
    ModelInfo("gpt-4.1-mini", "openai", 1047576),
    ModelInfo("gpt-4.1", "openai", 1047576),
    ModelInfo("o3", "openai", 200000),
    ModelInfo("gemini-2.0-flash", "google", 1048576),
    ModelInfo("gemini-2.5-flash", "google", 1048576),
    ModelInfo("gemini-2.5-pro", "google", 1048576),
    ModelInfo("deepseek-chat", "deepseek", 65536),
    ModelInfo("deepseek-reasoner", "deepseek", 65536),
    ModelInfo("claude-sonnet-4-5", "anthropic", 200000),
    ModelInfo("claude-opus-4-1", "anthropic", 200000),
    ModelInfo("moonshotai/kimi-k2.5", "nvidia", 131072),
    ModelInfo("deepseek-ai/deepseek-v3.2", "nvidia", 131072),
    ModelInfo("llama-3.1-8b-instant", "groq", 131072),
    ModelInfo("llama-3.3-70b-versatile", "groq", 131072),
    ModelInfo("grok-4", "xai", 256000),
    ModelInfo("grok-3-mini", "xai", 131072),
    ModelInfo("openai/gpt-4.1", "openrouter", 1047576),
    ModelInfo("anthropic/claude-sonnet-4.5", "openrouter", 200000),
]


class ModelRegistry:
    """模型/提供商注册表（只读）"""

    def __init__(self, providers: list[ProviderInfo], models: list[ModelInfo]):
        self._providers: dict[str, ProviderInfo] = {}
        self._models_by_provider: dict[str, list[ModelInfo]] = {}
        self._models: dict[str, ModelInfo] = {}

        for provider in providers:
            self._providers[provider.id] = provider
            self._models_by_provider.setdefault(provider.id, [])

        for model in models:
            if model.provider not in self._providers:
                raise ValueError(
                    f"Model '{model.id}' references unknown provider '{model.provider}'"
                )
            self._models_by_provider[model.provider].append(model)
            # 同名模型以先注册的提供商为准
            self._models.setdefault(model.id, model)

        logger.info(
            f"Model registry loaded: {len(self._providers)} providers, {len(models)} models"
        )

    @classmethod
    def default(cls) -> "ModelRegistry":
        return cls(list(DEFAULT_PROVIDERS), list(DEFAULT_MODELS))

    def get_all_providers(self) -> list[str]:
        return list(self._providers)

    def get_provider(self, provider: str) -> Optional[ProviderInfo]:
        return self._providers.get(provider)

    def get_models_for_provider(self, provider: str) -> list[str]:
        return [m.id for m in self._models_by_provider.get(provider, [])]

    def list_models(self) -> list[ModelInfo]:
        return [m for models in self._models_by_provider.values() for m in models]

    def find_model(self, model_id: str) -> Optional[ModelInfo]:
        """
        按 ID 查找模型

        支持 'model' 和 'provider/model' 两种写法；模型 ID 本身可能带 '/'，
        前缀是已知提供商且该提供商有此模型时按 provider/model 解析，否则精确匹配
        """
        if not model_id:
            return None

        provider, sep, rest = model_id.partition("/")
        if sep and provider in self._providers:
            for candidate in self._models_by_provider[provider]:
                if candidate.id == rest:
                    return candidate

        return self._models.get(model_id)

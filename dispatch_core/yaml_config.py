"""
基于YAML的配置加载器 - Pydantic版本
负责加载配置、构建模型注册表和路由配置，并在加载时完成全部校验
"""

import logging
import math
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .config_models import Config, RoutingSection
from .exceptions import ConfigurationException, ErrorCode
from .registry import DEFAULT_MODELS, DEFAULT_PROVIDERS, ModelInfo, ModelRegistry, ProviderInfo
from .routing.defaults import get_default_config
from .routing.router import validate_routing_config
from .routing.types import DimensionDefinition, ModelRoute, RoutingConfig, Tier, TierBounds

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SMART_ROUTER_CONFIG"
DEFAULT_CONFIG_FILE = "router_config.yaml"

# 环境变量覆盖
ENV_OVERRIDES = {
    "SMART_ROUTER_AUTH_STORE": ("store", "path"),
    "DATABASE_URL": ("stats", "database_url"),
    "ADMIN_TOKEN": ("auth", "admin", "admin_token"),
}


def _parse_tier(name: str) -> Tier:
    try:
        return Tier(name.strip().upper())
    except ValueError:
        raise ConfigurationException(
            ErrorCode.CONFIG_INVALID,
            f"Unknown tier '{name}', expected one of {[t.value for t in Tier.ordered()]}",
        )


def build_registry(config: Config) -> ModelRegistry:
    """内置提供商/模型 + 配置文件中的覆盖（同名提供商整体替换）"""
    providers = {p.id: p for p in DEFAULT_PROVIDERS}
    models: dict[str, list[ModelInfo]] = {}
    for model in DEFAULT_MODELS:
        models.setdefault(model.provider, []).append(model)

    for provider_id, provider_cfg in config.providers.items():
        providers[provider_id] = ProviderInfo(
            id=provider_id,
            base_url=provider_cfg.base_url,
            env_key=provider_cfg.env_key,
            requests_per_minute=provider_cfg.requests_per_minute,
            extra_headers=dict(provider_cfg.extra_headers),
        )
        if provider_cfg.models:
            models[provider_id] = [
                ModelInfo(
                    id=m.id,
                    provider=provider_id,
                    context_length=m.context_length,
                    display_name=m.display_name,
                )
                for m in provider_cfg.models
            ]

    all_models = [m for provider_id in providers for m in models.get(provider_id, [])]
    return ModelRegistry(list(providers.values()), all_models)


def build_routing_config(section: RoutingSection) -> RoutingConfig:
    """以内置默认值为基础，应用配置文件中的路由设置"""
    defaults = get_default_config()

    boundaries = dict(defaults.tier_boundaries)
    if section.tier_boundaries:
        boundaries = {
            _parse_tier(name): TierBounds(
                min=bounds.min, max=math.inf if bounds.max is None else bounds.max
            )
            for name, bounds in section.tier_boundaries.items()
        }

    tier_models = dict(defaults.tier_models)
    for name, routes in section.tier_models.items():
        tier_models[_parse_tier(name)] = tuple(
            ModelRoute(model=r.model, provider=r.provider) for r in routes
        )

    weights = dict(defaults.weights)
    dimensions = defaults.dimensions
    if section.dimensions is not None:
        dimensions = tuple(
            DimensionDefinition(
                id=d.id,
                kind=d.kind,
                keywords=tuple(d.keywords),
                patterns=tuple(d.patterns),
                thresholds=tuple(d.thresholds),
                max_score=d.max_score,
            )
            for d in section.dimensions
        )
        for d in section.dimensions:
            if d.weight is not None:
                weights[d.id] = d.weight
    weights.update(section.weights)

    fallback_order = defaults.fallback_order
    if section.fallback_order is not None:
        fallback_order = tuple(section.fallback_order)

    return RoutingConfig(
        weights=weights,
        tier_boundaries=boundaries,
        tier_models=tier_models,
        fallback_order=fallback_order,
        cross_tier_fallback=section.cross_tier_fallback,
        dimensions=dimensions,
    )


class YAMLConfigLoader:
    """基于Pydantic的YAML配置加载器"""

    def __init__(self, config_path: Optional[str] = None, use_env: bool = True):
        if use_env:
            load_dotenv()
        self.use_env = use_env
        self.config_path = config_path or os.getenv(CONFIG_ENV_VAR) or self._get_default_path()

        self.config: Config
        self.registry: ModelRegistry
        self.routing_config: RoutingConfig
        self.config, self.registry, self.routing_config = self._load_all()

        logger.info(
            f"Config loaded: {len(self.registry.get_all_providers())} providers, "
            f"{len(self.registry.list_models())} models"
        )

    def _get_default_path(self) -> str:
        """获取配置文件的默认路径"""
        project_root = Path(__file__).parent.parent
        return str(project_root / "config" / DEFAULT_CONFIG_FILE)

    def _read_raw(self) -> dict[str, Any]:
        path = Path(self.config_path)
        if not path.exists():
            logger.warning(f"Config file {path} not found, using built-in defaults")
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(
                ErrorCode.CONFIG_PARSE_ERROR, f"Invalid YAML: {e}", config_path=str(path), cause=e
            )
        if not isinstance(raw, dict):
            raise ConfigurationException(
                ErrorCode.CONFIG_INVALID, "Top level must be a mapping", config_path=str(path)
            )
        return raw

    def _apply_env_overrides(self, raw: dict[str, Any]) -> None:
        for env_var, keys in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if not value:
                continue
            node = raw
            for key in keys[:-1]:
                child = node.get(key)
                if not isinstance(child, dict):
                    child = {}
                    node[key] = child
                node = child
            node[keys[-1]] = value

    def _load_all(self) -> tuple[Config, ModelRegistry, RoutingConfig]:
        raw = self._read_raw()
        if self.use_env:
            self._apply_env_overrides(raw)

        try:
            config = Config.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationException(
                ErrorCode.CONFIG_INVALID, str(e), config_path=self.config_path, cause=e
            )

        try:
            registry = build_registry(config)
        except ValueError as e:
            raise ConfigurationException(
                ErrorCode.UNKNOWN_CONFIG_IDENTIFIER, str(e), config_path=self.config_path
            )

        routing_config = build_routing_config(config.routing)
        validate_routing_config(routing_config, registry)
        return config, registry, routing_config

    def reload(self) -> "YAMLConfigLoader":
        """重新加载；校验失败时抛出异常并保留当前配置"""
        config, registry, routing_config = self._load_all()
        self.config, self.registry, self.routing_config = config, registry, routing_config
        logger.info(f"Config reloaded from {self.config_path}")
        return self

    def get_requests_per_minute(self) -> dict[str, int]:
        limits = {}
        for provider_id in self.registry.get_all_providers():
            provider = self.registry.get_provider(provider_id)
            if provider and provider.requests_per_minute:
                limits[provider_id] = provider.requests_per_minute
        return limits

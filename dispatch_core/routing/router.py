"""
分层路由器
把维度评分 -> 层级分类 -> 路由选择串成一次调用；路由配置整体替换
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..exceptions import ConfigurationException, ErrorCode
from .classifier import ConfidenceFn, classify, validate_tier_boundaries
from .dimensions import check_dimension, score_dimensions
from .selector import select_route
from .types import RoutingConfig, RoutingDecision, RoutingRequest, Tier

if TYPE_CHECKING:
    from ..registry import ModelRegistry

logger = logging.getLogger(__name__)


def validate_routing_config(
    config: RoutingConfig, registry: Optional["ModelRegistry"] = None
) -> None:
    """
    加载时校验路由配置，任何问题都是致命的配置错误

    Raises:
        ConfigurationException
    """
    validate_tier_boundaries(config.tier_boundaries)

    for tier in Tier.ordered():
        if not config.tier_models.get(tier):
            raise ConfigurationException(
                ErrorCode.EMPTY_TIER_MODELS,
                f"No models configured for tier {tier.value}",
            )

    seen_ids = set()
    for definition in config.dimensions:
        try:
            check_dimension(definition)
        except ValueError as e:
            raise ConfigurationException(
                ErrorCode.CONFIG_INVALID,
                f"Dimension '{definition.id}': {e}",
            ) from e
        if definition.id in seen_ids:
            raise ConfigurationException(
                ErrorCode.CONFIG_INVALID,
                f"Dimension '{definition.id}' is defined more than once",
            )
        seen_ids.add(definition.id)

    if registry is None:
        return

    known_providers = set(registry.get_all_providers())
    for tier, routes in config.tier_models.items():
        for route in routes:
            if route.provider not in known_providers:
                raise ConfigurationException(
                    ErrorCode.UNKNOWN_CONFIG_IDENTIFIER,
                    f"Tier {tier.value} references unknown provider '{route.provider}'",
                )
            if route.model not in registry.get_models_for_provider(route.provider):
                raise ConfigurationException(
                    ErrorCode.UNKNOWN_CONFIG_IDENTIFIER,
                    f"Tier {tier.value} references unknown model '{route}'",
                )

    for provider in config.fallback_order:
        if provider not in known_providers:
            raise ConfigurationException(
                ErrorCode.UNKNOWN_CONFIG_IDENTIFIER,
                f"fallback_order references unknown provider '{provider}'",
            )


class TierRouter:
    """基于规则的分层路由器，纯函数式，可并发调用"""

    def __init__(
        self,
        config: RoutingConfig,
        registry: Optional["ModelRegistry"] = None,
        confidence_fn: Optional[ConfidenceFn] = None,
    ):
        validate_routing_config(config, registry)
        # 配置、注册表和置信度函数作为一个整体替换
        self._state = (config, registry, confidence_fn)

    @property
    def config(self) -> RoutingConfig:
        return self._state[0]

    @property
    def registry(self) -> Optional["ModelRegistry"]:
        return self._state[1]

    def update_config(
        self,
        config: RoutingConfig,
        registry: Optional["ModelRegistry"] = None,
        confidence_fn: Optional[ConfidenceFn] = None,
    ) -> None:
        """校验通过后整体替换配置；校验失败时保留旧配置"""
        _, current_registry, current_fn = self._state
        registry = registry or current_registry
        validate_routing_config(config, registry)
        self._state = (config, registry, confidence_fn or current_fn)
        logger.info("ROUTING: configuration replaced")

    def route(self, request: RoutingRequest) -> RoutingDecision:
        config, registry, confidence_fn = self._state
        scores = score_dimensions(request, config.dimensions)
        scoring = classify(scores, config, confidence_fn)

        overrides = None if request.wants_auto else {"model": request.model}
        decision = select_route(scoring, config, overrides, registry)

        logger.info(
            f"ROUTING: {decision.reason} -> {decision.primary} "
            f"(+{len(decision.fallback_chain)} fallbacks)"
        )
        return decision

"""
路由选择器
根据层级给出主路由和有序的回退链
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..exceptions import ConfigurationException, ErrorCode, RoutingException
from .types import ModelRoute, RoutingConfig, RoutingDecision, ScoringResult, Tier

if TYPE_CHECKING:
    from ..registry import ModelRegistry

logger = logging.getLogger(__name__)

TOP_DIMENSIONS_IN_REASON = 3


def resolve_override(model: str, registry: Optional["ModelRegistry"]) -> ModelRoute:
    """把显式指定的模型（'model' 或 'provider/model'）解析为路由"""
    if registry is not None:
        info = registry.find_model(model)
        if info is not None:
            return ModelRoute(model=info.id, provider=info.provider)
    elif "/" in model:
        provider, _, model_id = model.partition("/")
        if provider and model_id:
            return ModelRoute(model=model_id, provider=provider)

    raise RoutingException(
        ErrorCode.MODEL_NOT_FOUND,
        f"Model '{model}' is not known to the registry",
        model=model,
    )


def _lower_tiers(tier: Tier) -> list[Tier]:
    return [t for t in reversed(Tier.ordered()) if t < tier]


def _higher_tiers(tier: Tier) -> list[Tier]:
    return [t for t in Tier.ordered() if t > tier]


def build_fallback_chain(tier: Tier, config: RoutingConfig) -> list[ModelRoute]:
    """主路由之后的回退链（不含主路由，已去重）"""
    tier_list = list(config.tier_models.get(tier, ()))
    primary = tier_list[0]
    candidates: list[ModelRoute] = list(tier_list[1:])

    if config.cross_tier_fallback:
        for lower in _lower_tiers(tier):
            candidates.extend(config.tier_models.get(lower, ()))

    represented = {primary.provider} | {r.provider for r in candidates}
    scan_order = [tier, *_lower_tiers(tier), *_higher_tiers(tier)]
    for provider in config.fallback_order:
        if provider in represented:
            continue
        for scan_tier in scan_order:
            route = next(
                (r for r in config.tier_models.get(scan_tier, ()) if r.provider == provider),
                None,
            )
            if route is not None:
                candidates.append(route)
                represented.add(provider)
                break

    chain: list[ModelRoute] = []
    seen = {primary}
    for route in candidates:
        if route not in seen:
            seen.add(route)
            chain.append(route)
    return chain


def _describe(scoring: ScoringResult, config: RoutingConfig) -> str:
    contributions = sorted(
        (
            (d.dimension, d.score * config.weight_for(d.dimension))
            for d in scoring.dimensions
            if d.score > 0
        ),
        key=lambda item: (-item[1], item[0]),
    )[:TOP_DIMENSIONS_IN_REASON]
    top = ", ".join(f"{name}={value:.1f}" for name, value in contributions) or "none"
    return (
        f"Tier {scoring.tier.value} (score: {scoring.total_score:.2f}, "
        f"confidence: {scoring.confidence:.0%}); top: {top}"
    )


def select_route(
    scoring: ScoringResult,
    config: RoutingConfig,
    overrides: Optional[Mapping[str, Any]] = None,
    registry: Optional["ModelRegistry"] = None,
) -> RoutingDecision:
    """
    选择主路由与回退链

    Args:
        scoring: 分类结果
        config: 路由配置
        overrides: 显式覆盖，目前支持 {"model": "..."}；"auto" 表示不覆盖
        registry: 用于校验显式模型的注册表

    Raises:
        RoutingException: 显式指定的模型未知 (MODEL_NOT_FOUND)
        ConfigurationException: 层级模型列表为空
    """
    override_model = (overrides or {}).get("model")
    if override_model and str(override_model).strip().lower() not in ("auto", "smart", "router"):
        route = resolve_override(str(override_model).strip(), registry)
        logger.info(f"ROUTING: explicit model override -> {route}")
        return RoutingDecision(
            scoring=scoring,
            selected_model=route.model,
            selected_provider=route.provider,
            fallback_chain=(),
            reason=f"EXPLICIT model override: {route}",
        )

    tier_list = config.tier_models.get(scoring.tier, ())
    if not tier_list:
        raise ConfigurationException(
            ErrorCode.EMPTY_TIER_MODELS,
            f"No models configured for tier {scoring.tier.value}",
        )

    primary = tier_list[0]
    chain = build_fallback_chain(scoring.tier, config)
    return RoutingDecision(
        scoring=scoring,
        selected_model=primary.model,
        selected_provider=primary.provider,
        fallback_chain=tuple(chain),
        reason=_describe(scoring, config),
    )

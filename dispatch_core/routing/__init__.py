"""
路由模块：维度评分、层级分类、路由选择
"""

from .classifier import (
    ConfidenceFn,
    classify,
    lookup_tier,
    margin_agreement_confidence,
    validate_tier_boundaries,
)
from .defaults import get_default_config
from .dimensions import score_dimensions
from .router import TierRouter, validate_routing_config
from .selector import build_fallback_chain, select_route
from .types import (
    DimensionDefinition,
    DimensionScore,
    ModelRoute,
    RoutingConfig,
    RoutingDecision,
    RoutingRequest,
    ScoringResult,
    Tier,
    TierBounds,
)

__all__ = [
    "ConfidenceFn",
    "DimensionDefinition",
    "DimensionScore",
    "ModelRoute",
    "RoutingConfig",
    "RoutingDecision",
    "RoutingRequest",
    "ScoringResult",
    "Tier",
    "TierBounds",
    "TierRouter",
    "build_fallback_chain",
    "classify",
    "get_default_config",
    "lookup_tier",
    "margin_agreement_confidence",
    "score_dimensions",
    "select_route",
    "validate_routing_config",
    "validate_tier_boundaries",
]

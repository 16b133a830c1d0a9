"""
层级分类器
把维度得分加权求和，映射到 SIMPLE/MEDIUM/COMPLEX/REASONING 四个层级之一，并计算置信度
"""

from __future__ import annotations

import math
from typing import Callable, Iterable, Mapping, Optional, Sequence

from ..exceptions import ConfigurationException, ErrorCode
from .types import DimensionScore, RoutingConfig, ScoringResult, Tier, TierBounds

# 置信度函数: (总分, 层级, 边界, 维度得分) -> [0, 1]
ConfidenceFn = Callable[
    [float, Tier, Mapping[Tier, TierBounds], Sequence[DimensionScore]], float
]

DEFAULT_MARGIN_SCALE = 2.0


def validate_tier_boundaries(boundaries: Mapping[Tier, TierBounds]) -> None:
    """
    校验层级边界：必须覆盖全部层级、按层级顺序递增、首尾相接且从 0 (或更低) 开始

    Raises:
        ConfigurationException: 边界缺失、重叠、存在空隙或顺序错误
    """

    def _fail(message: str) -> None:
        raise ConfigurationException(ErrorCode.TIER_BOUNDARIES_INVALID, message)

    missing = [t.value for t in Tier.ordered() if t not in boundaries]
    if missing:
        _fail(f"Missing tier boundaries: {', '.join(missing)}")

    for tier in Tier.ordered():
        bounds = boundaries[tier]
        if bounds.min >= bounds.max:
            _fail(f"Tier {tier.value}: min ({bounds.min}) must be below max ({bounds.max})")

    by_min = sorted(Tier.ordered(), key=lambda t: boundaries[t].min)
    if by_min != Tier.ordered():
        _fail(
            "Tier boundaries are not ordered by tier rank: "
            + " < ".join(t.value for t in by_min)
        )

    if boundaries[Tier.SIMPLE].min > 0:
        _fail(f"Lowest tier must start at 0, got {boundaries[Tier.SIMPLE].min}")

    tiers = Tier.ordered()
    for lower, upper in zip(tiers, tiers[1:]):
        lower_max = boundaries[lower].max
        upper_min = boundaries[upper].min
        if lower_max < upper_min:
            _fail(f"Gap between {lower.value} and {upper.value}: [{lower_max}, {upper_min})")
        if lower_max > upper_min:
            _fail(f"Overlap between {lower.value} and {upper.value}: [{upper_min}, {lower_max})")


def lookup_tier(total_score: float, boundaries: Mapping[Tier, TierBounds]) -> Tier:
    """按 min 升序扫描，取第一个包含分数的层级；超过所有 max 时取最高层级"""
    ordered = sorted(boundaries.items(), key=lambda item: item[1].min)
    for tier, bounds in ordered:
        if bounds.contains(total_score):
            return tier
    if ordered and total_score < ordered[0][1].min:
        return ordered[0][0]
    return max(boundaries)


def margin_agreement_confidence(
    total_score: float,
    tier: Tier,
    boundaries: Mapping[Tier, TierBounds],
    dimensions: Sequence[DimensionScore],
    scale: float = DEFAULT_MARGIN_SCALE,
) -> float:
    """
    默认置信度: 0.5 * m/(m+scale) + 0.5 * n/(n+1)

    m 为总分到最近的层级分界点的距离（最低层级的下界和最高层级的上界不算分界点），
    n 为得分非零的维度数量
    """
    cut_points = sorted({b.min for t, b in boundaries.items() if t != min(boundaries)})
    if cut_points:
        margin = min(abs(total_score - cut) for cut in cut_points)
    else:
        margin = abs(total_score)

    agreeing = sum(1 for d in dimensions if d.score > 0)

    margin_factor = margin / (margin + scale) if scale > 0 else 1.0
    agreement_factor = agreeing / (agreeing + 1)
    confidence = 0.5 * margin_factor + 0.5 * agreement_factor
    return max(0.0, min(1.0, confidence))


def weighted_total(dimension_scores: Iterable[DimensionScore], config: RoutingConfig) -> float:
    total = 0.0
    for dim in dimension_scores:
        total += dim.score * config.weight_for(dim.dimension)
    return total


def classify(
    dimension_scores: Sequence[DimensionScore],
    config: RoutingConfig,
    confidence_fn: Optional[ConfidenceFn] = None,
) -> ScoringResult:
    """
    聚合维度得分并映射到层级

    Args:
        dimension_scores: 维度评分器的输出
        config: 路由配置（权重、层级边界）
        confidence_fn: 可替换的置信度函数，默认 margin_agreement_confidence

    Returns:
        ScoringResult
    """
    total = round(weighted_total(dimension_scores, config), 6)
    tier = lookup_tier(total, config.tier_boundaries)

    fn = confidence_fn or margin_agreement_confidence
    confidence = fn(total, tier, config.tier_boundaries, dimension_scores)
    if math.isnan(confidence):
        confidence = 0.0
    confidence = max(0.0, min(1.0, confidence))

    return ScoringResult(
        tier=tier,
        total_score=total,
        dimensions=tuple(dimension_scores),
        confidence=confidence,
    )

"""
维度评分器
对请求在一组相互独立的维度上打分，每个维度由数据描述（DimensionDefinition），
通过统一的匹配器接口求值，新增维度只需增加配置而不需要新代码
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Callable, Iterable

from .types import DimensionDefinition, DimensionScore, RoutingRequest

# 匹配器：返回按顺序排列的证据列表（命中的关键词、模式或越过的阈值）
Matcher = Callable[[DimensionDefinition, RoutingRequest], list[str]]


@lru_cache(maxsize=2048)
def _keyword_regex(keyword: str) -> re.Pattern:
    """单词边界、大小写不敏感的关键词正则"""
    escaped = re.escape(keyword.lower())
    return re.compile(rf"(?<!\w){escaped}(?!\w)", re.IGNORECASE)


@lru_cache(maxsize=512)
def _pattern_regex(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _match_keywords(definition: DimensionDefinition, request: RoutingRequest) -> list[str]:
    text = request.prompt or ""
    evidence = []
    for keyword in definition.keywords:
        if keyword and _keyword_regex(keyword).search(text):
            evidence.append(keyword)
    return evidence


def _match_patterns(definition: DimensionDefinition, request: RoutingRequest) -> list[str]:
    text = request.prompt or ""
    return [p for p in definition.patterns if _pattern_regex(p).search(text)]


def _match_length(definition: DimensionDefinition, request: RoutingRequest) -> list[str]:
    length = len(request.prompt or "")
    return [f">={t} chars" for t in sorted(definition.thresholds) if length >= t]


def _match_turns(definition: DimensionDefinition, request: RoutingRequest) -> list[str]:
    count = request.message_count
    return [f">={t} messages" for t in sorted(definition.thresholds) if count >= t]


MATCHERS: dict[str, Matcher] = {
    "keywords": _match_keywords,
    "patterns": _match_patterns,
    "length": _match_length,
    "turns": _match_turns,
}


def check_dimension(definition: DimensionDefinition) -> None:
    """
    校验维度定义能被求值：正则可编译，阈值和上限为非负数

    Raises:
        ValueError: 定义无效
    """
    if definition.kind not in MATCHERS:
        raise ValueError(f"unknown kind '{definition.kind}'")

    for pattern in definition.patterns:
        try:
            _pattern_regex(pattern)
        except (re.error, TypeError) as e:
            raise ValueError(f"invalid pattern {pattern!r}: {e}") from e

    for threshold in definition.thresholds:
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold < 0:
            raise ValueError(f"threshold must be a non-negative number, got {threshold!r}")

    max_score = definition.max_score
    if max_score is not None and (
        isinstance(max_score, bool) or not isinstance(max_score, (int, float)) or max_score < 0
    ):
        raise ValueError(f"max_score must be a non-negative number, got {max_score!r}")


def _max_score(definition: DimensionDefinition) -> float:
    if definition.max_score is not None:
        return definition.max_score
    if definition.kind == "keywords":
        return float(len(definition.keywords))
    if definition.kind == "patterns":
        return float(len(definition.patterns))
    return float(len(definition.thresholds))


def score_dimension(definition: DimensionDefinition, request: RoutingRequest) -> DimensionScore:
    """对单个维度打分；未命中的维度得分为 0、证据为空"""
    matcher = MATCHERS.get(definition.kind)
    if matcher is None:
        raise ValueError(f"Unknown dimension kind '{definition.kind}' for '{definition.id}'")

    evidence = matcher(definition, request)
    score = min(float(len(evidence)), _max_score(definition))
    return DimensionScore(
        dimension=definition.id,
        score=score,
        matched_keywords=tuple(evidence),
    )


def score_dimensions(
    request: RoutingRequest, definitions: Iterable[DimensionDefinition]
) -> list[DimensionScore]:
    """
    对所有维度打分

    Args:
        request: 路由请求
        definitions: 维度定义列表

    Returns:
        每个维度一个 DimensionScore，顺序与定义一致
    """
    return [score_dimension(definition, request) for definition in definitions]

"""路由模块测试：维度评分、层级分类、路由选择"""

import dataclasses
import math
import sys
from pathlib import Path

import pytest

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dispatch_core.exceptions import ConfigurationException, ErrorCode, RoutingException
from dispatch_core.registry import ModelRegistry
from dispatch_core.routing import (
    DimensionDefinition,
    DimensionScore,
    ModelRoute,
    RoutingRequest,
    Tier,
    TierBounds,
    TierRouter,
    build_fallback_chain,
    classify,
    get_default_config,
    lookup_tier,
    margin_agreement_confidence,
    score_dimensions,
    select_route,
    validate_tier_boundaries,
)
from dispatch_core.routing.defaults import default_dimensions


def _scores_by_id(prompt, message_count=1):
    request = RoutingRequest(prompt=prompt, message_count=message_count)
    return {s.dimension: s for s in score_dimensions(request, default_dimensions())}


def _bounds(*cuts):
    """按顺序构造 SIMPLE..REASONING 的边界"""
    edges = list(cuts) + [math.inf]
    return {
        tier: TierBounds(edges[i], edges[i + 1])
        for i, tier in enumerate(Tier.ordered())
    }


class TestDimensionScorer:
    """维度评分测试"""

    def test_every_dimension_reported(self):
        """未命中的维度也要出现在结果中"""
        scores = _scores_by_id("hello")
        assert len(scores) == len(default_dimensions())
        assert scores["code_generation"].score == 0
        assert scores["code_generation"].matched_keywords == ()

    def test_keyword_matching_is_case_insensitive(self):
        scores = _scores_by_id("Please DEBUG this Error and fix the crash")
        debugging = scores["debugging"]
        assert debugging.score == 4
        assert set(debugging.matched_keywords) == {"debug", "error", "fix", "crash"}

    def test_keywords_respect_word_boundaries(self):
        """'this' 不应命中关键词 'hi'"""
        scores = _scores_by_id("this")
        assert scores["conversation"].score == 0

    def test_length_thresholds(self):
        scores = _scores_by_id("x" * 4500)
        assert scores["input_length"].score == 2
        assert scores["input_length"].matched_keywords == (">=1000 chars", ">=4000 chars")

    def test_conversation_depth(self):
        scores = _scores_by_id("ok", message_count=20)
        assert scores["conversation_depth"].score == 2

    def test_structure_patterns_capped(self):
        prompt = "```\ndef f():\n    pass\n```\n1. first\n2. second\n- bullet\nwhy? and how?"
        scores = _scores_by_id(prompt)
        assert scores["structure"].score == 3

    def test_custom_dimension_needs_no_code(self):
        definition = DimensionDefinition(id="legal", kind="keywords", keywords=("contract", "liability"))
        request = RoutingRequest(prompt="Review this contract for liability issues")
        [score] = score_dimensions(request, [definition])
        assert score.dimension == "legal"
        assert score.score == 2

    def test_unknown_kind_rejected(self):
        definition = DimensionDefinition(id="odd", kind="telepathy")
        with pytest.raises(ValueError):
            score_dimensions(RoutingRequest(prompt="x"), [definition])


class TestTierClassifier:
    """层级分类测试"""

    def test_greeting_is_simple(self):
        config = get_default_config()
        scores = score_dimensions(RoutingRequest(prompt="hello"), config.dimensions)
        result = classify(scores, config)
        assert result.tier == Tier.SIMPLE
        assert result.total_score == pytest.approx(0.5)

    def test_weighted_total_selects_tier(self):
        config = get_default_config()
        scores = score_dimensions(
            RoutingRequest(prompt="Please debug this error and fix the crash"), config.dimensions
        )
        result = classify(scores, config)
        assert result.total_score == pytest.approx(10.0)
        assert result.tier == Tier.COMPLEX

    def test_score_inside_interval(self):
        assert lookup_tier(85, _bounds(0, 30, 70, 100)) == Tier.COMPLEX

    def test_boundary_belongs_to_upper_tier(self):
        bounds = _bounds(0, 30, 70, 100)
        assert lookup_tier(30, bounds) == Tier.MEDIUM
        assert lookup_tier(29.999, bounds) == Tier.SIMPLE

    def test_out_of_range_scores_clamp(self):
        bounds = _bounds(0, 30, 70, 100)
        assert lookup_tier(-5, bounds) == Tier.SIMPLE
        assert lookup_tier(10_000, bounds) == Tier.REASONING

    def test_integer_scores_map_to_exactly_one_tier(self):
        bounds = _bounds(0, 30, 70, 100)
        for score in range(0, 150):
            containing = [t for t, b in bounds.items() if b.contains(score)]
            assert len(containing) == 1
            assert lookup_tier(score, bounds) == containing[0]

    def test_confidence_always_in_unit_interval(self):
        config = get_default_config()
        for prompt in ["", "hello", "debug the error", "x" * 20000]:
            scores = score_dimensions(RoutingRequest(prompt=prompt), config.dimensions)
            result = classify(scores, config)
            assert 0.0 <= result.confidence <= 1.0

    def test_confidence_grows_with_margin(self):
        bounds = _bounds(0, 30, 70, 100)
        near = margin_agreement_confidence(31, Tier.MEDIUM, bounds, [])
        far = margin_agreement_confidence(50, Tier.MEDIUM, bounds, [])
        assert far > near

    def test_custom_confidence_fn_is_clamped(self):
        config = get_default_config()
        scores = score_dimensions(RoutingRequest(prompt="hello"), config.dimensions)
        assert classify(scores, config, lambda *args: 5.0).confidence == 1.0
        assert classify(scores, config, lambda *args: float("nan")).confidence == 0.0

    @pytest.mark.parametrize(
        "bounds",
        [
            {Tier.SIMPLE: TierBounds(0, 3), Tier.MEDIUM: TierBounds(3, 8), Tier.COMPLEX: TierBounds(8)},
            _bounds(0, 3, 9, 15) | {Tier.MEDIUM: TierBounds(3, 8)},
            _bounds(0, 3, 8, 15) | {Tier.MEDIUM: TierBounds(3, 10)},
            _bounds(1, 3, 8, 15),
            _bounds(0, 8, 3, 15),
        ],
        ids=["missing", "gap", "overlap", "not-from-zero", "out-of-order"],
    )
    def test_invalid_boundaries_rejected(self, bounds):
        with pytest.raises(ConfigurationException) as exc_info:
            validate_tier_boundaries(bounds)
        assert exc_info.value.error_code == ErrorCode.TIER_BOUNDARIES_INVALID


class TestRouteSelector:
    """路由选择测试"""

    def _scoring(self, tier):
        config = get_default_config()
        scores = score_dimensions(RoutingRequest(prompt="hello"), config.dimensions)
        return dataclasses.replace(classify(scores, config), tier=tier)

    def test_fallback_chain_order(self):
        config = get_default_config()
        chain = [str(r) for r in build_fallback_chain(Tier.COMPLEX, config)]
        assert chain == [
            "google/gemini-2.5-pro",
            "anthropic/claude-opus-4-1",
            "openai/gpt-4.1",
            "nvidia/moonshotai/kimi-k2.5",
            "google/gemini-2.5-flash",
            "anthropic/claude-sonnet-4-5",
            "google/gemini-2.0-flash",
            "openai/gpt-4.1-mini",
            "deepseek/deepseek-chat",
            "groq/llama-3.1-8b-instant",
        ]

    def test_chain_has_no_duplicates_and_excludes_primary(self):
        config = get_default_config()
        for tier in Tier.ordered():
            primary = config.tier_models[tier][0]
            chain = build_fallback_chain(tier, config)
            assert primary not in chain
            assert len(chain) == len(set(chain))

    def test_provider_diversity_without_cross_tier(self):
        config = dataclasses.replace(get_default_config(), cross_tier_fallback=False)
        chain = [str(r) for r in build_fallback_chain(Tier.SIMPLE, config)]
        assert chain == [
            "openai/gpt-4.1-mini",
            "deepseek/deepseek-chat",
            "groq/llama-3.1-8b-instant",
            "nvidia/moonshotai/kimi-k2.5",
            "anthropic/claude-sonnet-4-5",
        ]

    def test_primary_is_first_tier_model(self):
        config = get_default_config()
        decision = select_route(self._scoring(Tier.REASONING), config)
        assert decision.primary == ModelRoute("o3", "openai")
        assert decision.reason.startswith("Tier REASONING")

    def test_explicit_override(self):
        config = get_default_config()
        decision = select_route(
            self._scoring(Tier.SIMPLE), config, {"model": "openai/gpt-4.1"}, ModelRegistry.default()
        )
        assert decision.primary == ModelRoute("gpt-4.1", "openai")
        assert decision.fallback_chain == ()
        assert decision.reason.startswith("EXPLICIT")

    def test_auto_is_not_an_override(self):
        config = get_default_config()
        decision = select_route(self._scoring(Tier.SIMPLE), config, {"model": "auto"})
        assert decision.primary == config.tier_models[Tier.SIMPLE][0]

    def test_unknown_model_rejected(self):
        config = get_default_config()
        with pytest.raises(RoutingException) as exc_info:
            select_route(
                self._scoring(Tier.SIMPLE), config, {"model": "no-such-model"}, ModelRegistry.default()
            )
        assert exc_info.value.error_code == ErrorCode.MODEL_NOT_FOUND


class TestTierRouter:
    """分层路由器测试"""

    def test_route_end_to_end(self):
        router = TierRouter(get_default_config(), ModelRegistry.default())
        decision = router.route(RoutingRequest(prompt="hello"))
        assert decision.scoring.tier == Tier.SIMPLE
        assert decision.primary == ModelRoute("gemini-2.0-flash", "google")
        assert len(decision.fallback_chain) > 0

    def test_explicit_model_by_bare_id(self):
        router = TierRouter(get_default_config(), ModelRegistry.default())
        decision = router.route(RoutingRequest(prompt="hello", model="gpt-4.1"))
        assert decision.primary == ModelRoute("gpt-4.1", "openai")

    def test_invalid_update_keeps_old_config(self):
        config = get_default_config()
        router = TierRouter(config, ModelRegistry.default())
        broken = dataclasses.replace(config, tier_models={**config.tier_models, Tier.MEDIUM: ()})
        with pytest.raises(ConfigurationException) as exc_info:
            router.update_config(broken)
        assert exc_info.value.error_code == ErrorCode.EMPTY_TIER_MODELS
        assert router.config is config

    def test_unknown_model_in_tier_rejected_at_load(self):
        config = get_default_config()
        broken = dataclasses.replace(
            config,
            tier_models={**config.tier_models, Tier.SIMPLE: (ModelRoute("ghost-1", "openai"),)},
        )
        with pytest.raises(ConfigurationException) as exc_info:
            TierRouter(broken, ModelRegistry.default())
        assert exc_info.value.error_code == ErrorCode.UNKNOWN_CONFIG_IDENTIFIER

    def test_duplicate_dimension_rejected(self):
        config = get_default_config()
        dims = config.dimensions + (DimensionDefinition(id="debugging", kind="keywords"),)
        with pytest.raises(ConfigurationException):
            TierRouter(dataclasses.replace(config, dimensions=dims))

    def test_invalid_pattern_rejected_at_load(self):
        config = get_default_config()
        dims = config.dimensions + (
            DimensionDefinition(id="broken", kind="patterns", patterns=("(unclosed",)),
        )
        with pytest.raises(ConfigurationException) as exc_info:
            TierRouter(dataclasses.replace(config, dimensions=dims))
        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    @pytest.mark.parametrize("thresholds", [(-1,), ("many",), (True,)])
    def test_invalid_thresholds_rejected_at_load(self, thresholds):
        config = get_default_config()
        dims = config.dimensions + (
            DimensionDefinition(id="custom_length", kind="length", thresholds=thresholds),
        )
        with pytest.raises(ConfigurationException) as exc_info:
            TierRouter(dataclasses.replace(config, dimensions=dims))
        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_unknown_kind_rejected_at_load(self):
        config = get_default_config()
        dims = config.dimensions + (DimensionDefinition(id="odd", kind="telepathy"),)
        with pytest.raises(ConfigurationException):
            TierRouter(dataclasses.replace(config, dimensions=dims))

    def test_dimension_scores_kept_in_decision(self):
        router = TierRouter(get_default_config())
        decision = router.route(RoutingRequest(prompt="hello"))
        assert all(isinstance(d, DimensionScore) for d in decision.scoring.dimensions)

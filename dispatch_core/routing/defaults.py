"""
内置默认路由配置
没有配置文件时使用；YAML 中的同名配置项会覆盖这里的值
"""

from __future__ import annotations

import math

from .types import DimensionDefinition, ModelRoute, RoutingConfig, Tier, TierBounds

# ---------------------------------------------------------------------------
# 关键词维度
# ---------------------------------------------------------------------------

DIMENSION_KEYWORDS: dict[str, list[str]] = {
    "code_generation": [
        "write code", "implement", "create function", "build", "generate code",
        "coding", "program", "develop", "scaffold", "boilerplate", "refactor",
        "class", "method", "algorithm", "data structure", "api", "endpoint",
    ],
    "debugging": [
        "debug", "fix", "error", "bug", "issue", "broken", "not working",
        "crash", "exception", "stack trace", "troubleshoot", "diagnose",
    ],
    "explanation": [
        "explain", "what is", "how does", "describe", "tell me about",
        "understand", "clarify", "elaborate", "break down", "overview",
    ],
    "math_logic": [
        "calculate", "math", "equation", "formula", "proof", "theorem",
        "algebra", "calculus", "statistics", "probability", "optimize",
        "linear", "matrix", "derivative", "integral",
    ],
    "creative_writing": [
        "write story", "poem", "creative", "fiction", "narrative",
        "dialogue", "character", "plot", "screenplay", "lyrics",
        "compose", "draft", "essay",
    ],
    "translation": [
        "translate", "convert to", "in spanish", "in french", "in chinese",
        "in japanese", "in german", "multilingual", "localize", "i18n",
    ],
    "data_analysis": [
        "analyze data", "dataset", "csv", "json", "parse", "extract",
        "transform", "aggregate", "statistics", "visualization", "chart",
        "graph", "sql", "query", "database",
    ],
    "system_design": [
        "architecture", "design system", "scalable", "microservice",
        "distributed", "load balancing", "caching", "database design",
        "infrastructure", "deployment", "ci/cd", "docker", "kubernetes",
    ],
    "security": [
        "security", "vulnerability", "exploit", "authentication",
        "authorization", "encrypt", "hash", "ssl", "tls", "oauth",
        "xss", "csrf", "injection", "pentest",
    ],
    "research": [
        "research", "paper", "study", "literature", "survey",
        "state of the art", "benchmark", "comparison", "evaluation",
        "arxiv", "peer review",
    ],
    "reasoning": [
        "think step by step", "reason", "logical", "deduce", "infer",
        "chain of thought", "multi-step", "complex problem", "planning",
        "strategy", "tradeoff", "pros and cons", "decision",
    ],
    "conversation": [
        "chat", "hello", "hi", "hey", "thanks", "good morning",
        "how are you", "goodbye", "yes", "no", "ok", "sure",
    ],
    "summarization": [
        "summarize", "summary", "tldr", "key points", "bullet points",
        "condense", "shorten", "brief", "recap", "outline",
    ],
    "multimodal": [
        "image", "picture", "photo", "screenshot", "diagram",
        "vision", "visual", "ocr", "describe image", "analyze image",
    ],
}

# 结构启发式：代码块、编号列表、项目符号、多个问题
STRUCTURE_PATTERNS: list[str] = [
    r"```",
    r"(?m)^\s*\d+[.)]\s+\S",
    r"(?m)^\s*[-*]\s+\S",
    r"\?[^?]+\?",
    r"(?m)^\s*(def|class|function|SELECT|import)\b",
]


def default_dimensions() -> tuple[DimensionDefinition, ...]:
    """默认维度定义（14 个关键词维度 + 长度/结构/对话深度）"""
    dims = [
        DimensionDefinition(id=name, kind="keywords", keywords=tuple(keywords))
        for name, keywords in DIMENSION_KEYWORDS.items()
    ]
    dims.append(
        DimensionDefinition(
            id="input_length", kind="length", thresholds=(1000, 4000, 12000)
        )
    )
    dims.append(
        DimensionDefinition(
            id="structure", kind="patterns", patterns=tuple(STRUCTURE_PATTERNS), max_score=3
        )
    )
    dims.append(
        DimensionDefinition(
            id="conversation_depth", kind="turns", thresholds=(6, 16, 40)
        )
    )
    return tuple(dims)


# ---------------------------------------------------------------------------
# 维度权重
# ---------------------------------------------------------------------------

DEFAULT_WEIGHTS: dict[str, float] = {
    "code_generation": 3.0,
    "debugging": 2.5,
    "explanation": 1.0,
    "math_logic": 3.0,
    "creative_writing": 1.5,
    "translation": 1.0,
    "data_analysis": 2.5,
    "system_design": 3.0,
    "security": 2.5,
    "research": 2.0,
    "reasoning": 3.5,
    "conversation": 0.5,
    "summarization": 1.0,
    "multimodal": 2.0,
    "input_length": 2.0,
    "structure": 1.5,
    "conversation_depth": 1.0,
}

# ---------------------------------------------------------------------------
# 层级边界
# ---------------------------------------------------------------------------

DEFAULT_TIER_BOUNDARIES: dict[Tier, TierBounds] = {
    Tier.SIMPLE: TierBounds(0, 3),
    Tier.MEDIUM: TierBounds(3, 8),
    Tier.COMPLEX: TierBounds(8, 15),
    Tier.REASONING: TierBounds(15, math.inf),
}

# ---------------------------------------------------------------------------
# 层级 -> 模型映射（均为 OpenAI 兼容接口的提供商）
# ---------------------------------------------------------------------------

DEFAULT_TIER_MODELS: dict[Tier, list[ModelRoute]] = {
    Tier.SIMPLE: [
        ModelRoute("gemini-2.0-flash", "google"),
        ModelRoute("gpt-4.1-mini", "openai"),
        ModelRoute("deepseek-chat", "deepseek"),
        ModelRoute("llama-3.1-8b-instant", "groq"),
    ],
    Tier.MEDIUM: [
        ModelRoute("moonshotai/kimi-k2.5", "nvidia"),
        ModelRoute("gemini-2.5-flash", "google"),
        ModelRoute("gpt-4.1", "openai"),
        ModelRoute("claude-sonnet-4-5", "anthropic"),
    ],
    Tier.COMPLEX: [
        ModelRoute("deepseek-ai/deepseek-v3.2", "nvidia"),
        ModelRoute("gemini-2.5-pro", "google"),
        ModelRoute("claude-opus-4-1", "anthropic"),
        ModelRoute("gpt-4.1", "openai"),
    ],
    Tier.REASONING: [
        ModelRoute("o3", "openai"),
        ModelRoute("gemini-2.5-pro", "google"),
        ModelRoute("deepseek-reasoner", "deepseek"),
        ModelRoute("claude-opus-4-1", "anthropic"),
    ],
}

DEFAULT_FALLBACK_ORDER: list[str] = [
    "nvidia", "google", "deepseek", "groq",
    "openai", "anthropic", "xai", "openrouter",
]


def get_default_config() -> RoutingConfig:
    """返回一份新的默认路由配置"""
    return RoutingConfig(
        weights=dict(DEFAULT_WEIGHTS),
        tier_boundaries=dict(DEFAULT_TIER_BOUNDARIES),
        tier_models={tier: tuple(routes) for tier, routes in DEFAULT_TIER_MODELS.items()},
        fallback_order=tuple(DEFAULT_FALLBACK_ORDER),
        cross_tier_fallback=True,
        dimensions=default_dimensions(),
    )

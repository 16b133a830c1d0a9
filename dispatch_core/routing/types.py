"""Shared routing data structures for the Smart Dispatch Router."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Tier(str, Enum):
    """Complexity tier, ordered SIMPLE < MEDIUM < COMPLEX < REASONING."""

    SIMPLE = "SIMPLE"
    MEDIUM = "MEDIUM"
    COMPLEX = "COMPLEX"
    REASONING = "REASONING"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @classmethod
    def ordered(cls) -> list["Tier"]:
        return list(_TIER_ORDER)

    def __lt__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_ORDER = (Tier.SIMPLE, Tier.MEDIUM, Tier.COMPLEX, Tier.REASONING)


@dataclass(frozen=True)
class TierBounds:
    """Half-open score interval ``[min, max)`` for one tier."""

    min: float
    max: float = math.inf

    def contains(self, score: float) -> bool:
        return self.min <= score < self.max


@dataclass(frozen=True)
class ModelRoute:
    """A model/provider pair."""

    model: str
    provider: str

    def __str__(self) -> str:
        return f"{self.provider}/{self.model}"

    def to_dict(self) -> dict[str, str]:
        return {"model": self.model, "provider": self.provider}


@dataclass(frozen=True)
class DimensionDefinition:
    """Declarative description of one scoring dimension.

    ``kind`` selects the matcher:
      keywords - word-boundary, case-insensitive keyword hits
      patterns - regular expression hits (one per pattern)
      length   - character-count thresholds passed
      turns    - message-count thresholds passed
    """

    id: str
    kind: str = "keywords"
    keywords: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    thresholds: tuple[int, ...] = ()
    max_score: Optional[float] = None


@dataclass(frozen=True)
class DimensionScore:
    """Per-dimension scoring output, kept even when nothing matched."""

    dimension: str
    score: float
    matched_keywords: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "dimension": self.dimension,
            "score": self.score,
            "matched_keywords": list(self.matched_keywords),
        }


@dataclass(frozen=True)
class ScoringResult:
    """Aggregated classification result."""

    tier: Tier
    total_score: float
    dimensions: tuple[DimensionScore, ...]
    confidence: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0.0, 1.0], got {self.confidence}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "total_score": self.total_score,
            "confidence": self.confidence,
            "dimensions": [d.to_dict() for d in self.dimensions],
        }


@dataclass(frozen=True)
class RoutingDecision:
    """Selector output: primary route, ordered fallbacks, and why."""

    scoring: ScoringResult
    selected_model: str
    selected_provider: str
    fallback_chain: tuple[ModelRoute, ...]
    reason: str

    @property
    def primary(self) -> ModelRoute:
        return ModelRoute(model=self.selected_model, provider=self.selected_provider)

    @property
    def routes(self) -> list[ModelRoute]:
        """Primary route followed by the fallback chain."""
        return [self.primary, *self.fallback_chain]

    def to_dict(self) -> dict[str, Any]:
        return {
            "scoring": self.scoring.to_dict(),
            "selected_model": self.selected_model,
            "selected_provider": self.selected_provider,
            "fallback_chain": [r.to_dict() for r in self.fallback_chain],
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RoutingConfig:
    """Process-wide routing configuration. Replaced as a whole on reload."""

    weights: dict[str, float]
    tier_boundaries: dict[Tier, TierBounds]
    tier_models: dict[Tier, tuple[ModelRoute, ...]]
    fallback_order: tuple[str, ...] = ()
    cross_tier_fallback: bool = True
    dimensions: tuple[DimensionDefinition, ...] = ()

    def weight_for(self, dimension: str) -> float:
        return self.weights.get(dimension, 1.0)


@dataclass(frozen=True)
class RoutingRequest:
    """Incoming request as seen by the routing engine.

    ``model`` is an explicit override ("auto" or None means classify);
    ``profile_id`` forces one authentication profile.
    """

    prompt: str
    message_count: int = 1
    model: Optional[str] = None
    profile_id: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def wants_auto(self) -> bool:
        return not self.model or self.model.strip().lower() in ("auto", "smart", "router")

"""
TierPath Onboarding - Tier Recommendation Engine

Scores a business profile against every tier and recommends one, with
confidence, reasoning and cheaper/pricier alternatives.

Scoring per tier:
- employee fit (weight 0.30) and location fit (0.20) peak at the middle
  of the tier's range
- revenue fit (0.25) and transaction fit (0.15) grow toward the top of
  the range
- any metric above the range applies a fixed penalty instead
- the sum is multiplied by business-type affinity and business-size
  affinity, then clamped at zero

Pure and deterministic: no I/O, no state between calls.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from tierpath.config.tier_config import (
    BusinessTier,
    TIER_ORDER,
    calculate_cost_analysis,
    get_scoring_range,
    get_tier_pricing,
)
from tierpath.models.onboarding import BusinessProfile, BusinessSize, BusinessType

logger = logging.getLogger(__name__)


# =============================================================================
# SCORING WEIGHTS
# =============================================================================

EMPLOYEE_WEIGHT = 0.30
LOCATION_WEIGHT = 0.20
REVENUE_WEIGHT = 0.25
TRANSACTION_WEIGHT = 0.15

EMPLOYEE_PENALTY = -0.5
LOCATION_PENALTY = -0.3
REVENUE_PENALTY = -0.2
TRANSACTION_PENALTY = -0.1

MAX_CONFIDENCE = 0.95
MAX_ALTERNATIVES = 2

# Affinity of each business type for each tier, in [0, 1]
BUSINESS_TYPE_WEIGHTS: Dict[BusinessType, Dict[BusinessTier, float]] = {
    BusinessType.FREE: {
        BusinessTier.MICRO: 1.0,
        BusinessTier.SMALL: 0.3,
        BusinessTier.MEDIUM: 0.1,
        BusinessTier.ENTERPRISE: 0.0,
    },
    BusinessType.RENEWABLES: {
        BusinessTier.MICRO: 0.4,
        BusinessTier.SMALL: 1.0,
        BusinessTier.MEDIUM: 0.7,
        BusinessTier.ENTERPRISE: 0.3,
    },
    BusinessType.RETAIL: {
        BusinessTier.MICRO: 0.5,
        BusinessTier.SMALL: 1.0,
        BusinessTier.MEDIUM: 0.6,
        BusinessTier.ENTERPRISE: 0.2,
    },
    BusinessType.WHOLESALE: {
        BusinessTier.MICRO: 0.2,
        BusinessTier.SMALL: 0.6,
        BusinessTier.MEDIUM: 1.0,
        BusinessTier.ENTERPRISE: 0.8,
    },
    BusinessType.INDUSTRY: {
        BusinessTier.MICRO: 0.1,
        BusinessTier.SMALL: 0.3,
        BusinessTier.MEDIUM: 0.7,
        BusinessTier.ENTERPRISE: 1.0,
    },
}

# Affinity of each size bucket for each tier
BUSINESS_SIZE_MULTIPLIERS: Dict[BusinessSize, Dict[BusinessTier, float]] = {
    BusinessSize.SOLO: {
        BusinessTier.MICRO: 1.2,
        BusinessTier.SMALL: 0.8,
        BusinessTier.MEDIUM: 0.4,
        BusinessTier.ENTERPRISE: 0.1,
    },
    BusinessSize.SMALL: {
        BusinessTier.MICRO: 0.9,
        BusinessTier.SMALL: 1.2,
        BusinessTier.MEDIUM: 0.8,
        BusinessTier.ENTERPRISE: 0.3,
    },
    BusinessSize.MEDIUM: {
        BusinessTier.MICRO: 0.5,
        BusinessTier.SMALL: 0.9,
        BusinessTier.MEDIUM: 1.2,
        BusinessTier.ENTERPRISE: 0.7,
    },
    BusinessSize.LARGE: {
        BusinessTier.MICRO: 0.2,
        BusinessTier.SMALL: 0.6,
        BusinessTier.MEDIUM: 1.0,
        BusinessTier.ENTERPRISE: 1.1,
    },
    BusinessSize.ENTERPRISE: {
        BusinessTier.MICRO: 0.1,
        BusinessTier.SMALL: 0.3,
        BusinessTier.MEDIUM: 0.7,
        BusinessTier.ENTERPRISE: 1.3,
    },
}

NEUTRAL_MULTIPLIER = 1.0


# =============================================================================
# REASONING TEMPLATES
# =============================================================================

# (predicate, sentence) pairs; the first match of each group is used
BUSINESS_TYPE_REASONS: List[Tuple[Callable[[BusinessProfile], bool], str]] = [
    (lambda p: p.business_type == BusinessType.FREE,
     "Free business type suggests starting with a cost-effective solution"),
    (lambda p: p.business_type == BusinessType.INDUSTRY,
     "Industrial operations typically require advanced enterprise features"),
    (lambda p: p.business_type == BusinessType.WHOLESALE,
     "Wholesale operations benefit from B2B-focused features"),
    (lambda p: True,
     "Retail and renewable businesses typically need growth-oriented features"),
]

SCALE_REASONS: List[Tuple[Callable[[BusinessProfile], bool], str]] = [
    (lambda p: p.employees > 100 or p.locations > 10,
     "Large scale operations require enterprise-level capabilities"),
    (lambda p: p.employees > 25 or p.locations > 3,
     "Medium-scale operations benefit from advanced business features"),
    (lambda p: p.employees <= 5 and p.locations <= 1,
     "Small operations can start with basic features and scale up"),
]

REVENUE_REASONS: List[Tuple[Callable[[BusinessProfile], bool], str]] = [
    (lambda p: p.monthly_revenue > 1_000_000,
     "High revenue volume requires enterprise-grade financial management"),
    (lambda p: p.monthly_revenue > 100_000,
     "Significant revenue requires advanced reporting and analytics"),
    (lambda p: p.monthly_revenue > 10_000,
     "Growing revenue benefits from professional business tools"),
]

TRANSACTION_REASONS: List[Tuple[Callable[[BusinessProfile], bool], str]] = [
    (lambda p: p.monthly_transactions > 50_000,
     "High transaction volume requires enterprise performance and scalability"),
    (lambda p: p.monthly_transactions > 10_000,
     "Moderate transaction volume benefits from advanced POS features"),
]

TIER_CLOSING_REASONS: Dict[BusinessTier, str] = {
    BusinessTier.MICRO: "Micro tier provides essential features to get started without upfront costs",
    BusinessTier.SMALL: "Small tier offers the right balance of features and affordability for growing businesses",
    BusinessTier.MEDIUM: "Medium tier provides advanced B2B capabilities for established operations",
    BusinessTier.ENTERPRISE: "Enterprise tier delivers comprehensive features for large-scale operations",
}

ALTERNATIVE_REASONS: Dict[BusinessTier, str] = {
    BusinessTier.MICRO: "Consider starting with the free tier to minimize initial costs",
    BusinessTier.SMALL: "Small tier offers good value for growing businesses",
    BusinessTier.MEDIUM: "Medium tier provides advanced features for scaling operations",
    BusinessTier.ENTERPRISE: "Enterprise tier offers unlimited scalability and premium support",
}

FALLBACK_TIER = BusinessTier.SMALL
FALLBACK_REASONING = [
    "Small tier is a balanced starting point for most businesses",
    "You can upgrade or downgrade at any time as your needs become clearer",
]


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class TierAlternative:
    """A tier worth considering besides the recommendation."""
    tier: BusinessTier
    reason: str
    score: float
    savings: Optional[Decimal] = None  # Monthly, only when cheaper


@dataclass
class Recommendation:
    """Result of one scoring call. Never persisted."""
    recommended_tier: BusinessTier
    confidence: float
    reasoning: List[str]
    alternatives: List[TierAlternative] = field(default_factory=list)
    scores: Dict[BusinessTier, float] = field(default_factory=dict)
    cost_analysis: Dict[str, Decimal] = field(default_factory=dict)
    is_fallback: bool = False


# =============================================================================
# ENGINE
# =============================================================================

class RecommendationEngine:
    """
    Recommends a subscription tier for a business profile.

    Usage:
        engine = RecommendationEngine()
        recommendation = engine.recommend(profile)
    """

    def __init__(
        self,
        min_viability: float = 0.1,
        fallback_confidence: float = 0.5,
    ):
        self.min_viability = min_viability
        self.fallback_confidence = fallback_confidence

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def recommend(self, profile: BusinessProfile) -> Recommendation:
        """
        Score every tier and build a recommendation.

        Never raises: if scoring fails the static fallback is returned.
        """
        try:
            return self._recommend(profile)
        except Exception:
            logger.exception("Tier scoring failed, using fallback recommendation")
            return self.fallback_recommendation()

    def recommend_from_data(self, onboarding_data: Mapping[str, Any]) -> Recommendation:
        """Recommend from raw wizard data, falling back when it cannot be read."""
        try:
            profile = BusinessProfile.from_onboarding_data(onboarding_data)
        except ValueError as e:
            logger.warning(f"Incomplete business profile, using fallback recommendation: {e}")
            return self.fallback_recommendation()
        return self.recommend(profile)

    def fallback_recommendation(self) -> Recommendation:
        """Static default used whenever the engine cannot run."""
        return Recommendation(
            recommended_tier=FALLBACK_TIER,
            confidence=self.fallback_confidence,
            reasoning=list(FALLBACK_REASONING),
            cost_analysis=calculate_cost_analysis(FALLBACK_TIER),
            is_fallback=True,
        )

    def score_tiers(self, profile: BusinessProfile) -> Dict[BusinessTier, float]:
        """Score of every tier for a profile, in rank order."""
        return {tier: self.score_tier(tier, profile) for tier in TIER_ORDER}

    def score_tier(self, tier: BusinessTier, profile: BusinessProfile) -> float:
        """Weighted, affinity-adjusted score of a single tier (>= 0)."""
        limits = get_scoring_range(tier)

        score = 0.0
        score += self._centered_fit(
            profile.employees, limits.employees, EMPLOYEE_WEIGHT, EMPLOYEE_PENALTY
        )
        score += self._centered_fit(
            profile.locations, limits.locations, LOCATION_WEIGHT, LOCATION_PENALTY
        )
        score += self._volume_fit(
            profile.monthly_revenue, limits.revenue, REVENUE_WEIGHT, REVENUE_PENALTY
        )
        score += self._volume_fit(
            profile.monthly_transactions, limits.transactions, TRANSACTION_WEIGHT, TRANSACTION_PENALTY
        )

        score *= self.business_type_weight(profile.business_type, tier)
        score *= self.business_size_multiplier(profile.business_size, tier)

        return max(0.0, score)

    @staticmethod
    def business_type_weight(business_type: BusinessType, tier: BusinessTier) -> float:
        weights = BUSINESS_TYPE_WEIGHTS.get(business_type)
        if weights is None:
            return NEUTRAL_MULTIPLIER
        return weights[tier]

    @staticmethod
    def business_size_multiplier(business_size: Optional[BusinessSize], tier: BusinessTier) -> float:
        if business_size is None:
            return NEUTRAL_MULTIPLIER
        multipliers = BUSINESS_SIZE_MULTIPLIERS.get(business_size)
        if multipliers is None:
            return NEUTRAL_MULTIPLIER
        return multipliers[tier]

    @staticmethod
    def calculate_confidence(best: float, second: float) -> float:
        """
        Share of the top two scores held by the winner, capped at 0.95.

        Tends to 0.5 as the two scores converge. All-zero scores carry no
        signal and report 0.5.
        """
        if best <= 0:
            return 0.5
        if second <= 0:
            return MAX_CONFIDENCE
        return round(min(best / (best + second), MAX_CONFIDENCE), 2)

    def generate_reasoning(self, profile: BusinessProfile, tier: BusinessTier) -> List[str]:
        """Template sentences: type, scale, revenue, transactions, tier."""
        reasoning: List[str] = []
        for group in (BUSINESS_TYPE_REASONS, SCALE_REASONS, REVENUE_REASONS, TRANSACTION_REASONS):
            for matches, sentence in group:
                if matches(profile):
                    reasoning.append(sentence)
                    break
        reasoning.append(TIER_CLOSING_REASONS[tier])
        return reasoning

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _recommend(self, profile: BusinessProfile) -> Recommendation:
        scores = self.score_tiers(profile)

        # Strict comparison in rank order keeps ties on the cheaper tier
        best_tier = TIER_ORDER[0]
        for tier in TIER_ORDER[1:]:
            if scores[tier] > scores[best_tier]:
                best_tier = tier

        ranked = sorted(
            (tier for tier in TIER_ORDER if tier != best_tier),
            key=lambda t: scores[t],
            reverse=True,
        )
        second_score = scores[ranked[0]] if ranked else 0.0

        return Recommendation(
            recommended_tier=best_tier,
            confidence=self.calculate_confidence(scores[best_tier], second_score),
            reasoning=self.generate_reasoning(profile, best_tier),
            alternatives=self._alternatives(best_tier, ranked, scores),
            scores=scores,
            cost_analysis=calculate_cost_analysis(best_tier),
        )

    def _alternatives(
        self,
        recommended: BusinessTier,
        ranked: List[BusinessTier],
        scores: Dict[BusinessTier, float],
    ) -> List[TierAlternative]:
        recommended_price = get_tier_pricing(recommended).monthly
        alternatives: List[TierAlternative] = []

        for tier in ranked:
            if scores[tier] <= self.min_viability:
                continue
            savings = recommended_price - get_tier_pricing(tier).monthly
            alternatives.append(
                TierAlternative(
                    tier=tier,
                    reason=ALTERNATIVE_REASONS[tier],
                    score=round(scores[tier], 4),
                    savings=savings if savings > 0 else None,
                )
            )
            if len(alternatives) == MAX_ALTERNATIVES:
                break

        return alternatives

    @staticmethod
    def _centered_fit(value: float, limit: int, weight: float, penalty: float) -> float:
        """Peaks at half the limit, falls off linearly toward 0 and the limit."""
        if value > limit:
            return penalty
        return weight * (1 - abs(value - limit / 2) / limit)

    @staticmethod
    def _volume_fit(value: float, limit: int, weight: float, penalty: float) -> float:
        """Grows linearly toward the limit."""
        if value > limit:
            return penalty
        return weight * (value / limit)

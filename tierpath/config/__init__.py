"""
TierPath Onboarding - Configuration Package

Application settings and the tier catalog.
"""

from tierpath.config.settings import Settings, get_settings
from tierpath.config.tier_config import (
    BusinessTier,
    SupportLevel,
    Feature,
    TIER_ORDER,
    UNLIMITED,
    TierPricing,
    TierLimits,
    TierScoringRange,
    TIER_PRICING,
    TIER_LIMITS_CONFIG,
    TIER_SCORING_RANGES,
    tier_rank,
    get_tier_pricing,
    get_tier_limits,
    get_scoring_range,
    get_permissions_for_tier,
    get_features_for_tier,
    get_support_level,
    get_tier_display_name,
    calculate_cost_analysis,
    parse_tier,
)

__all__ = [
    "Settings",
    "get_settings",
    "BusinessTier",
    "SupportLevel",
    "Feature",
    "TIER_ORDER",
    "UNLIMITED",
    "TierPricing",
    "TierLimits",
    "TierScoringRange",
    "TIER_PRICING",
    "TIER_LIMITS_CONFIG",
    "TIER_SCORING_RANGES",
    "tier_rank",
    "get_tier_pricing",
    "get_tier_limits",
    "get_scoring_range",
    "get_permissions_for_tier",
    "get_features_for_tier",
    "get_support_level",
    "get_tier_display_name",
    "calculate_cost_analysis",
    "parse_tier",
]

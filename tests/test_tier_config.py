"""
TierPath Onboarding - Tier Catalog Tests

Tests for tier ranking, pricing, limits and the cumulative permission
and feature tables.
"""

from decimal import Decimal

import pytest

from tierpath.config.tier_config import (
    BusinessTier,
    Feature,
    SupportLevel,
    TIER_ORDER,
    UNLIMITED,
    SUPPORT_FEATURES,
    tier_rank,
    get_tier_pricing,
    get_tier_limits,
    get_permissions_for_tier,
    get_features_for_tier,
    get_support_level,
    get_tier_display_name,
    calculate_cost_analysis,
    parse_tier,
    format_usd,
)


class TestTierRanking:
    """Test the fixed tier order."""

    def test_order_is_cheapest_first(self):
        """Test tiers are ordered cheapest first."""
        assert TIER_ORDER == [
            BusinessTier.MICRO,
            BusinessTier.SMALL,
            BusinessTier.MEDIUM,
            BusinessTier.ENTERPRISE,
        ]

    def test_rank_is_position(self):
        """Test rank is the position in the order."""
        assert [tier_rank(t) for t in TIER_ORDER] == [0, 1, 2, 3]

    def test_prices_increase_with_rank(self):
        """Test prices increase with rank."""
        prices = [get_tier_pricing(t).monthly for t in TIER_ORDER]
        assert prices == sorted(prices)


class TestTierPricing:
    """Test pricing and cost analysis."""

    def test_monthly_prices(self):
        """Test monthly prices."""
        assert get_tier_pricing(BusinessTier.MICRO).monthly == Decimal("0")
        assert get_tier_pricing(BusinessTier.SMALL).monthly == Decimal("49")
        assert get_tier_pricing(BusinessTier.MEDIUM).monthly == Decimal("99")
        assert get_tier_pricing(BusinessTier.ENTERPRISE).monthly == Decimal("299")

    def test_cost_analysis_small(self):
        """Test the Small tier cost analysis."""
        analysis = calculate_cost_analysis(BusinessTier.SMALL)
        assert analysis["monthly"] == Decimal("49")
        assert analysis["annual"] == Decimal("468")
        assert analysis["annual_savings"] == Decimal("120")

    def test_free_tier_has_no_savings(self):
        """Test the free tier has no savings."""
        assert calculate_cost_analysis(BusinessTier.MICRO)["annual_savings"] == Decimal("0")

    def test_display_names(self):
        """Test display names."""
        assert get_tier_display_name(BusinessTier.MICRO) == "Micro (Free)"
        assert get_tier_display_name(BusinessTier.ENTERPRISE) == "Enterprise"

    def test_format_usd(self):
        """Test USD formatting."""
        assert format_usd(Decimal("1299")) == "$1,299.00"


class TestTierLimits:
    """Test hard limits."""

    def test_small_limits(self):
        """Test the Small tier limits."""
        limits = get_tier_limits(BusinessTier.SMALL)
        assert (limits.employees, limits.locations, limits.transactions) == (25, 5, 10_000)

    def test_enterprise_is_unlimited(self):
        """Test Enterprise limits are unlimited."""
        limits = get_tier_limits(BusinessTier.ENTERPRISE)
        for metric in ("employees", "locations", "transactions", "storage_gb", "api_calls"):
            assert getattr(limits, metric) == UNLIMITED
            assert limits.is_unlimited(metric)


class TestPermissionTables:
    """Test that higher tiers never lose capabilities."""

    @pytest.mark.parametrize("lower,higher", list(zip(TIER_ORDER, TIER_ORDER[1:])))
    def test_permissions_are_cumulative(self, lower, higher):
        """Test permissions accumulate up the tiers."""
        assert get_permissions_for_tier(lower) < get_permissions_for_tier(higher)

    @pytest.mark.parametrize("lower,higher", list(zip(TIER_ORDER, TIER_ORDER[1:])))
    def test_capability_features_are_cumulative(self, lower, higher):
        """Test capability features accumulate up the tiers."""
        support = set(SUPPORT_FEATURES.values())
        assert (get_features_for_tier(lower) - support) < (get_features_for_tier(higher) - support)

    def test_each_tier_has_only_its_own_support_feature(self):
        """Test each tier has only its own support feature."""
        support = set(SUPPORT_FEATURES.values())
        for tier in TIER_ORDER:
            assert get_features_for_tier(tier) & support == {SUPPORT_FEATURES[tier]}

    def test_support_levels(self):
        """Test support levels per tier."""
        assert get_support_level(BusinessTier.MICRO) == SupportLevel.COMMUNITY
        assert get_support_level(BusinessTier.ENTERPRISE) == SupportLevel.DEDICATED

    def test_enterprise_only_features(self):
        """Test Enterprise-only features."""
        assert Feature.WAREHOUSE_MANAGEMENT in get_features_for_tier(BusinessTier.ENTERPRISE)
        assert Feature.WAREHOUSE_MANAGEMENT not in get_features_for_tier(BusinessTier.MEDIUM)


class TestParseTier:
    """Test tier parsing."""

    def test_parses_case_insensitively(self):
        """Test tiers parse case-insensitively."""
        assert parse_tier(" Medium ") == BusinessTier.MEDIUM

    def test_unknown_is_none(self):
        """Test an unknown tier parses as None."""
        assert parse_tier("platinum") is None
        assert parse_tier(None) is None

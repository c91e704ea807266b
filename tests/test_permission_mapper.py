"""
TierPath Onboarding - Permission Mapper Tests

Tests for tier grants, permission diffs, wildcard matching, eligibility
and upgrade/downgrade paths.
"""

import pytest

from tierpath.config.tier_config import BusinessTier, Feature, SupportLevel, TIER_ORDER
from tierpath.models.onboarding import BusinessProfile
from tierpath.services.permission_mapper import PermissionDenied


class TestTierGrants:
    """Test permissions_for and all_tier_permissions."""

    def test_small_grants(self, mapper):
        """Test the Small tier grants."""
        grants = mapper.permissions_for(BusinessTier.SMALL)

        assert "pos:advanced:read" in grants.permissions
        assert "b2b:operations:read" not in grants.permissions
        assert Feature.LOYALTY_PROGRAM in grants.features
        assert grants.limits.employees == 25
        assert grants.support_level == SupportLevel.EMAIL

    def test_all_tiers(self, mapper):
        """Test every tier is listed in rank order."""
        assert list(mapper.all_tier_permissions()) == TIER_ORDER

    @pytest.mark.parametrize("lower,higher", list(zip(TIER_ORDER, TIER_ORDER[1:])))
    def test_higher_tier_includes_lower(self, mapper, lower, higher):
        """Test a higher tier keeps every lower-tier permission."""
        assert mapper.permissions_for(lower).permissions <= mapper.permissions_for(higher).permissions


class TestPermissionDiff:
    """Test diffs between tiers."""

    def test_upgrade_adds_only(self, mapper):
        """Test an upgrade only adds permissions."""
        diff = mapper.diff(BusinessTier.MICRO, BusinessTier.SMALL)

        assert "locations:multi:manage" in diff.added
        assert diff.removed == frozenset()
        assert "pos:basic:read" in diff.unchanged

    def test_diff_is_symmetric(self, mapper):
        """Test diffs in opposite directions mirror each other."""
        up = mapper.diff(BusinessTier.SMALL, BusinessTier.ENTERPRISE)
        down = mapper.diff(BusinessTier.ENTERPRISE, BusinessTier.SMALL)

        assert up.added == down.removed
        assert up.removed == down.added
        assert up.unchanged == down.unchanged

    def test_same_tier_diff_is_empty(self, mapper):
        """Test diffing a tier against itself."""
        diff = mapper.diff(BusinessTier.MEDIUM, BusinessTier.MEDIUM)

        assert diff.added == frozenset()
        assert diff.removed == frozenset()


class TestPermissionMatching:
    """Test exact and wildcard permission checks."""

    def test_exact_match(self, mapper):
        """Test an exact permission match."""
        assert mapper.has_permission({"pos:basic:read"}, "pos:basic:read")

    def test_wildcard_covers_prefix(self, mapper):
        """Test a wildcard grants everything under its prefix."""
        assert mapper.has_permission({"pos:*"}, "pos:basic:read")
        assert mapper.has_permission({"pos:*"}, "pos:advanced:write")

    def test_wildcard_does_not_cover_other_prefix(self, mapper):
        """Test a wildcard does not leak into other prefixes."""
        assert not mapper.has_permission({"pos:*"}, "inventory:products:read")
        assert not mapper.has_permission({"pos:*"}, "posters:read")

    def test_require_permission_raises(self, mapper):
        """Test a missing permission raises PermissionDenied."""
        granted = mapper.permissions_for(BusinessTier.MICRO).permissions

        with pytest.raises(PermissionDenied) as exc_info:
            mapper.require_permission(granted, "b2b:quotes:read", BusinessTier.MICRO)

        assert exc_info.value.required == "b2b:quotes:read"
        assert "Micro tier" in str(exc_info.value)

    def test_require_permission_passes(self, mapper):
        """Test a granted permission passes silently."""
        mapper.require_permission({"pos:*"}, "pos:basic:read")

    def test_tier_has_permission(self, mapper):
        """Test checking a permission against a tier."""
        assert mapper.tier_has_permission(BusinessTier.ENTERPRISE, "whitelabel:access")
        assert not mapper.tier_has_permission(BusinessTier.MEDIUM, "whitelabel:access")


class TestEligibility:
    """Test profile checks against hard limits."""

    def test_within_limits(self, mapper):
        """Test a profile within limits."""
        profile = BusinessProfile(employees=10, locations=2, monthly_transactions=2_000)

        result = mapper.validate_eligibility(BusinessTier.SMALL, profile)

        assert result.eligible is True
        assert result.reasons == []
        assert result.warnings == []

    def test_exceeding_employees_blocks(self, mapper):
        """Test exceeding the employee limit blocks assignment."""
        profile = BusinessProfile(employees=150, locations=2, monthly_transactions=2_000)

        result = mapper.validate_eligibility(BusinessTier.SMALL, profile)

        assert result.eligible is False
        assert result.reasons == ["Employee count (150) exceeds tier limit (25)"]
        assert result.violated_limits[0].metric == "employees"

    def test_approaching_limit_only_warns(self, mapper):
        """Test approaching a limit only warns."""
        profile = BusinessProfile(employees=22, locations=1, monthly_transactions=100)

        result = mapper.validate_eligibility(BusinessTier.SMALL, profile)

        assert result.eligible is True
        assert result.warnings == ["Employee count (22) is approaching tier limit (25)"]

    def test_exactly_eighty_percent_does_not_warn(self, mapper):
        """Test only usage above 80% of a limit warns."""
        profile = BusinessProfile(employees=20, locations=1, monthly_transactions=100)

        result = mapper.validate_eligibility(BusinessTier.SMALL, profile)

        assert result.eligible is True
        assert result.approaching_limits == []

    def test_exactly_at_limit_is_eligible(self, mapper):
        """Test usage exactly at the limit is still eligible."""
        profile = BusinessProfile(employees=25, locations=5, monthly_transactions=10_000)

        result = mapper.validate_eligibility(BusinessTier.SMALL, profile)

        assert result.eligible is True
        assert len(result.approaching_limits) == 3

    def test_revenue_only_warns(self, mapper):
        """Test high revenue warns without blocking."""
        profile = BusinessProfile(employees=1, locations=1, monthly_revenue=150_000)

        result = mapper.validate_eligibility(BusinessTier.SMALL, profile)

        assert result.eligible is True
        assert [check.metric for check in result.approaching_limits] == ["revenue"]

    def test_unlimited_tier_always_passes(self, mapper):
        """Test unlimited limits always pass."""
        profile = BusinessProfile(
            employees=100_000,
            locations=5_000,
            monthly_transactions=10_000_000,
            monthly_revenue=1e9,
        )

        result = mapper.validate_eligibility(BusinessTier.ENTERPRISE, profile)

        assert result.eligible is True
        assert result.violated_limits == []
        assert result.approaching_limits == []


class TestTierPaths:
    """Test upgrade and downgrade paths."""

    def test_valid_transitions(self, mapper):
        """Test upgrade and downgrade validity."""
        assert mapper.is_valid_upgrade(BusinessTier.MICRO, BusinessTier.MEDIUM)
        assert not mapper.is_valid_upgrade(BusinessTier.MEDIUM, BusinessTier.MEDIUM)
        assert mapper.is_valid_downgrade(BusinessTier.ENTERPRISE, BusinessTier.SMALL)
        assert not mapper.is_valid_downgrade(BusinessTier.SMALL, BusinessTier.MEDIUM)

    def test_transitions_follow_rank(self, mapper):
        """Test transition validity follows tier rank for every pair."""
        for lower in TIER_ORDER:
            for higher in TIER_ORDER:
                if TIER_ORDER.index(lower) < TIER_ORDER.index(higher):
                    assert mapper.is_valid_upgrade(lower, higher)
                    assert mapper.is_valid_downgrade(higher, lower)
                elif lower == higher:
                    assert not mapper.is_valid_upgrade(lower, higher)
                    assert not mapper.is_valid_downgrade(lower, higher)

    def test_upgrade_path_cheapest_first(self, mapper):
        """Test upgrade paths list higher tiers cheapest first."""
        assert mapper.upgrade_path(BusinessTier.SMALL) == [BusinessTier.MEDIUM, BusinessTier.ENTERPRISE]
        assert mapper.upgrade_path(BusinessTier.ENTERPRISE) == []

    def test_downgrade_path_nearest_first(self, mapper):
        """Test downgrade paths list lower tiers nearest first."""
        assert mapper.downgrade_path(BusinessTier.MEDIUM) == [BusinessTier.SMALL, BusinessTier.MICRO]
        assert mapper.downgrade_path(BusinessTier.MICRO) == []

    def test_compare_tiers(self, mapper):
        """Test the plan comparison rows."""
        rows = mapper.compare_tiers()

        assert [row["tier"] for row in rows] == TIER_ORDER
        assert rows[1]["price_label"] == "$49.00"
        assert "community-support" in rows[0]["features"]
        assert "community-support" not in rows[1]["features"]
        assert rows[3]["limits"]["employees"] == -1

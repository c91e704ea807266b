"""
TierPath Onboarding - Tier Assignment Service Tests

Tests for tier assignment, permission updates, upgrades, downgrades and
tier-change listeners.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tierpath.config.tier_config import BusinessTier
from tierpath.models.onboarding import BusinessProfile
from tierpath.services.tier_assignment_service import (
    BillingCycle,
    DowngradeReason,
    TierAssignmentService,
)
from tierpath.utils.error_handling import (
    InvalidTierTransitionException,
    OnboardingAPIException,
    TierNotEligibleException,
)


@pytest.fixture
def tiers(api_client, mapper) -> TierAssignmentService:
    return TierAssignmentService(api_client, mapper)


class TestAssignTier:
    """Test initial tier assignment."""

    @pytest.mark.asyncio
    async def test_payload(self, tiers, api_client):
        """Test the assignment payload."""
        result = await tiers.assign_tier("user-1", BusinessTier.SMALL, reason="Onboarding completed")

        assert result.success is True
        assert result.assigned_tier == BusinessTier.SMALL

        payload = api_client.assign_tier.await_args.args[0]
        assert payload["userId"] == "user-1"
        assert payload["tier"] == "small"
        assert payload["limits"] == {
            "employees": 25,
            "locations": 5,
            "transactions": 10_000,
            "storage": 10,
            "apiCalls": 10_000,
        }
        assert "pos:advanced:read" in payload["permissions"]
        assert "email-support" in payload["features"]
        assert payload["reason"] == "Onboarding completed"

    @pytest.mark.asyncio
    async def test_ineligible_profile_raises(self, tiers, api_client):
        """Test an ineligible profile is never assigned."""
        profile = BusinessProfile(employees=150, locations=1)

        with pytest.raises(TierNotEligibleException) as exc_info:
            await tiers.assign_tier("user-1", BusinessTier.SMALL, profile)

        assert exc_info.value.violations == ["Employee count (150) exceeds tier limit (25)"]
        api_client.assign_tier.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remote_failure_is_unsuccessful(self, tiers, api_client):
        """Test a remote failure is unsuccessful."""
        api_client.assign_tier.side_effect = OnboardingAPIException("Network error: refused")

        result = await tiers.assign_tier("user-1", BusinessTier.MICRO)

        assert result.success is False
        assert result.error == "Network error: refused"

    @pytest.mark.asyncio
    async def test_unsuccessful_response(self, tiers, api_client):
        """Test an unsuccessful API response."""
        api_client.assign_tier.return_value = {"success": False}

        result = await tiers.assign_tier("user-1", BusinessTier.MICRO)

        assert result.success is False
        assert result.error == "Failed to assign tier"


class TestUpdatePermissions:
    """Test pushing a permission diff."""

    @pytest.mark.asyncio
    async def test_downgrade_diff(self, tiers, api_client):
        """Test a downgrade pushes the removed permissions."""
        result = await tiers.update_permissions("user-1", BusinessTier.MEDIUM, BusinessTier.SMALL)

        payload = api_client.update_permissions.await_args.args[0]
        assert payload["addedPermissions"] == []
        assert "b2b:quotes:read" in payload["removedPermissions"]
        assert "b2b:quotes:read" not in payload["permissions"]
        assert result.success is True
        assert result.removed_permissions == payload["removedPermissions"]

    @pytest.mark.asyncio
    async def test_remote_failure(self, tiers, api_client):
        """Test a remote failure on permission update."""
        api_client.update_permissions.side_effect = OnboardingAPIException("Server error (500): internal error")

        result = await tiers.update_permissions("user-1", BusinessTier.MICRO, BusinessTier.SMALL)

        assert result.success is False


class TestUpgradeDowngrade:
    """Test rank-checked tier changes."""

    @pytest.mark.asyncio
    async def test_upgrade(self, tiers, api_client):
        """Test upgrading a tier."""
        result = await tiers.upgrade_tier("user-1", BusinessTier.MEDIUM, BillingCycle.ANNUALLY)

        assert result.success is True
        assert result.previous_tier == BusinessTier.SMALL
        assert result.new_tier == BusinessTier.MEDIUM
        assert result.changed_at == datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert "b2b:quotes:read" in result.permissions
        api_client.upgrade_tier.assert_awaited_once_with({
            "userId": "user-1",
            "newTier": "medium",
            "previousTier": "small",
            "billingCycle": "annually",
        })

    @pytest.mark.asyncio
    async def test_upgrade_to_same_tier_raises(self, tiers, api_client):
        """Test upgrading to the same tier raises."""
        with pytest.raises(InvalidTierTransitionException):
            await tiers.upgrade_tier("user-1", BusinessTier.SMALL)

        api_client.upgrade_tier.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upgrade_to_lower_tier_raises(self, tiers):
        """Test upgrading to a lower tier raises."""
        with pytest.raises(InvalidTierTransitionException) as exc_info:
            await tiers.upgrade_tier("user-1", BusinessTier.MICRO)

        assert exc_info.value.message == "Invalid upgrade path: small -> micro"

    @pytest.mark.asyncio
    async def test_unknown_current_tier_is_micro(self, tiers, api_client):
        """Test an unknown current tier is treated as Micro."""
        api_client.get_current_tier.return_value = None

        result = await tiers.upgrade_tier("user-1", BusinessTier.SMALL)

        assert result.previous_tier == BusinessTier.MICRO

    @pytest.mark.asyncio
    async def test_upgrade_remote_failure(self, tiers, api_client):
        """Test a remote failure on upgrade."""
        api_client.upgrade_tier.side_effect = OnboardingAPIException("Request timeout - onboarding API did not respond in time")

        result = await tiers.upgrade_tier("user-1", BusinessTier.ENTERPRISE)

        assert result.success is False
        assert result.previous_tier == BusinessTier.SMALL

    @pytest.mark.asyncio
    async def test_upgrade_rejected_by_api(self, tiers, api_client):
        """Test an upgrade rejected by the API."""
        api_client.upgrade_tier.return_value = {"success": False, "error": "Payment declined"}

        result = await tiers.upgrade_tier("user-1", BusinessTier.ENTERPRISE)

        assert result.success is False
        assert result.error == "Payment declined"

    @pytest.mark.asyncio
    async def test_downgrade(self, tiers, api_client):
        """Test downgrading a tier."""
        result = await tiers.downgrade_tier("user-1", BusinessTier.MICRO, DowngradeReason.PAYMENT_FAILED)

        assert result.success is True
        assert result.reason == "payment_failed"
        assert "pos:advanced:read" not in result.permissions
        assert api_client.downgrade_tier.await_args.args[0]["reason"] == "payment_failed"

    @pytest.mark.asyncio
    async def test_downgrade_to_higher_tier_raises(self, tiers):
        """Test downgrading to a higher tier raises."""
        with pytest.raises(InvalidTierTransitionException):
            await tiers.downgrade_tier("user-1", BusinessTier.ENTERPRISE, DowngradeReason.USER_REQUESTED)


class TestListeners:
    """Test tier-change notifications."""

    @pytest.mark.asyncio
    async def test_listener_receives_change(self, tiers):
        """Test listeners receive tier changes."""
        listener = MagicMock()
        tiers.add_listener("audit", listener)

        await tiers.upgrade_tier("user-1", BusinessTier.MEDIUM)

        event = listener.call_args.args[0]
        assert event.user_id == "user-1"
        assert event.old_tier == BusinessTier.SMALL
        assert event.new_tier == BusinessTier.MEDIUM
        assert event.reason == "User upgrade"

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_change(self, tiers):
        """Test a failing listener does not break the change."""
        tiers.add_listener("broken", MagicMock(side_effect=RuntimeError("boom")))
        healthy = MagicMock()
        tiers.add_listener("healthy", healthy)

        result = await tiers.assign_tier("user-1", BusinessTier.SMALL)

        assert result.success is True
        healthy.assert_called_once()

    @pytest.mark.asyncio
    async def test_removed_listener_is_not_called(self, tiers):
        """Test a removed listener is not called."""
        listener = MagicMock()
        tiers.add_listener("audit", listener)
        tiers.remove_listener("audit")

        await tiers.assign_tier("user-1", BusinessTier.SMALL)

        listener.assert_not_called()

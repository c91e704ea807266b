"""
TierPath Onboarding - Tier Assignment Service

Assigns, upgrades and downgrades a user's tier through the onboarding
API and notifies tier-change listeners.

Rank and eligibility are checked locally before anything is sent.
Remote failures come back as unsuccessful results; rule violations are
raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tierpath.config.tier_config import (
    BusinessTier,
    get_tier_limits,
    parse_tier,
)
from tierpath.models.onboarding import BusinessProfile
from tierpath.models.recovery import utcnow
from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.services.permission_mapper import PermissionMapper
from tierpath.utils.error_handling import (
    InvalidTierTransitionException,
    OnboardingAPIException,
    TierNotEligibleException,
)

logger = logging.getLogger(__name__)


class DowngradeReason(str, Enum):
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    PAYMENT_FAILED = "payment_failed"
    USER_REQUESTED = "user_requested"
    POLICY_VIOLATION = "policy_violation"
    ACCOUNT_SUSPENDED = "account_suspended"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    ANNUALLY = "annually"


@dataclass
class TierAssignmentResult:
    success: bool
    assigned_tier: BusinessTier
    permissions: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)
    activated_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class PermissionUpdateResult:
    success: bool
    updated_permissions: List[str] = field(default_factory=list)
    added_permissions: List[str] = field(default_factory=list)
    removed_permissions: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class TierChangeResult:
    """Outcome of an upgrade or downgrade."""
    success: bool
    new_tier: BusinessTier
    previous_tier: BusinessTier
    changed_at: datetime = field(default_factory=utcnow)
    permissions: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    subscription_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TierChangeEvent:
    user_id: str
    old_tier: Optional[BusinessTier]
    new_tier: BusinessTier
    timestamp: datetime
    reason: str
    permissions: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)


TierChangeListener = Callable[[TierChangeEvent], None]


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class TierAssignmentService:
    """
    Tier changes for a user.

    Usage:
        service = TierAssignmentService(api_client, PermissionMapper())
        result = await service.assign_tier(user_id, BusinessTier.SMALL, profile)
    """

    def __init__(self, api_client: OnboardingAPIClient, mapper: PermissionMapper):
        self.api_client = api_client
        self.mapper = mapper
        self._listeners: Dict[str, TierChangeListener] = {}

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def add_listener(self, listener_id: str, listener: TierChangeListener) -> None:
        self._listeners[listener_id] = listener

    def remove_listener(self, listener_id: str) -> None:
        self._listeners.pop(listener_id, None)

    def _emit(self, event: TierChangeEvent) -> None:
        for listener_id, listener in list(self._listeners.items()):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Tier change listener {listener_id} failed: {e}")

    # =========================================================================
    # ASSIGNMENT
    # =========================================================================

    async def assign_tier(
        self,
        user_id: str,
        tier: BusinessTier,
        profile: Optional[BusinessProfile] = None,
        reason: Optional[str] = None,
    ) -> TierAssignmentResult:
        """
        Assign a tier with its permission, feature and limit payload.

        Raises:
            TierNotEligibleException: if `profile` exceeds the tier's limits
        """
        if profile is not None:
            eligibility = self.mapper.validate_eligibility(tier, profile)
            if not eligibility.eligible:
                raise TierNotEligibleException(tier.value, eligibility.reasons)

        grants = self.mapper.permissions_for(tier)
        limits = get_tier_limits(tier)
        payload = {
            "userId": user_id,
            "tier": tier.value,
            "permissions": sorted(grants.permissions),
            "features": sorted(feature.value for feature in grants.features),
            "limits": {
                "employees": limits.employees,
                "locations": limits.locations,
                "transactions": limits.transactions,
                "storage": limits.storage_gb,
                "apiCalls": limits.api_calls,
            },
            "reason": reason,
        }

        try:
            response = await self.api_client.assign_tier(payload)
        except OnboardingAPIException as e:
            logger.error(f"Tier assignment failed for {user_id}: {e.message}")
            return TierAssignmentResult(success=False, assigned_tier=tier, error=e.message)

        if not response.get("success"):
            return TierAssignmentResult(success=False, assigned_tier=tier, error="Failed to assign tier")

        result = TierAssignmentResult(
            success=True,
            assigned_tier=parse_tier(response.get("assignedTier")) or tier,
            permissions=list(response.get("permissions") or payload["permissions"]),
            features=list(response.get("features") or payload["features"]),
            activated_at=_parse_datetime(response.get("activatedAt")) or utcnow(),
            expires_at=_parse_datetime(response.get("expiresAt")),
        )
        logger.info(f"Assigned tier {result.assigned_tier.value} to {user_id}")
        self._emit(TierChangeEvent(
            user_id=user_id,
            old_tier=None,
            new_tier=result.assigned_tier,
            timestamp=result.activated_at,
            reason=reason or "Tier assignment",
            permissions=result.permissions,
            features=result.features,
        ))
        return result

    async def update_permissions(
        self,
        user_id: str,
        from_tier: BusinessTier,
        to_tier: BusinessTier,
    ) -> PermissionUpdateResult:
        """Push the permission diff between two tiers."""
        diff = self.mapper.diff(from_tier, to_tier)
        payload = {
            "userId": user_id,
            "permissions": sorted(diff.added | diff.unchanged),
            "addedPermissions": sorted(diff.added),
            "removedPermissions": sorted(diff.removed),
        }

        try:
            response = await self.api_client.update_permissions(payload)
        except OnboardingAPIException as e:
            logger.error(f"Permission update failed for {user_id}: {e.message}")
            return PermissionUpdateResult(success=False, error=e.message)

        if not response.get("success"):
            return PermissionUpdateResult(success=False, error="Failed to update permissions")

        return PermissionUpdateResult(
            success=True,
            updated_permissions=list(response.get("updatedPermissions") or payload["permissions"]),
            added_permissions=list(response.get("addedPermissions") or payload["addedPermissions"]),
            removed_permissions=list(response.get("removedPermissions") or payload["removedPermissions"]),
        )

    # =========================================================================
    # UPGRADE / DOWNGRADE
    # =========================================================================

    async def get_current_tier(self, user_id: str) -> BusinessTier:
        """Current tier from the onboarding API; unknown users are Micro."""
        return parse_tier(await self.api_client.get_current_tier(user_id)) or BusinessTier.MICRO

    async def upgrade_tier(
        self,
        user_id: str,
        new_tier: BusinessTier,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
    ) -> TierChangeResult:
        """
        Move a user to a strictly higher tier.

        Payment is not processed here; the subscription id comes back
        from the onboarding API when it handles billing.

        Raises:
            InvalidTierTransitionException: if new_tier is not higher
        """
        try:
            current = await self.get_current_tier(user_id)
        except OnboardingAPIException as e:
            return TierChangeResult(success=False, new_tier=new_tier, previous_tier=BusinessTier.MICRO, error=e.message)

        if not self.mapper.is_valid_upgrade(current, new_tier):
            raise InvalidTierTransitionException(current.value, new_tier.value, "upgrade")

        try:
            response = await self.api_client.upgrade_tier({
                "userId": user_id,
                "newTier": new_tier.value,
                "previousTier": current.value,
                "billingCycle": billing_cycle.value,
            })
        except OnboardingAPIException as e:
            logger.error(f"Tier upgrade failed for {user_id}: {e.message}")
            return TierChangeResult(success=False, new_tier=new_tier, previous_tier=current, error=e.message)

        return self._finish_change(user_id, current, new_tier, response, "User upgrade", "activatedAt")

    async def downgrade_tier(
        self,
        user_id: str,
        new_tier: BusinessTier,
        reason: DowngradeReason,
    ) -> TierChangeResult:
        """
        Move a user to a strictly lower tier.

        Raises:
            InvalidTierTransitionException: if new_tier is not lower
        """
        try:
            current = await self.get_current_tier(user_id)
        except OnboardingAPIException as e:
            return TierChangeResult(
                success=False, new_tier=new_tier, previous_tier=BusinessTier.MICRO,
                reason=reason.value, error=e.message,
            )

        if not self.mapper.is_valid_downgrade(current, new_tier):
            raise InvalidTierTransitionException(current.value, new_tier.value, "downgrade")

        try:
            response = await self.api_client.downgrade_tier({
                "userId": user_id,
                "newTier": new_tier.value,
                "previousTier": current.value,
                "reason": reason.value,
            })
        except OnboardingAPIException as e:
            logger.error(f"Tier downgrade failed for {user_id}: {e.message}")
            return TierChangeResult(
                success=False, new_tier=new_tier, previous_tier=current,
                reason=reason.value, error=e.message,
            )

        result = self._finish_change(
            user_id, current, new_tier, response, f"Downgrade: {reason.value}", "downgradedAt",
        )
        result.reason = reason.value
        return result

    def _finish_change(
        self,
        user_id: str,
        current: BusinessTier,
        new_tier: BusinessTier,
        response: Dict[str, Any],
        event_reason: str,
        timestamp_field: str,
    ) -> TierChangeResult:
        if not response.get("success"):
            return TierChangeResult(
                success=False,
                new_tier=new_tier,
                previous_tier=current,
                error=response.get("error") or "Tier change failed",
            )

        grants = self.mapper.permissions_for(new_tier)
        result = TierChangeResult(
            success=True,
            new_tier=parse_tier(response.get("newTier")) or new_tier,
            previous_tier=parse_tier(response.get("previousTier")) or current,
            changed_at=_parse_datetime(response.get(timestamp_field)) or utcnow(),
            permissions=list(response.get("permissions") or sorted(grants.permissions)),
            features=list(response.get("features") or sorted(f.value for f in grants.features)),
            subscription_id=response.get("subscriptionId"),
        )
        logger.info(f"Tier changed for {user_id}: {current.value} -> {result.new_tier.value}")
        self._emit(TierChangeEvent(
            user_id=user_id,
            old_tier=current,
            new_tier=result.new_tier,
            timestamp=result.changed_at,
            reason=event_reason,
            permissions=result.permissions,
            features=result.features,
        ))
        return result

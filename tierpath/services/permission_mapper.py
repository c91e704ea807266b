"""
TierPath Onboarding - Permission Mapper

Maps tiers to their permission, feature and limit sets, diffs tiers,
matches wildcard permissions and checks a business profile against a
tier's hard limits.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from tierpath.config.tier_config import (
    BusinessTier,
    Feature,
    SupportLevel,
    TierLimits,
    TIER_ORDER,
    FEATURE_DESCRIPTIONS,
    tier_rank,
    get_tier_limits,
    get_tier_pricing,
    get_scoring_range,
    get_permissions_for_tier,
    get_features_for_tier,
    get_support_level,
    format_usd,
)
from tierpath.models.onboarding import BusinessProfile

logger = logging.getLogger(__name__)

# A metric above this share of its limit is reported as approaching it
APPROACHING_LIMIT_RATIO = 0.8

WILDCARD_SUFFIX = ":*"


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class TierPermissions:
    """Everything a tier grants."""
    tier: BusinessTier
    permissions: FrozenSet[str]
    features: FrozenSet[Feature]
    limits: TierLimits
    support_level: SupportLevel


@dataclass(frozen=True)
class PermissionDiff:
    """Set difference between the permissions of two tiers."""
    added: FrozenSet[str]
    removed: FrozenSet[str]
    unchanged: FrozenSet[str]


@dataclass
class LimitCheck:
    """One metric compared against a tier limit."""
    metric: str
    value: float
    limit: int
    message: str


@dataclass
class EligibilityResult:
    """Outcome of checking a profile against a tier's limits."""
    tier: BusinessTier
    eligible: bool
    violated_limits: List[LimitCheck] = field(default_factory=list)
    approaching_limits: List[LimitCheck] = field(default_factory=list)

    @property
    def reasons(self) -> List[str]:
        return [check.message for check in self.violated_limits]

    @property
    def warnings(self) -> List[str]:
        return [check.message for check in self.approaching_limits]


class PermissionDenied(Exception):
    """Raised when a required permission is not granted."""

    def __init__(
        self,
        required: str,
        tier: Optional[BusinessTier] = None,
    ):
        self.required = required
        self.tier = tier

        if tier:
            message = (
                f"Permission '{required}' is not included in the "
                f"{tier.value.title()} tier. Upgrade to access this feature."
            )
        else:
            message = f"Permission '{required}' is not granted."

        super().__init__(message)


# =============================================================================
# MAPPER
# =============================================================================

class PermissionMapper:
    """
    Tier to capability lookups and tier comparisons.

    Usage:
        mapper = PermissionMapper()

        # What does a tier grant?
        grants = mapper.permissions_for(BusinessTier.SMALL)

        # Can this profile be assigned the tier?
        result = mapper.validate_eligibility(BusinessTier.SMALL, profile)
    """

    # Profile metric -> (TierLimits attribute, message label)
    LIMIT_METRICS = [
        ("employees", "employees", "Employee count"),
        ("locations", "locations", "Location count"),
        ("monthly_transactions", "transactions", "Transaction volume"),
    ]

    def permissions_for(self, tier: BusinessTier) -> TierPermissions:
        """Permissions, features, limits and support level of a tier."""
        return TierPermissions(
            tier=tier,
            permissions=get_permissions_for_tier(tier),
            features=get_features_for_tier(tier),
            limits=get_tier_limits(tier),
            support_level=get_support_level(tier),
        )

    def all_tier_permissions(self) -> Dict[BusinessTier, TierPermissions]:
        return {tier: self.permissions_for(tier) for tier in TIER_ORDER}

    def diff(self, from_tier: BusinessTier, to_tier: BusinessTier) -> PermissionDiff:
        """Permissions gained, lost and kept when moving between tiers."""
        from_permissions = get_permissions_for_tier(from_tier)
        to_permissions = get_permissions_for_tier(to_tier)
        return PermissionDiff(
            added=to_permissions - from_permissions,
            removed=from_permissions - to_permissions,
            unchanged=from_permissions & to_permissions,
        )

    @staticmethod
    def has_permission(granted: Iterable[str], required: str) -> bool:
        """
        Exact match, or a granted "<prefix>:*" covering everything under
        that prefix ("pos:*" grants "pos:basic:read").
        """
        granted = list(granted)
        if required in granted:
            return True

        for permission in granted:
            if permission.endswith(WILDCARD_SUFFIX):
                prefix = permission[:-1]
                if required.startswith(prefix):
                    return True
        return False

    def require_permission(
        self,
        granted: Iterable[str],
        required: str,
        tier: Optional[BusinessTier] = None,
    ) -> None:
        """
        Raise PermissionDenied unless `required` is granted.

        Raises:
            PermissionDenied: If the permission is missing
        """
        if not self.has_permission(granted, required):
            logger.info(f"Permission denied: {required} (tier={tier.value if tier else 'n/a'})")
            raise PermissionDenied(required, tier)

    def tier_has_permission(self, tier: BusinessTier, required: str) -> bool:
        return self.has_permission(get_permissions_for_tier(tier), required)

    def validate_eligibility(
        self,
        tier: BusinessTier,
        profile: BusinessProfile,
    ) -> EligibilityResult:
        """
        Compare a profile's scale against a tier's hard limits.

        Exceeding a limit is a violation and blocks assignment. Crossing
        80% of a limit is only a warning. Revenue has no hard limit and
        can only warn. Unlimited limits always pass.
        """
        limits = get_tier_limits(tier)
        result = EligibilityResult(tier=tier, eligible=True)

        for attribute, limit_name, label in self.LIMIT_METRICS:
            value = getattr(profile, attribute)
            limit = getattr(limits, limit_name)
            if limits.is_unlimited(limit_name):
                continue

            if value > limit:
                result.eligible = False
                result.violated_limits.append(LimitCheck(
                    metric=limit_name,
                    value=value,
                    limit=limit,
                    message=f"{label} ({value}) exceeds tier limit ({limit})",
                ))
            elif value > limit * APPROACHING_LIMIT_RATIO:
                result.approaching_limits.append(LimitCheck(
                    metric=limit_name,
                    value=value,
                    limit=limit,
                    message=f"{label} ({value}) is approaching tier limit ({limit})",
                ))

        revenue_check = self._revenue_warning(tier, profile.monthly_revenue)
        if revenue_check:
            result.approaching_limits.append(revenue_check)

        return result

    @staticmethod
    def is_valid_upgrade(from_tier: BusinessTier, to_tier: BusinessTier) -> bool:
        return tier_rank(to_tier) > tier_rank(from_tier)

    @staticmethod
    def is_valid_downgrade(from_tier: BusinessTier, to_tier: BusinessTier) -> bool:
        return tier_rank(to_tier) < tier_rank(from_tier)

    @staticmethod
    def upgrade_path(current_tier: BusinessTier) -> List[BusinessTier]:
        """Higher tiers, cheapest first."""
        return TIER_ORDER[tier_rank(current_tier) + 1:]

    @staticmethod
    def downgrade_path(current_tier: BusinessTier) -> List[BusinessTier]:
        """Lower tiers, nearest first."""
        return list(reversed(TIER_ORDER[:tier_rank(current_tier)]))

    def compare_tiers(self) -> List[Dict[str, Any]]:
        """Plan comparison rows for plan selection."""
        rows = []
        for tier in TIER_ORDER:
            grants = self.permissions_for(tier)
            pricing = get_tier_pricing(tier)
            rows.append({
                "tier": tier,
                "name": pricing.name,
                "tagline": pricing.tagline,
                "price_monthly": pricing.monthly,
                "price_annually": pricing.annually,
                "price_label": format_usd(pricing.monthly),
                "features": sorted(feature.value for feature in grants.features),
                "feature_descriptions": {
                    feature.value: FEATURE_DESCRIPTIONS[feature]
                    for feature in grants.features
                    if feature in FEATURE_DESCRIPTIONS
                },
                "limits": {
                    "employees": grants.limits.employees,
                    "locations": grants.limits.locations,
                    "transactions": grants.limits.transactions,
                    "storage_gb": grants.limits.storage_gb,
                    "api_calls": grants.limits.api_calls,
                },
                "support_level": grants.support_level,
                "permission_count": len(grants.permissions),
            })
        return rows

    def _revenue_warning(self, tier: BusinessTier, revenue: float) -> Optional[LimitCheck]:
        # No revenue ceiling on a tier without any hard limit
        limits = get_tier_limits(tier)
        if all(limits.is_unlimited(name) for _, name, _ in self.LIMIT_METRICS):
            return None

        reference = get_scoring_range(tier).revenue
        if revenue > reference:
            message = f"Monthly revenue ({revenue:g}) exceeds the typical range for this tier ({reference})"
        elif revenue > reference * APPROACHING_LIMIT_RATIO:
            message = f"Monthly revenue ({revenue:g}) is approaching the typical range for this tier ({reference})"
        else:
            return None

        return LimitCheck(metric="revenue", value=revenue, limit=reference, message=message)

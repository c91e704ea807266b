"""
TierPath Onboarding - Tier Catalog

Central configuration for every subscription tier: limits, pricing,
permissions, features and support level. Tier data is a pure lookup
table and is never mutated at runtime.
"""

from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional
from dataclasses import dataclass
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class BusinessTier(str, Enum):
    """
    Subscription tiers, declared in rank order (cheapest first).

    - MICRO: free starter tier
    - SMALL: growing single/multi-location businesses
    - MEDIUM: B2B and established operations
    - ENTERPRISE: unlimited scale
    """
    MICRO = "micro"
    SMALL = "small"
    MEDIUM = "medium"
    ENTERPRISE = "enterprise"


class SupportLevel(str, Enum):
    """Support channel bundled with a tier."""
    COMMUNITY = "community"
    EMAIL = "email"
    PRIORITY = "priority"
    DEDICATED = "dedicated"


class Feature(str, Enum):
    """Feature flags that can be gated by tier."""
    # Micro features
    BASIC_POS = "basic-pos"
    INVENTORY_MANAGEMENT = "inventory-management"
    CUSTOMER_PROFILES = "customer-profiles"
    BASIC_REPORTING = "basic-reporting"
    # Small features
    ADVANCED_POS = "advanced-pos"
    ADVANCED_INVENTORY = "advanced-inventory"
    LOYALTY_PROGRAM = "loyalty-program"
    MULTI_LOCATION_SUPPORT = "multi-location-support"
    ADVANCED_ANALYTICS = "advanced-analytics"
    REAL_TIME_UPDATES = "real-time-updates"
    API_ACCESS = "api-access"
    # Medium features
    B2B_OPERATIONS = "b2b-operations"
    FINANCIAL_MANAGEMENT = "financial-management"
    QUOTE_MANAGEMENT = "quote-management"
    SSO_INTEGRATION = "sso-integration"
    USER_MANAGEMENT = "user-management"
    # Enterprise features
    WAREHOUSE_MANAGEMENT = "warehouse-management"
    PREDICTIVE_ANALYTICS = "predictive-analytics"
    CUSTOM_SLA = "custom-sla"
    WHITE_LABEL_OPTIONS = "white-label-options"
    UNLIMITED_API = "unlimited-api"
    ADVANCED_SECURITY = "advanced-security"
    COMPLIANCE_TOOLS = "compliance-tools"
    # Support features (one per tier, replaced on tier change)
    COMMUNITY_SUPPORT = "community-support"
    EMAIL_SUPPORT = "email-support"
    PRIORITY_SUPPORT = "priority-support"
    DEDICATED_SUPPORT = "dedicated-support"


# Rank order used by every upgrade/downgrade check
TIER_ORDER: List[BusinessTier] = [
    BusinessTier.MICRO,
    BusinessTier.SMALL,
    BusinessTier.MEDIUM,
    BusinessTier.ENTERPRISE,
]

# -1 in any limit means unlimited
UNLIMITED = -1


# =============================================================================
# PRICING CONFIGURATION (USD)
# =============================================================================

@dataclass(frozen=True)
class TierPricing:
    """Pricing configuration for a tier."""
    tier: BusinessTier

    monthly: Decimal
    annually: Decimal  # Per month, billed annually

    # Description
    name: str
    tagline: str


TIER_PRICING: Dict[BusinessTier, TierPricing] = {
    BusinessTier.MICRO: TierPricing(
        tier=BusinessTier.MICRO,
        monthly=Decimal("0"),
        annually=Decimal("0"),
        name="Micro (Free)",
        tagline="Essential features to get started without upfront costs",
    ),
    BusinessTier.SMALL: TierPricing(
        tier=BusinessTier.SMALL,
        monthly=Decimal("49"),
        annually=Decimal("39"),
        name="Small Business",
        tagline="The right balance of features and affordability",
    ),
    BusinessTier.MEDIUM: TierPricing(
        tier=BusinessTier.MEDIUM,
        monthly=Decimal("99"),
        annually=Decimal("79"),
        name="Medium Business",
        tagline="Advanced B2B capabilities for established operations",
    ),
    BusinessTier.ENTERPRISE: TierPricing(
        tier=BusinessTier.ENTERPRISE,
        monthly=Decimal("299"),
        annually=Decimal("249"),
        name="Enterprise",
        tagline="Comprehensive features for large-scale operations",
    ),
}


# =============================================================================
# USAGE LIMITS CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class TierLimits:
    """Hard usage limits for a tier."""
    tier: BusinessTier

    employees: int  # -1 = unlimited
    locations: int  # -1 = unlimited
    transactions: int  # Per month, -1 = unlimited
    storage_gb: int
    api_calls: int  # Per month

    def is_unlimited(self, metric: str) -> bool:
        return getattr(self, metric) == UNLIMITED


TIER_LIMITS_CONFIG: Dict[BusinessTier, TierLimits] = {
    BusinessTier.MICRO: TierLimits(
        tier=BusinessTier.MICRO,
        employees=5,
        locations=1,
        transactions=1_000,
        storage_gb=1,
        api_calls=1_000,
    ),
    BusinessTier.SMALL: TierLimits(
        tier=BusinessTier.SMALL,
        employees=25,
        locations=5,
        transactions=10_000,
        storage_gb=10,
        api_calls=10_000,
    ),
    BusinessTier.MEDIUM: TierLimits(
        tier=BusinessTier.MEDIUM,
        employees=100,
        locations=20,
        transactions=50_000,
        storage_gb=100,
        api_calls=100_000,
    ),
    BusinessTier.ENTERPRISE: TierLimits(
        tier=BusinessTier.ENTERPRISE,
        employees=UNLIMITED,
        locations=UNLIMITED,
        transactions=UNLIMITED,
        storage_gb=UNLIMITED,
        api_calls=UNLIMITED,
    ),
}


# =============================================================================
# SCORING REFERENCE RANGES
# =============================================================================

@dataclass(frozen=True)
class TierScoringRange:
    """
    Upper bound of the range a tier is designed for.

    Mirrors the hard limits for bounded tiers. The unlimited tier gets a
    finite reference so fit scores stay finite. Revenue is not a hard
    limit anywhere; it only shapes scoring and eligibility warnings.
    """
    tier: BusinessTier
    employees: int
    locations: int
    transactions: int
    revenue: int


TIER_SCORING_RANGES: Dict[BusinessTier, TierScoringRange] = {
    BusinessTier.MICRO: TierScoringRange(
        tier=BusinessTier.MICRO,
        employees=5,
        locations=1,
        transactions=1_000,
        revenue=10_000,
    ),
    BusinessTier.SMALL: TierScoringRange(
        tier=BusinessTier.SMALL,
        employees=25,
        locations=5,
        transactions=10_000,
        revenue=100_000,
    ),
    BusinessTier.MEDIUM: TierScoringRange(
        tier=BusinessTier.MEDIUM,
        employees=100,
        locations=20,
        transactions=50_000,
        revenue=1_000_000,
    ),
    BusinessTier.ENTERPRISE: TierScoringRange(
        tier=BusinessTier.ENTERPRISE,
        employees=1_000,
        locations=100,
        transactions=500_000,
        revenue=10_000_000,
    ),
}


# =============================================================================
# PERMISSION MAPPING CONFIGURATION
# =============================================================================

# Permissions are cumulative - higher tiers include lower tier permissions
MICRO_PERMISSIONS: FrozenSet[str] = frozenset({
    "pos:basic:read",
    "pos:basic:write",
    "pos:transactions:create",
    "pos:transactions:read",
    "inventory:products:read",
    "inventory:products:write",
    "inventory:basic:manage",
    "customers:basic:read",
    "customers:basic:write",
    "customers:profiles:manage",
    "reports:basic:read",
    "reports:sales:basic",
    "settings:basic:read",
    "settings:basic:write",
    "profile:read",
    "profile:write",
})

SMALL_PERMISSIONS: FrozenSet[str] = MICRO_PERMISSIONS | {
    "pos:advanced:read",
    "pos:advanced:write",
    "pos:multi-location:manage",
    "inventory:advanced:read",
    "inventory:advanced:write",
    "inventory:tracking:manage",
    "inventory:alerts:manage",
    "customers:loyalty:read",
    "customers:loyalty:write",
    "customers:loyalty:manage",
    "reports:advanced:read",
    "reports:analytics:basic",
    "reports:export:basic",
    "integrations:api:read",
    "integrations:api:write",
    "integrations:webhooks:manage",
    "notifications:email:manage",
    "notifications:basic:send",
    "locations:multi:read",
    "locations:multi:write",
    "locations:multi:manage",
}

MEDIUM_PERMISSIONS: FrozenSet[str] = SMALL_PERMISSIONS | {
    "b2b:operations:read",
    "b2b:operations:write",
    "b2b:operations:manage",
    "b2b:customers:manage",
    "b2b:pricing:manage",
    "b2b:quotes:read",
    "b2b:quotes:write",
    "b2b:quotes:manage",
    "financial:management:read",
    "financial:management:write",
    "financial:accounting:basic",
    "financial:reports:advanced",
    "analytics:advanced:read",
    "analytics:predictive:basic",
    "analytics:custom:create",
    "integrations:sso:read",
    "integrations:sso:write",
    "integrations:advanced:manage",
    "users:management:read",
    "users:management:write",
    "users:roles:manage",
    "users:permissions:manage",
    "support:priority:access",
}

ENTERPRISE_PERMISSIONS: FrozenSet[str] = MEDIUM_PERMISSIONS | {
    "warehouse:management:read",
    "warehouse:management:write",
    "warehouse:management:full",
    "warehouse:zones:manage",
    "warehouse:picking:manage",
    "analytics:predictive:advanced",
    "analytics:ai:access",
    "analytics:custom:advanced",
    "analytics:data-warehouse:access",
    "integrations:enterprise:read",
    "integrations:enterprise:write",
    "integrations:custom:develop",
    "integrations:api:unlimited",
    "security:advanced:read",
    "security:advanced:write",
    "security:audit:full",
    "security:compliance:manage",
    "support:dedicated:access",
    "support:sla:custom",
    "admin:system:read",
    "admin:system:write",
    "admin:tenant:manage",
    "admin:billing:manage",
    "whitelabel:access",
    "whitelabel:customize",
}


# =============================================================================
# FEATURE MAPPING CONFIGURATION
# =============================================================================

# Capability features are cumulative like permissions
MICRO_FEATURES: FrozenSet[Feature] = frozenset({
    Feature.BASIC_POS,
    Feature.INVENTORY_MANAGEMENT,
    Feature.CUSTOMER_PROFILES,
    Feature.BASIC_REPORTING,
})

SMALL_FEATURES: FrozenSet[Feature] = MICRO_FEATURES | {
    Feature.ADVANCED_POS,
    Feature.ADVANCED_INVENTORY,
    Feature.LOYALTY_PROGRAM,
    Feature.MULTI_LOCATION_SUPPORT,
    Feature.ADVANCED_ANALYTICS,
    Feature.REAL_TIME_UPDATES,
    Feature.API_ACCESS,
}

MEDIUM_FEATURES: FrozenSet[Feature] = SMALL_FEATURES | {
    Feature.B2B_OPERATIONS,
    Feature.FINANCIAL_MANAGEMENT,
    Feature.QUOTE_MANAGEMENT,
    Feature.SSO_INTEGRATION,
    Feature.USER_MANAGEMENT,
}

ENTERPRISE_FEATURES: FrozenSet[Feature] = MEDIUM_FEATURES | {
    Feature.WAREHOUSE_MANAGEMENT,
    Feature.PREDICTIVE_ANALYTICS,
    Feature.CUSTOM_SLA,
    Feature.WHITE_LABEL_OPTIONS,
    Feature.UNLIMITED_API,
    Feature.ADVANCED_SECURITY,
    Feature.COMPLIANCE_TOOLS,
}

# Exception to monotonicity: the support feature is replaced, not accumulated
SUPPORT_FEATURES: Dict[BusinessTier, Feature] = {
    BusinessTier.MICRO: Feature.COMMUNITY_SUPPORT,
    BusinessTier.SMALL: Feature.EMAIL_SUPPORT,
    BusinessTier.MEDIUM: Feature.PRIORITY_SUPPORT,
    BusinessTier.ENTERPRISE: Feature.DEDICATED_SUPPORT,
}

SUPPORT_LEVELS: Dict[BusinessTier, SupportLevel] = {
    BusinessTier.MICRO: SupportLevel.COMMUNITY,
    BusinessTier.SMALL: SupportLevel.EMAIL,
    BusinessTier.MEDIUM: SupportLevel.PRIORITY,
    BusinessTier.ENTERPRISE: SupportLevel.DEDICATED,
}


# =============================================================================
# FEATURE DESCRIPTIONS (For plan comparison)
# =============================================================================

FEATURE_DESCRIPTIONS: Dict[Feature, str] = {
    Feature.BASIC_POS: "Point of sale for everyday transactions",
    Feature.INVENTORY_MANAGEMENT: "Product catalog and stock levels",
    Feature.CUSTOMER_PROFILES: "Customer records and purchase history",
    Feature.BASIC_REPORTING: "Daily and monthly sales reports",
    Feature.ADVANCED_POS: "Discounts, split payments and offline mode",
    Feature.ADVANCED_INVENTORY: "Stock tracking with low-stock alerts",
    Feature.LOYALTY_PROGRAM: "Points and rewards for returning customers",
    Feature.MULTI_LOCATION_SUPPORT: "Manage up to five locations from one account",
    Feature.ADVANCED_ANALYTICS: "Trends, cohorts and exportable analytics",
    Feature.REAL_TIME_UPDATES: "Live dashboards across devices",
    Feature.API_ACCESS: "REST API and webhooks",
    Feature.B2B_OPERATIONS: "Wholesale customers, price lists and terms",
    Feature.FINANCIAL_MANAGEMENT: "Accounting basics and advanced financial reports",
    Feature.QUOTE_MANAGEMENT: "Quotes and approvals for B2B buyers",
    Feature.SSO_INTEGRATION: "Single sign-on for your team",
    Feature.USER_MANAGEMENT: "Roles and granular permissions",
    Feature.WAREHOUSE_MANAGEMENT: "Zones, picking and full warehouse control",
    Feature.PREDICTIVE_ANALYTICS: "Forecasting and AI-assisted insights",
    Feature.CUSTOM_SLA: "Contractual service levels",
    Feature.WHITE_LABEL_OPTIONS: "Your brand on every customer touchpoint",
    Feature.UNLIMITED_API: "No API call ceiling",
    Feature.ADVANCED_SECURITY: "Full audit trail and advanced security controls",
    Feature.COMPLIANCE_TOOLS: "Compliance management and reporting",
    Feature.COMMUNITY_SUPPORT: "Community forums and knowledge base",
    Feature.EMAIL_SUPPORT: "Email support during business hours",
    Feature.PRIORITY_SUPPORT: "Priority support queue",
    Feature.DEDICATED_SUPPORT: "Dedicated account manager",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def tier_rank(tier: BusinessTier) -> int:
    """Position of a tier in the fixed ranking (0 = cheapest)."""
    return TIER_ORDER.index(tier)


def get_tier_pricing(tier: BusinessTier) -> TierPricing:
    """Get pricing for a tier."""
    return TIER_PRICING[tier]


def get_tier_limits(tier: BusinessTier) -> TierLimits:
    """Get hard limits for a tier."""
    return TIER_LIMITS_CONFIG[tier]


def get_scoring_range(tier: BusinessTier) -> TierScoringRange:
    """Get the scoring reference range for a tier."""
    return TIER_SCORING_RANGES[tier]


def get_permissions_for_tier(tier: BusinessTier) -> FrozenSet[str]:
    """Get all permissions granted by a tier."""
    mapping = {
        BusinessTier.MICRO: MICRO_PERMISSIONS,
        BusinessTier.SMALL: SMALL_PERMISSIONS,
        BusinessTier.MEDIUM: MEDIUM_PERMISSIONS,
        BusinessTier.ENTERPRISE: ENTERPRISE_PERMISSIONS,
    }
    return mapping.get(tier, frozenset())


def get_features_for_tier(tier: BusinessTier) -> FrozenSet[Feature]:
    """Get all features available for a tier, support feature included."""
    mapping = {
        BusinessTier.MICRO: MICRO_FEATURES,
        BusinessTier.SMALL: SMALL_FEATURES,
        BusinessTier.MEDIUM: MEDIUM_FEATURES,
        BusinessTier.ENTERPRISE: ENTERPRISE_FEATURES,
    }
    features = mapping.get(tier, frozenset())
    support = SUPPORT_FEATURES.get(tier)
    return features | {support} if support else features


def get_support_level(tier: BusinessTier) -> SupportLevel:
    """Get the support level bundled with a tier."""
    return SUPPORT_LEVELS[tier]


def get_tier_display_name(tier: BusinessTier) -> str:
    """
    Get display name for a tier.

    Args:
        tier: The tier enum value

    Returns:
        Human-readable display name (e.g., "Small Business")
    """
    pricing = TIER_PRICING.get(tier)
    if pricing:
        return pricing.name
    return "Small Business"


def calculate_cost_analysis(tier: BusinessTier) -> Dict[str, Decimal]:
    """
    Yearly cost of a tier on each billing cycle.

    Returns:
        monthly: price per month on monthly billing
        annual: total for a year on annual billing
        annual_savings: what annual billing saves over twelve monthly payments
    """
    pricing = get_tier_pricing(tier)
    annual = pricing.annually * 12
    return {
        "monthly": pricing.monthly,
        "annual": annual,
        "annual_savings": pricing.monthly * 12 - annual,
    }


def parse_tier(value: Optional[str]) -> Optional[BusinessTier]:
    """Parse a tier identifier, returning None for unknown values."""
    if value is None:
        return None
    if isinstance(value, BusinessTier):
        return value
    try:
        return BusinessTier(str(value).strip().lower())
    except ValueError:
        return None


def format_usd(amount: Decimal) -> str:
    """Format amount as US dollars."""
    return f"${amount:,.2f}"

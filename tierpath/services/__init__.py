"""
TierPath Onboarding - Services Package

Decision components and the onboarding orchestrator.
"""

from tierpath.services.recommendation_engine import RecommendationEngine, Recommendation, TierAlternative
from tierpath.services.permission_mapper import (
    PermissionMapper,
    PermissionDenied,
    TierPermissions,
    PermissionDiff,
    EligibilityResult,
)
from tierpath.services.step_validator import StepValidator, ValidationResult
from tierpath.services.kv_store import KeyValueStore, InMemoryKeyValueStore, RedisKeyValueStore
from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.services.recovery_store import RecoverySessionStore
from tierpath.services.recovery_service import RecoveryService
from tierpath.services.tier_assignment_service import TierAssignmentService, DowngradeReason
from tierpath.services.onboarding_service import OnboardingService

__all__ = [
    "RecommendationEngine",
    "Recommendation",
    "TierAlternative",
    "PermissionMapper",
    "PermissionDenied",
    "TierPermissions",
    "PermissionDiff",
    "EligibilityResult",
    "StepValidator",
    "ValidationResult",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "OnboardingAPIClient",
    "RecoverySessionStore",
    "RecoveryService",
    "TierAssignmentService",
    "DowngradeReason",
    "OnboardingService",
]

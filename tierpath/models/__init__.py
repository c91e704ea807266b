"""
TierPath Onboarding - Models Package

Domain enums and records shared by the services.
"""

from tierpath.models.onboarding import (
    OnboardingStep,
    STEP_ORDER,
    BusinessType,
    BusinessSize,
    BusinessProfile,
    ONBOARDING_FIELDS,
    step_index,
    parse_step,
)
from tierpath.models.recovery import (
    FailureType,
    Severity,
    RecoveryStrategyType,
    DataPreservation,
    UserAction,
    RecoveryState,
    RecoverySession,
    FailureAnalysis,
    RecoveryStrategy,
    RecoveryResult,
)

"""
TierPath Onboarding - Onboarding Schemas

Pydantic request/response schemas for the onboarding API.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tierpath.config.tier_config import BusinessTier, SupportLevel
from tierpath.models.onboarding import OnboardingStep
from tierpath.models.recovery import (
    DataPreservation,
    FailureType,
    RecoveryResult,
    RecoveryState,
    RecoveryStrategyType,
    Severity,
    UserAction,
)
from tierpath.services.onboarding_service import OnboardingResult, OnboardingSession, StepResult
from tierpath.services.permission_mapper import EligibilityResult, PermissionDiff, TierPermissions
from tierpath.services.recommendation_engine import Recommendation
from tierpath.services.tier_assignment_service import DowngradeReason, BillingCycle


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class StartOnboardingRequest(BaseModel):
    """Schema for opening or resuming a wizard session."""
    user_id: str = Field(..., min_length=1, max_length=128)


class StepDataRequest(BaseModel):
    """Step payload keyed by wizard field names (camelCase)."""
    data: Dict[str, Any] = Field(default_factory=dict)


class CompleteOnboardingRequest(BaseModel):
    selected_tier: BusinessTier


class BusinessProfileRequest(BaseModel):
    """Business metrics for scoring and eligibility checks."""
    data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Wizard data, e.g. {'expectedEmployees': 3, 'businessType': 'retail'}",
    )


class ResumeFromFailureRequest(BaseModel):
    extra_data: Dict[str, Any] = Field(default_factory=dict)


class UpgradeTierRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    new_tier: BusinessTier
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class DowngradeTierRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    new_tier: BusinessTier
    reason: DowngradeReason


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class OnboardingSessionResponse(BaseModel):
    session_id: str
    user_id: str
    current_step: OnboardingStep
    completed_steps: List[OnboardingStep]
    onboarding_data: Dict[str, Any]
    recommended_tier: Optional[BusinessTier] = None
    progress: int
    estimated_minutes_remaining: int
    expires_at: datetime

    @classmethod
    def build(cls, session: OnboardingSession, progress: int, remaining: int) -> "OnboardingSessionResponse":
        return cls(
            session_id=session.session_id,
            user_id=session.user_id,
            current_step=session.current_step,
            completed_steps=session.completed_steps,
            onboarding_data=session.onboarding_data,
            recommended_tier=session.recommended_tier,
            progress=progress,
            estimated_minutes_remaining=remaining,
            expires_at=session.expires_at,
        )


class TierAlternativeResponse(BaseModel):
    tier: BusinessTier
    reason: str
    score: float
    savings: Optional[Decimal] = None


class RecommendationResponse(BaseModel):
    recommended_tier: BusinessTier
    confidence: float = Field(..., ge=0, le=1)
    reasoning: List[str]
    alternatives: List[TierAlternativeResponse]
    scores: Dict[str, float]
    cost_analysis: Dict[str, Decimal]
    is_fallback: bool

    @classmethod
    def build(cls, recommendation: Recommendation) -> "RecommendationResponse":
        return cls(
            recommended_tier=recommendation.recommended_tier,
            confidence=recommendation.confidence,
            reasoning=recommendation.reasoning,
            alternatives=[
                TierAlternativeResponse(
                    tier=alternative.tier,
                    reason=alternative.reason,
                    score=alternative.score,
                    savings=alternative.savings,
                )
                for alternative in recommendation.alternatives
            ],
            scores={tier.value: score for tier, score in recommendation.scores.items()},
            cost_analysis=recommendation.cost_analysis,
            is_fallback=recommendation.is_fallback,
        )


class StepResultResponse(BaseModel):
    success: bool
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    warnings: Dict[str, List[str]] = Field(default_factory=dict)
    next_step: Optional[OnboardingStep] = None
    recommended_tier: Optional[BusinessTier] = None
    recommendation: Optional[RecommendationResponse] = None
    recovery_session_id: Optional[str] = None

    @classmethod
    def build(cls, result: StepResult) -> "StepResultResponse":
        return cls(
            success=result.success,
            errors=result.errors,
            warnings=result.warnings,
            next_step=result.next_step,
            recommended_tier=result.recommended_tier,
            recommendation=RecommendationResponse.build(result.recommendation) if result.recommendation else None,
            recovery_session_id=result.recovery_session_id,
        )


class OnboardingResultResponse(BaseModel):
    success: bool
    selected_tier: BusinessTier
    redirect_url: Optional[str] = None
    completed_at: Optional[datetime] = None
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    recovery_session_id: Optional[str] = None

    @classmethod
    def build(cls, result: OnboardingResult) -> "OnboardingResultResponse":
        return cls(
            success=result.success,
            selected_tier=result.selected_tier,
            redirect_url=result.redirect_url,
            completed_at=result.completed_at,
            errors=result.errors,
            recovery_session_id=result.recovery_session_id,
        )


class PlanResponse(BaseModel):
    """Plan comparison row."""
    tier: BusinessTier
    name: str
    tagline: str
    price_monthly: Decimal
    price_annually: Decimal
    price_label: str
    features: List[str]
    feature_descriptions: Dict[str, str]
    limits: Dict[str, int]
    support_level: SupportLevel
    permission_count: int


class TierPermissionsResponse(BaseModel):
    tier: BusinessTier
    permissions: List[str]
    features: List[str]
    limits: Dict[str, int]
    support_level: SupportLevel

    @classmethod
    def build(cls, grants: TierPermissions) -> "TierPermissionsResponse":
        return cls(
            tier=grants.tier,
            permissions=sorted(grants.permissions),
            features=sorted(feature.value for feature in grants.features),
            limits={
                "employees": grants.limits.employees,
                "locations": grants.limits.locations,
                "transactions": grants.limits.transactions,
                "storage_gb": grants.limits.storage_gb,
                "api_calls": grants.limits.api_calls,
            },
            support_level=grants.support_level,
        )


class PermissionDiffResponse(BaseModel):
    from_tier: BusinessTier
    to_tier: BusinessTier
    added: List[str]
    removed: List[str]
    unchanged: List[str]

    @classmethod
    def build(cls, from_tier: BusinessTier, to_tier: BusinessTier, diff: PermissionDiff) -> "PermissionDiffResponse":
        return cls(
            from_tier=from_tier,
            to_tier=to_tier,
            added=sorted(diff.added),
            removed=sorted(diff.removed),
            unchanged=sorted(diff.unchanged),
        )


class LimitCheckResponse(BaseModel):
    metric: str
    value: float
    limit: int
    message: str


class EligibilityResponse(BaseModel):
    tier: BusinessTier
    eligible: bool
    violated_limits: List[LimitCheckResponse]
    approaching_limits: List[LimitCheckResponse]

    @classmethod
    def build(cls, result: EligibilityResult) -> "EligibilityResponse":
        return cls(
            tier=result.tier,
            eligible=result.eligible,
            violated_limits=[LimitCheckResponse(**vars(check)) for check in result.violated_limits],
            approaching_limits=[LimitCheckResponse(**vars(check)) for check in result.approaching_limits],
        )


class FailureAnalysisResponse(BaseModel):
    failure_type: FailureType
    severity: Severity
    recoverable: bool
    suggested_actions: List[str]
    data_loss: bool
    affected_fields: List[str]


class RecoveryStrategyResponse(BaseModel):
    strategy: RecoveryStrategyType
    description: str
    estimated_minutes: int
    data_preservation: DataPreservation
    user_action: UserAction


class RecoveryResultResponse(BaseModel):
    success: bool
    session_id: str
    resumed_step: OnboardingStep
    preserved_data: Dict[str, Any]
    error: Optional[str] = None
    state: Optional[RecoveryState] = None
    attempts: Optional[int] = None
    analysis: Optional[FailureAnalysisResponse] = None
    strategy: Optional[RecoveryStrategyResponse] = None
    onboarding_session_id: Optional[str] = None

    @classmethod
    def build(cls, result: RecoveryResult) -> "RecoveryResultResponse":
        return cls(
            success=result.success,
            session_id=result.session_id,
            resumed_step=result.resumed_step,
            preserved_data=result.preserved_data,
            error=result.error,
            state=result.state,
            attempts=result.attempts,
            analysis=FailureAnalysisResponse(**vars(result.analysis)) if result.analysis else None,
            strategy=RecoveryStrategyResponse(**vars(result.strategy)) if result.strategy else None,
            onboarding_session_id=result.onboarding_session_id,
        )


class TierChangeResponse(BaseModel):
    success: bool
    new_tier: BusinessTier
    previous_tier: BusinessTier
    changed_at: datetime
    permissions: List[str]
    features: List[str]
    reason: Optional[str] = None
    subscription_id: Optional[str] = None
    error: Optional[str] = None

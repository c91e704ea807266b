"""
TierPath Onboarding - Onboarding Router

API endpoints for the onboarding wizard, tier recommendation, tier
catalog lookups and failure recovery.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, status

from tierpath.config.tier_config import BusinessTier
from tierpath.dependencies import (
    get_onboarding_service,
    get_permission_mapper,
    get_tier_assignment_service,
)
from tierpath.models.onboarding import BusinessProfile, OnboardingStep
from tierpath.schemas.onboarding import (
    StartOnboardingRequest,
    StepDataRequest,
    CompleteOnboardingRequest,
    BusinessProfileRequest,
    ResumeFromFailureRequest,
    UpgradeTierRequest,
    DowngradeTierRequest,
    OnboardingSessionResponse,
    StepResultResponse,
    OnboardingResultResponse,
    RecommendationResponse,
    PlanResponse,
    TierPermissionsResponse,
    PermissionDiffResponse,
    EligibilityResponse,
    RecoveryResultResponse,
    TierChangeResponse,
)
from tierpath.services.onboarding_service import OnboardingService, OnboardingSession
from tierpath.services.permission_mapper import PermissionDenied, PermissionMapper
from tierpath.services.tier_assignment_service import TierAssignmentService
from tierpath.utils.error_handling import (
    AppException,
    ErrorCode,
    OnboardingSessionNotFoundException,
    RecoverySessionNotFoundException,
    ValidationException,
)


router = APIRouter()


def _session_response(service: OnboardingService, session: OnboardingSession) -> OnboardingSessionResponse:
    progress, remaining = service.progress(session)
    return OnboardingSessionResponse.build(session, progress, remaining)


# ===========================================
# WIZARD SESSIONS
# ===========================================

@router.post(
    "/sessions",
    response_model=OnboardingSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start onboarding",
)
async def start_onboarding(
    request: StartOnboardingRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Open a wizard session from the user's saved progress."""
    session = await service.start_onboarding(request.user_id)
    return _session_response(service, session)


@router.post("/resume", response_model=OnboardingSessionResponse, summary="Resume onboarding")
async def resume_onboarding(
    request: StartOnboardingRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    session = await service.resume_onboarding(request.user_id)
    return _session_response(service, session)


@router.get("/sessions/{session_id}", response_model=OnboardingSessionResponse)
async def get_session(
    session_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    session = service.get_session(session_id)
    if session is None:
        raise OnboardingSessionNotFoundException(session_id)
    return _session_response(service, session)


@router.post(
    "/sessions/{session_id}/steps/{step}",
    response_model=StepResultResponse,
    summary="Submit step data",
)
async def submit_step(
    session_id: str,
    step: OnboardingStep,
    request: StepDataRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """
    Validate and save one wizard step.

    Field errors come back with success=false. A failed save also
    returns the id of the recovery session holding the entered data.
    """
    result = await service.submit_step(session_id, step, request.data)
    return StepResultResponse.build(result)


@router.post(
    "/sessions/{session_id}/complete",
    response_model=OnboardingResultResponse,
    summary="Complete onboarding",
)
async def complete_onboarding(
    session_id: str,
    request: CompleteOnboardingRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    result = await service.complete_onboarding(session_id, request.selected_tier)
    return OnboardingResultResponse.build(result)


@router.post("/validate/{step}", response_model=StepResultResponse, summary="Validate step data")
async def validate_step_data(
    step: OnboardingStep,
    request: StepDataRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Check a step payload without saving it."""
    result = await service.validate_step_data(step, request.data)
    return StepResultResponse.build(result)


# ===========================================
# PLANS AND RECOMMENDATION
# ===========================================

@router.get("/plans", response_model=List[PlanResponse], summary="List available plans")
async def get_available_plans(
    service: OnboardingService = Depends(get_onboarding_service),
):
    return service.get_available_plans()


@router.post("/recommendation", response_model=RecommendationResponse, summary="Recommend a tier")
async def recommend_tier(
    request: BusinessProfileRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Score every tier for the given business data. Never fails."""
    return RecommendationResponse.build(service.get_recommendation(request.data))


# ===========================================
# TIER CATALOG
# ===========================================

@router.get("/tiers/diff", response_model=PermissionDiffResponse, summary="Diff tier permissions")
async def diff_tiers(
    from_tier: BusinessTier = Query(...),
    to_tier: BusinessTier = Query(...),
    mapper: PermissionMapper = Depends(get_permission_mapper),
):
    return PermissionDiffResponse.build(from_tier, to_tier, mapper.diff(from_tier, to_tier))


@router.get("/tiers/{tier}/permissions", response_model=TierPermissionsResponse)
async def get_tier_permissions(
    tier: BusinessTier,
    mapper: PermissionMapper = Depends(get_permission_mapper),
):
    return TierPermissionsResponse.build(mapper.permissions_for(tier))


@router.get("/tiers/{tier}/permissions/check", summary="Check a permission against a tier")
async def check_tier_permission(
    tier: BusinessTier,
    permission: str = Query(..., min_length=1),
    mapper: PermissionMapper = Depends(get_permission_mapper),
) -> Dict[str, Any]:
    try:
        mapper.require_permission(mapper.permissions_for(tier).permissions, permission, tier)
    except PermissionDenied as e:
        raise AppException(
            code=ErrorCode.PERMISSION_DENIED,
            message=str(e),
            status_code=status.HTTP_403_FORBIDDEN,
            details={"permission": e.required, "tier": tier.value},
        )
    return {"tier": tier, "permission": permission, "granted": True}


@router.post("/tiers/{tier}/eligibility", response_model=EligibilityResponse, summary="Check tier eligibility")
async def check_eligibility(
    tier: BusinessTier,
    request: BusinessProfileRequest,
    mapper: PermissionMapper = Depends(get_permission_mapper),
):
    try:
        profile = BusinessProfile.from_onboarding_data(request.data)
    except ValueError as e:
        raise ValidationException(message=str(e), code=ErrorCode.INVALID_INPUT)
    return EligibilityResponse.build(mapper.validate_eligibility(tier, profile))


@router.post("/tiers/upgrade", response_model=TierChangeResponse, summary="Upgrade a user's tier")
async def upgrade_tier(
    request: UpgradeTierRequest,
    tiers: TierAssignmentService = Depends(get_tier_assignment_service),
):
    result = await tiers.upgrade_tier(request.user_id, request.new_tier, request.billing_cycle)
    return TierChangeResponse(**vars(result))


@router.post("/tiers/downgrade", response_model=TierChangeResponse, summary="Downgrade a user's tier")
async def downgrade_tier(
    request: DowngradeTierRequest,
    tiers: TierAssignmentService = Depends(get_tier_assignment_service),
):
    result = await tiers.downgrade_tier(request.user_id, request.new_tier, request.reason)
    return TierChangeResponse(**vars(result))


# ===========================================
# RECOVERY
# ===========================================

@router.get("/recovery", summary="List active recovery sessions")
async def list_recovery_sessions(
    user_id: str = Query(..., min_length=1),
    service: OnboardingService = Depends(get_onboarding_service),
) -> List[Dict[str, Any]]:
    sessions = await service.get_active_recovery_sessions(user_id)
    return [session.to_wire() for session in sessions]


@router.get("/recovery/{recovery_session_id}", summary="Get a recovery session")
async def get_recovery_session(
    recovery_session_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
) -> Dict[str, Any]:
    session = await service.recovery.get_session(recovery_session_id)
    if session is None:
        raise RecoverySessionNotFoundException(recovery_session_id)
    return {
        **session.to_wire(),
        "state": session.state(service.recovery.max_attempts).value,
    }


@router.post(
    "/recovery/{recovery_session_id}/attempt",
    response_model=RecoveryResultResponse,
    summary="Attempt recovery",
)
async def attempt_recovery(
    recovery_session_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    result = await service.attempt_recovery(recovery_session_id)
    return RecoveryResultResponse.build(result)


@router.post(
    "/recovery/{recovery_session_id}/resume",
    response_model=RecoveryResultResponse,
    summary="Resume from failure",
)
async def resume_from_failure(
    recovery_session_id: str,
    request: ResumeFromFailureRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    result = await service.resume_from_failure(recovery_session_id, request.extra_data)
    return RecoveryResultResponse.build(result)

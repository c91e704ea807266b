"""
TierPath Onboarding - Onboarding Service

Orchestrates the onboarding wizard: sessions, step submission, plan
selection and completion. Every remote failure is turned into an error
map or a recovery session; nothing escapes unhandled except session
start/resume, which raise ExternalServiceException.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from tierpath.config.settings import Settings
from tierpath.config.tier_config import BusinessTier, parse_tier
from tierpath.models.onboarding import (
    OnboardingStep,
    STEP_ORDER,
    BusinessProfile,
    RECOMMENDED_PLAN,
    SELECTED_PLAN,
    parse_step,
    step_index,
)
from tierpath.models.recovery import RecoveryResult, RecoverySession, utcnow
from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.services.permission_mapper import PermissionMapper
from tierpath.services.recommendation_engine import Recommendation, RecommendationEngine
from tierpath.services.recovery_service import RecoveryService
from tierpath.services.step_validator import StepValidator
from tierpath.services.tier_assignment_service import TierAssignmentService
from tierpath.utils.error_handling import ExternalServiceException, OnboardingAPIException

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

ONBOARDING_SESSION_TTL = timedelta(hours=24)

ERROR_INVALID_SESSION = "Invalid or expired session"
ERROR_SAVE_FAILED = "Failed to save step data. Please try again."
ERROR_VALIDATION_FAILED = "Validation failed. Please check your input."
ERROR_COMPLETE_FAILED = "Failed to complete onboarding process"


def generate_onboarding_session_id() -> str:
    """onboarding_<epoch ms>_<9 base36 chars>"""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"onboarding_{int(time.time() * 1000)}_{suffix}"


@dataclass
class OnboardingSession:
    """One user's pass through the wizard."""
    session_id: str
    user_id: str
    current_step: OnboardingStep
    completed_steps: List[OnboardingStep]
    onboarding_data: Dict[str, Any]
    recommended_tier: Optional[BusinessTier]
    expires_at: datetime
    recommendation: Optional[Recommendation] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at


@dataclass
class StepResult:
    success: bool
    errors: Dict[str, List[str]] = field(default_factory=dict)
    warnings: Dict[str, List[str]] = field(default_factory=dict)
    next_step: Optional[OnboardingStep] = None
    recommended_tier: Optional[BusinessTier] = None
    recommendation: Optional[Recommendation] = None
    recovery_session_id: Optional[str] = None


@dataclass
class OnboardingResult:
    success: bool
    selected_tier: BusinessTier
    redirect_url: Optional[str] = None
    completed_at: Optional[datetime] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    recovery_session_id: Optional[str] = None


def _clean_data(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop null fields the API returns for unanswered questions."""
    return {key: value for key, value in (data or {}).items() if value is not None}


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class OnboardingService:
    """
    Wizard orchestration over the decision components.

    Sessions are kept per session id, so one instance serves many users.
    """

    def __init__(
        self,
        api_client: OnboardingAPIClient,
        validator: StepValidator,
        engine: RecommendationEngine,
        mapper: PermissionMapper,
        recovery: RecoveryService,
        tiers: TierAssignmentService,
        settings: Settings,
    ):
        self.api_client = api_client
        self.validator = validator
        self.engine = engine
        self.mapper = mapper
        self.recovery = recovery
        self.tiers = tiers
        self.settings = settings
        self._sessions: Dict[str, OnboardingSession] = {}

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def start_onboarding(self, user_id: str) -> OnboardingSession:
        """
        Open a wizard session from the user's saved progress.

        Raises:
            ExternalServiceException: if the onboarding API is unavailable
        """
        try:
            status = await self.api_client.get_onboarding_status(user_id)
        except OnboardingAPIException as e:
            logger.error(f"Failed to start onboarding for {user_id}: {e.message}")
            raise ExternalServiceException(
                service_name="Onboarding API",
                message="Failed to initialize onboarding session",
                original_error=e,
            )
        return self._register(self._session_from_status(user_id, status))

    async def resume_onboarding(self, user_id: str) -> OnboardingSession:
        """
        Reopen the wizard where the user left off.

        Raises:
            ExternalServiceException: if the onboarding API is unavailable
        """
        try:
            status = await self.api_client.resume_onboarding(user_id)
        except OnboardingAPIException as e:
            logger.error(f"Failed to resume onboarding for {user_id}: {e.message}")
            raise ExternalServiceException(
                service_name="Onboarding API",
                message="Failed to resume onboarding session",
                original_error=e,
            )
        return self._register(self._session_from_status(user_id, status))

    def get_session(self, session_id: str) -> Optional[OnboardingSession]:
        session = self._sessions.get(session_id)
        if session is not None and session.is_expired():
            self._sessions.pop(session_id, None)
            return None
        return session

    def clear_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    # =========================================================================
    # STEPS
    # =========================================================================

    async def submit_step(
        self,
        session_id: str,
        step: OnboardingStep,
        data: Dict[str, Any],
    ) -> StepResult:
        """
        Validate and save one step.

        A remote failure opens a recovery session holding everything the
        user entered so far before the error is returned.
        """
        session = self.get_session(session_id)
        if session is None:
            return StepResult(success=False, errors={"general": [ERROR_INVALID_SESSION]})

        if not self.validator.can_access_step(step, session.completed_steps):
            title = self.validator.step_definition(step).title
            return StepResult(
                success=False,
                errors={"step": [f"Complete the previous steps before '{title}'"]},
                next_step=self.validator.next_step(session.completed_steps),
            )

        merged = {**session.onboarding_data, **data}
        validation = self.validator.validate_step(step, merged)
        if not validation.is_valid:
            return StepResult(success=False, errors=validation.errors, warnings=validation.warnings)

        try:
            status = await self.api_client.update_onboarding_step(session.user_id, step.value, data)
        except OnboardingAPIException as e:
            logger.warning(f"Step {step.value} failed for session {session_id}: {e.message}")
            recovery_session = await self.recovery.create_session(session.user_id, step, e.message, merged)
            return StepResult(
                success=False,
                errors=e.field_errors or {"general": [ERROR_SAVE_FAILED]},
                warnings=validation.warnings,
                recovery_session_id=recovery_session.session_id,
            )

        completed = set(session.completed_steps) | {step}
        for raw in status.get("completedSteps") or []:
            parsed = parse_step(raw)
            if parsed is not None:
                completed.add(parsed)
        session.completed_steps = [s for s in STEP_ORDER if s in completed]
        session.onboarding_data = {**merged, **_clean_data(status.get("onboardingData"))}

        remote_tier = parse_tier(status.get("recommendedPlan"))
        if remote_tier is not None:
            session.recommended_tier = remote_tier
        elif step == OnboardingStep.USAGE_EXPECTATIONS:
            session.recommendation = self.engine.recommend_from_data(session.onboarding_data)
            session.recommended_tier = session.recommendation.recommended_tier
        if session.recommended_tier is not None:
            session.onboarding_data[RECOMMENDED_PLAN] = session.recommended_tier.value

        next_step = self.validator.next_step(session.completed_steps)
        session.current_step = next_step or OnboardingStep.WELCOME

        return StepResult(
            success=True,
            warnings=validation.warnings,
            next_step=next_step,
            recommended_tier=session.recommended_tier,
            recommendation=session.recommendation,
        )

    async def validate_step_data(self, step: OnboardingStep, data: Dict[str, Any]) -> StepResult:
        """Check a step payload without saving it."""
        validation = self.validator.validate_step(step, data)
        if not validation.is_valid:
            return StepResult(success=False, errors=validation.errors, warnings=validation.warnings)

        if not self.settings.remote_step_validation:
            return StepResult(success=True, warnings=validation.warnings)

        try:
            remote = await self.api_client.validate_step_data(step.value, data)
        except OnboardingAPIException as e:
            logger.warning(f"Remote validation failed for {step.value}: {e.message}")
            return StepResult(success=False, errors={"general": [ERROR_VALIDATION_FAILED]})

        if not remote.get("isValid", True):
            return StepResult(
                success=False,
                errors=remote.get("errors") or {"general": [ERROR_VALIDATION_FAILED]},
                warnings=validation.warnings,
            )
        return StepResult(success=True, warnings=validation.warnings)

    # =========================================================================
    # PLANS AND COMPLETION
    # =========================================================================

    def get_available_plans(self) -> List[Dict[str, Any]]:
        return self.mapper.compare_tiers()

    def get_recommendation(self, onboarding_data: Dict[str, Any]) -> Recommendation:
        return self.engine.recommend_from_data(onboarding_data)

    async def complete_onboarding(self, session_id: str, selected_tier: BusinessTier) -> OnboardingResult:
        """
        Finish onboarding on the selected tier.

        An ineligible tier is reported against selectedPlan. A remote
        failure opens a recovery session at plan selection.
        """
        session = self.get_session(session_id)
        if session is None:
            return OnboardingResult(
                success=False,
                selected_tier=selected_tier,
                errors={"general": [ERROR_INVALID_SESSION]},
            )

        try:
            profile = BusinessProfile.from_onboarding_data(session.onboarding_data)
        except ValueError:
            profile = BusinessProfile()

        eligibility = self.mapper.validate_eligibility(selected_tier, profile)
        if not eligibility.eligible:
            return OnboardingResult(
                success=False,
                selected_tier=selected_tier,
                errors={SELECTED_PLAN: [f"Tier not eligible: {', '.join(eligibility.reasons)}"]},
            )

        try:
            status = await self.api_client.complete_onboarding(session.user_id, selected_tier.value)
        except OnboardingAPIException as e:
            logger.error(f"Failed to complete onboarding for session {session_id}: {e.message}")
            recovery_session = await self.recovery.create_session(
                session.user_id,
                OnboardingStep.PLAN_SELECTION,
                e.message,
                {**session.onboarding_data, SELECTED_PLAN: selected_tier.value},
            )
            return OnboardingResult(
                success=False,
                selected_tier=selected_tier,
                errors={"general": [ERROR_COMPLETE_FAILED]},
                recovery_session_id=recovery_session.session_id,
            )

        assignment = await self.tiers.assign_tier(session.user_id, selected_tier, reason="Onboarding completion")
        if not assignment.success:
            logger.warning(f"Tier assignment failed for {session.user_id}: {assignment.error}")

        self.clear_session(session_id)
        return OnboardingResult(
            success=True,
            selected_tier=selected_tier,
            redirect_url=self.settings.dashboard_url,
            completed_at=_parse_datetime(status.get("completedAt")) or utcnow(),
        )

    # =========================================================================
    # RECOVERY
    # =========================================================================

    async def attempt_recovery(self, recovery_session_id: str) -> RecoveryResult:
        """Run a recovery attempt and, if it succeeds, reopen the wizard at the resumed step."""
        recovery_session = await self.recovery.get_session(recovery_session_id)
        result = await self.recovery.attempt_recovery(recovery_session_id)
        if result.success and recovery_session is not None:
            self._reopen(recovery_session.user_id, result)
        return result

    async def resume_from_failure(
        self,
        recovery_session_id: str,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> RecoveryResult:
        """Resume from a recovery session and reopen the wizard at the resumed step."""
        recovery_session = await self.recovery.get_session(recovery_session_id)
        result = await self.recovery.resume_from_failure(recovery_session_id, extra_data)
        if result.success and recovery_session is not None:
            self._reopen(recovery_session.user_id, result)
        return result

    async def get_active_recovery_sessions(self, user_id: str) -> List[RecoverySession]:
        return await self.recovery.get_active_sessions(user_id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _register(self, session: OnboardingSession) -> OnboardingSession:
        self._sessions[session.session_id] = session
        logger.info(f"Onboarding session {session.session_id} opened for {session.user_id} at {session.current_step.value}")
        return session

    def _reopen(self, user_id: str, result: RecoveryResult) -> OnboardingSession:
        """Register a wizard session positioned at a recovery result's resumed step."""
        resumed_at = step_index(result.resumed_step)
        session = self._register(OnboardingSession(
            session_id=generate_onboarding_session_id(),
            user_id=user_id,
            current_step=result.resumed_step,
            completed_steps=list(STEP_ORDER[:resumed_at]),
            onboarding_data=dict(result.preserved_data),
            recommended_tier=parse_tier(result.preserved_data.get(RECOMMENDED_PLAN)),
            expires_at=utcnow() + ONBOARDING_SESSION_TTL,
        ))
        result.onboarding_session_id = session.session_id
        return session

    def _session_from_status(self, user_id: str, status: Dict[str, Any]) -> OnboardingSession:
        completed = [
            step for step in (parse_step(raw) for raw in status.get("completedSteps") or [])
            if step is not None
        ]
        current = (
            parse_step(status.get("currentStep"))
            or self.validator.next_step(completed)
            or OnboardingStep.BUSINESS_PROFILE
        )
        return OnboardingSession(
            session_id=status.get("sessionId") or generate_onboarding_session_id(),
            user_id=user_id,
            current_step=current,
            completed_steps=[step for step in STEP_ORDER if step in completed],
            onboarding_data=_clean_data(status.get("onboardingData")),
            recommended_tier=parse_tier(status.get("recommendedPlan")),
            expires_at=utcnow() + ONBOARDING_SESSION_TTL,
        )

    def progress(self, session: OnboardingSession) -> Tuple[int, int]:
        """(percent complete, minutes remaining) for a session."""
        return (
            self.validator.progress(session.completed_steps),
            self.validator.estimate_remaining(session.completed_steps),
        )

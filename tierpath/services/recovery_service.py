"""
TierPath Onboarding - Recovery Service

Bounded, data-preserving recovery from failed onboarding steps.

Lifecycle of a recovery session:
    ACTIVE -> RECOVERING (attempt in flight) -> ACTIVE
    terminal: RESOLVED (cleared after resume), EXHAUSTED (attempt
    ceiling reached), EXPIRED (past expires_at), UNRECOVERABLE

Failures are classified from their reason text only, by
case-insensitive keyword match in a fixed order:
validation, network, timeout, server, otherwise unknown.
"""

import logging
import re
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set

from tierpath.models.onboarding import (
    OnboardingStep,
    STEP_ORDER,
    ONBOARDING_FIELDS,
    BUSINESS_NAME,
    BUSINESS_INDUSTRY,
    RECOMMENDED_PLAN,
    parse_step,
    step_index,
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
    utcnow,
)
from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.services.recovery_store import RecoverySessionStore
from tierpath.utils.error_handling import OnboardingAPIException

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

# Keywords per failure type, checked in this order
FAILURE_KEYWORDS = [
    (FailureType.VALIDATION, ("validation", "invalid")),
    (FailureType.NETWORK, ("network", "connection")),
    (FailureType.TIMEOUT, ("timeout",)),
    (FailureType.SERVER, ("server", "500", "internal")),
]

FAILURE_PROFILES: Dict[FailureType, Dict[str, Any]] = {
    FailureType.VALIDATION: {
        "severity": Severity.LOW,
        "recoverable": True,
        "suggested_actions": ["Review and correct input data", "Retry with valid data"],
        "data_loss": False,
    },
    FailureType.NETWORK: {
        "severity": Severity.MEDIUM,
        "recoverable": True,
        "suggested_actions": ["Check internet connection", "Retry operation"],
        "data_loss": False,
    },
    FailureType.TIMEOUT: {
        "severity": Severity.MEDIUM,
        "recoverable": True,
        "suggested_actions": ["Retry operation", "Check connection stability"],
        "data_loss": False,
    },
    FailureType.SERVER: {
        "severity": Severity.HIGH,
        "recoverable": True,
        "suggested_actions": ["Wait and retry", "Contact support if persistent"],
        "data_loss": False,
    },
    FailureType.UNKNOWN: {
        "severity": Severity.CRITICAL,
        "recoverable": False,
        "suggested_actions": ["Contact support", "Manual recovery required"],
        "data_loss": True,
    },
}

# Server failures switch from retry to manual at this many attempts
SERVER_RETRY_LIMIT = 2

# Fields kept by the reset strategy
RESET_PRESERVED_FIELDS = (BUSINESS_NAME, BUSINESS_INDUSTRY)

ERROR_NOT_FOUND = "Recovery session not found or expired"
ERROR_MAX_ATTEMPTS = "Maximum recovery attempts exceeded"
ERROR_NOT_RECOVERABLE = "Recovery not possible for this failure type"
ERROR_MANUAL = "Manual recovery required - please contact support"
ERROR_RESUME_FAILED = "Failed to resume onboarding"


def support_strategy() -> RecoveryStrategy:
    """Manual recovery through support, offered once retrying no longer helps."""
    return RecoveryStrategy(
        strategy=RecoveryStrategyType.MANUAL,
        description="Manual intervention required",
        estimated_minutes=15,
        data_preservation=DataPreservation.PARTIAL,
        user_action=UserAction.CONTACT_SUPPORT,
    )


def generate_recovery_session_id() -> str:
    """recovery_<epoch ms>_<9 base36 chars>"""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"recovery_{int(time.time() * 1000)}_{suffix}"


class RecoveryService:
    """
    Recovery state machine over a RecoverySessionStore.

    The ceiling is re-checked on every attempt against freshly loaded
    state. Callers must not run attempts on one session concurrently.
    """

    def __init__(
        self,
        store: RecoverySessionStore,
        api_client: OnboardingAPIClient,
        max_attempts: int = 3,
        session_ttl: timedelta = timedelta(hours=24),
    ):
        self.store = store
        self.api_client = api_client
        self.max_attempts = max_attempts
        self.session_ttl = session_ttl
        self._in_flight: Set[str] = set()

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def create_session(
        self,
        user_id: str,
        failed_step: OnboardingStep,
        reason: str,
        partial_data: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> RecoverySession:
        """Record a failure. Always succeeds; the session starts ACTIVE."""
        now = now or utcnow()
        session = RecoverySession(
            session_id=generate_recovery_session_id(),
            user_id=user_id,
            failure_point=failed_step,
            failure_reason=reason,
            failure_timestamp=now,
            recovery_attempts=0,
            preserved_data=dict(partial_data or {}),
            can_recover=True,
            expires_at=now + self.session_ttl,
        )
        await self.store.create(session)
        logger.info(f"Recovery session {session.session_id} created for {user_id} at {failed_step.value}: {reason}")
        return session

    async def attempt_recovery(self, session_id: str, now: Optional[datetime] = None) -> RecoveryResult:
        """
        Run one recovery attempt.

        Rejected without mutation when the session is absent, exhausted
        or unrecoverable. Otherwise the chosen strategy runs and the
        attempt counter is incremented afterwards, whatever the outcome.
        """
        now = now or utcnow()
        session = await self.store.get(session_id, now=now)

        if session is None:
            return RecoveryResult(
                success=False,
                resumed_step=OnboardingStep.BUSINESS_PROFILE,
                preserved_data={},
                session_id=session_id,
                error=ERROR_NOT_FOUND,
                state=RecoveryState.EXPIRED,
            )

        if session.recovery_attempts >= self.max_attempts:
            return self._rejected(session, ERROR_MAX_ATTEMPTS, RecoveryState.EXHAUSTED)

        if not session.can_recover:
            return self._rejected(session, ERROR_NOT_RECOVERABLE, RecoveryState.UNRECOVERABLE)

        analysis = self.analyze_failure(session.failure_reason)
        strategy = self.determine_strategy(analysis, session)

        self._in_flight.add(session_id)
        try:
            result = self.execute_strategy(session, strategy)

            session.recovery_attempts += 1
            session.last_recovery_attempt = now
            if session.recovery_attempts >= self.max_attempts or not analysis.recoverable:
                session.can_recover = False
            await self.store.save(session)
        finally:
            self._in_flight.discard(session_id)

        result.analysis = analysis
        result.strategy = strategy
        result.attempts = session.recovery_attempts
        result.state = session.state(self.max_attempts, now)
        logger.info(
            f"Recovery attempt {session.recovery_attempts}/{self.max_attempts} on {session_id}: "
            f"{analysis.failure_type.value} -> {strategy.strategy.value} "
            f"({'ok' if result.success else 'failed'})"
        )
        return result

    async def resume_from_failure(
        self,
        session_id: str,
        extra_data: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> RecoveryResult:
        """
        Resume onboarding at the failure point with merged data.

        Extra data wins over preserved data. On success the session is
        cleared from both tiers. On failure it is left untouched and no
        new recovery session is opened.
        """
        now = now or utcnow()
        session = await self.store.get(session_id, now=now)
        if session is None:
            return RecoveryResult(
                success=False,
                resumed_step=OnboardingStep.BUSINESS_PROFILE,
                preserved_data={},
                session_id=session_id,
                error=ERROR_NOT_FOUND,
                state=RecoveryState.EXPIRED,
            )

        merged = {**session.preserved_data, **(extra_data or {})}

        try:
            response = await self.api_client.resume_from_failure(
                session_id, session.failure_point.value, merged,
            )
        except OnboardingAPIException as e:
            logger.warning(f"Resume failed for recovery session {session_id}: {e.message}")
            response = {}

        if not response.get("success"):
            return RecoveryResult(
                success=False,
                resumed_step=session.failure_point,
                preserved_data=merged,
                session_id=session_id,
                error=ERROR_RESUME_FAILED,
                state=session.state(self.max_attempts, now),
                attempts=session.recovery_attempts,
            )

        await self.store.clear(session_id)
        logger.info(f"Recovery session {session_id} resolved")

        resumed_data = {
            key: value for key, value in (response.get("onboardingData") or {}).items()
            if value is not None
        }
        return RecoveryResult(
            success=True,
            resumed_step=parse_step(response.get("resumedStep")) or session.failure_point,
            preserved_data=resumed_data or merged,
            session_id=session_id,
            state=RecoveryState.RESOLVED,
            attempts=session.recovery_attempts,
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_session(self, session_id: str) -> Optional[RecoverySession]:
        return await self.store.get(session_id)

    async def get_session_state(self, session_id: str, now: Optional[datetime] = None) -> Optional[RecoveryState]:
        """Current state, or None once the session is cleared, expired or unknown."""
        if session_id in self._in_flight:
            return RecoveryState.RECOVERING
        session = await self.store.get(session_id, now=now)
        if session is None:
            return None
        return session.state(self.max_attempts, now)

    async def get_active_sessions(self, user_id: str) -> List[RecoverySession]:
        return await self.store.list_active(user_id)

    # =========================================================================
    # CLASSIFICATION AND STRATEGY
    # =========================================================================

    def analyze_failure(self, reason: str) -> FailureAnalysis:
        text = (reason or "").lower()
        failure_type = FailureType.UNKNOWN
        for candidate, keywords in FAILURE_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                failure_type = candidate
                break

        profile = FAILURE_PROFILES[failure_type]
        return FailureAnalysis(
            failure_type=failure_type,
            severity=profile["severity"],
            recoverable=profile["recoverable"],
            suggested_actions=list(profile["suggested_actions"]),
            data_loss=profile["data_loss"],
            affected_fields=(
                self.extract_affected_fields(reason) if failure_type == FailureType.VALIDATION else []
            ),
        )

    @staticmethod
    def extract_affected_fields(reason: str) -> List[str]:
        """Onboarding field names mentioned in a failure reason."""
        return [
            name for name in ONBOARDING_FIELDS
            if name != RECOMMENDED_PLAN and re.search(re.escape(name), reason or "", re.IGNORECASE)
        ]

    def determine_strategy(self, analysis: FailureAnalysis, session: RecoverySession) -> RecoveryStrategy:
        failure_type = analysis.failure_type

        if failure_type == FailureType.VALIDATION:
            return RecoveryStrategy(
                strategy=RecoveryStrategyType.RETRY,
                description="Retry with corrected data",
                estimated_minutes=2,
                data_preservation=DataPreservation.FULL,
                user_action=UserAction.INPUT,
            )

        if failure_type in (FailureType.NETWORK, FailureType.TIMEOUT):
            return RecoveryStrategy(
                strategy=RecoveryStrategyType.RETRY,
                description="Retry operation after connection check",
                estimated_minutes=1,
                data_preservation=DataPreservation.FULL,
                user_action=UserAction.CONFIRM,
            )

        if failure_type == FailureType.SERVER:
            if session.recovery_attempts < SERVER_RETRY_LIMIT:
                return RecoveryStrategy(
                    strategy=RecoveryStrategyType.RETRY,
                    description="Retry after brief delay",
                    estimated_minutes=3,
                    data_preservation=DataPreservation.FULL,
                    user_action=UserAction.CONFIRM,
                )
            return support_strategy()

        return RecoveryStrategy(
            strategy=RecoveryStrategyType.RESET,
            description="Reset onboarding process",
            estimated_minutes=10,
            data_preservation=DataPreservation.PARTIAL,
            user_action=UserAction.CONFIRM,
        )

    def execute_strategy(self, session: RecoverySession, strategy: RecoveryStrategy) -> RecoveryResult:
        handlers = {
            RecoveryStrategyType.RETRY: self._execute_retry,
            RecoveryStrategyType.SKIP: self._execute_skip,
            RecoveryStrategyType.RESET: self._execute_reset,
            RecoveryStrategyType.MANUAL: self._execute_manual,
        }
        return handlers[strategy.strategy](session)

    # =========================================================================
    # STRATEGIES
    # =========================================================================

    @staticmethod
    def _execute_retry(session: RecoverySession) -> RecoveryResult:
        return RecoveryResult(
            success=True,
            resumed_step=session.failure_point,
            preserved_data=dict(session.preserved_data),
            session_id=session.session_id,
        )

    @staticmethod
    def _execute_skip(session: RecoverySession) -> RecoveryResult:
        position = step_index(session.failure_point) + 1
        next_step = STEP_ORDER[position] if position < len(STEP_ORDER) else OnboardingStep.WELCOME
        return RecoveryResult(
            success=True,
            resumed_step=next_step,
            preserved_data=dict(session.preserved_data),
            session_id=session.session_id,
        )

    @staticmethod
    def _execute_reset(session: RecoverySession) -> RecoveryResult:
        kept = {
            name: session.preserved_data[name]
            for name in RESET_PRESERVED_FIELDS
            if session.preserved_data.get(name) is not None
        }
        return RecoveryResult(
            success=True,
            resumed_step=OnboardingStep.BUSINESS_PROFILE,
            preserved_data=kept,
            session_id=session.session_id,
        )

    @staticmethod
    def _execute_manual(session: RecoverySession) -> RecoveryResult:
        return RecoveryResult(
            success=False,
            resumed_step=session.failure_point,
            preserved_data=dict(session.preserved_data),
            session_id=session.session_id,
            error=ERROR_MANUAL,
        )

    def _rejected(self, session: RecoverySession, error: str, state: RecoveryState) -> RecoveryResult:
        """Refusal of a further attempt. Points the caller at support with the session id."""
        logger.info(f"Recovery attempt on {session.session_id} rejected: {error}")
        return RecoveryResult(
            success=False,
            resumed_step=session.failure_point,
            preserved_data=dict(session.preserved_data),
            session_id=session.session_id,
            error=error,
            state=state,
            attempts=session.recovery_attempts,
            strategy=support_strategy(),
        )

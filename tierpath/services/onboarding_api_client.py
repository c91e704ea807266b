"""
TierPath Onboarding - Onboarding API Client

GraphQL-over-HTTP client for the remote onboarding backend: onboarding
progress, tier assignment and recovery session persistence.

Every failure is raised as OnboardingAPIException carrying a textual
reason. Callers classify failures by that text only.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from tierpath.config.settings import Settings
from tierpath.utils.error_handling import OnboardingAPIException

logger = logging.getLogger(__name__)


# ===========================================
# GRAPHQL DOCUMENTS
# ===========================================

ONBOARDING_DATA_FIELDS = """
    businessName
    businessIndustry
    businessSize
    businessType
    expectedEmployees
    expectedLocations
    expectedMonthlyTransactions
    expectedMonthlyRevenue
    selectedPlan
    recommendedPlan
"""

ONBOARDING_STATUS_FIELDS = f"""
    sessionId
    currentStep
    completedSteps
    completionPercentage
    isComplete
    recommendedPlan
    completedAt
    onboardingData {{{ONBOARDING_DATA_FIELDS}}}
"""

RECOVERY_SESSION_FIELDS = f"""
    sessionId
    userId
    failurePoint
    failureReason
    failureTimestamp
    recoveryAttempts
    lastRecoveryAttempt
    preservedData {{{ONBOARDING_DATA_FIELDS}}}
    canRecover
    expiresAt
"""

GET_ONBOARDING_STATUS = f"""
query GetOnboardingStatus($userId: String!) {{
  onboardingStatus(userId: $userId) {{{ONBOARDING_STATUS_FIELDS}}}
}}
"""

UPDATE_ONBOARDING_STEP = f"""
mutation UpdateOnboardingStep($input: UpdateOnboardingStepInput!) {{
  updateOnboardingStep(input: $input) {{{ONBOARDING_STATUS_FIELDS}}}
}}
"""

COMPLETE_ONBOARDING = f"""
mutation CompleteOnboarding($input: CompleteOnboardingInput!) {{
  completeOnboarding(input: $input) {{{ONBOARDING_STATUS_FIELDS}}}
}}
"""

RESUME_ONBOARDING = f"""
mutation ResumeOnboarding($userId: String!) {{
  resumeOnboarding(userId: $userId) {{{ONBOARDING_STATUS_FIELDS}}}
}}
"""

VALIDATE_STEP_DATA = """
query ValidateStepData($input: ValidateStepDataInput!) {
  validateOnboardingStepData(input: $input) {
    isValid
    errors
  }
}
"""

GET_CURRENT_TIER = """
query GetCurrentTier($userId: String!) {
  currentTier(userId: $userId) {
    tier
  }
}
"""

ASSIGN_TIER = """
mutation AssignTier($input: AssignTierInput!) {
  assignTier(input: $input) {
    success
    assignedTier
    permissions
    features
    activatedAt
    expiresAt
  }
}
"""

UPDATE_USER_PERMISSIONS = """
mutation UpdateUserPermissions($input: UpdateUserPermissionsInput!) {
  updateUserPermissions(input: $input) {
    success
    updatedPermissions
    addedPermissions
    removedPermissions
  }
}
"""

UPGRADE_TIER = """
mutation UpgradeTier($input: UpgradeTierInput!) {
  upgradeTier(input: $input) {
    success
    newTier
    previousTier
    activatedAt
    permissions
    features
    subscriptionId
    error
  }
}
"""

DOWNGRADE_TIER = """
mutation DowngradeTier($input: DowngradeTierInput!) {
  downgradeTier(input: $input) {
    success
    newTier
    previousTier
    downgradedAt
    permissions
    features
    reason
    error
  }
}
"""

CREATE_RECOVERY_SESSION = """
mutation CreateRecoverySession($input: CreateRecoverySessionInput!) {
  createRecoverySession(input: $input) {
    sessionId
    success
  }
}
"""

GET_RECOVERY_SESSION = f"""
query GetRecoverySession($sessionId: String!) {{
  recoverySession(sessionId: $sessionId) {{{RECOVERY_SESSION_FIELDS}}}
}}
"""

UPDATE_RECOVERY_SESSION = """
mutation UpdateRecoverySession($input: UpdateRecoverySessionInput!) {
  updateRecoverySession(input: $input) {
    success
  }
}
"""

CLEAR_RECOVERY_SESSION = """
mutation ClearRecoverySession($sessionId: String!) {
  clearRecoverySession(sessionId: $sessionId) {
    success
  }
}
"""

GET_ACTIVE_RECOVERY_SESSIONS = f"""
query GetActiveRecoverySessions($userId: String!) {{
  activeRecoverySessions(userId: $userId) {{{RECOVERY_SESSION_FIELDS}}}
}}
"""

RESUME_FROM_FAILURE = f"""
mutation ResumeOnboardingFromFailure($input: ResumeFromFailureInput!) {{
  resumeOnboardingFromFailure(input: $input) {{
    success
    resumedStep
    sessionId
    onboardingData {{{ONBOARDING_DATA_FIELDS}}}
  }}
}}
"""


class OnboardingAPIClient:
    """
    Async client for the onboarding GraphQL API.

    Usage:
        client = OnboardingAPIClient.from_settings(settings)
        status = await client.get_onboarding_status(user_id)
        await client.close()
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "OnboardingAPIClient":
        return cls(
            url=settings.onboarding_api_url,
            token=settings.onboarding_api_token,
            timeout=settings.onboarding_api_timeout,
            transport=transport,
        )

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._get_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Post one GraphQL operation and return its `data` object.

        Raises:
            OnboardingAPIException: on timeout, transport failure, HTTP
                error status, unreadable body or GraphQL errors
        """
        client = await self._get_client()
        payload = {
            "query": query,
            "variables": variables or {},
            "operationName": operation_name,
        }

        try:
            response = await client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise OnboardingAPIException(
                "Request timeout - onboarding API did not respond in time",
                operation=operation_name,
                original_error=e,
            )
        except httpx.RequestError as e:
            raise OnboardingAPIException(
                f"Network error: {str(e)}",
                operation=operation_name,
                original_error=e,
            )

        if response.status_code >= 500:
            raise OnboardingAPIException(
                f"Server error ({response.status_code}): internal error",
                operation=operation_name,
            )
        if response.status_code >= 400:
            raise OnboardingAPIException(
                f"Request rejected ({response.status_code}): invalid request",
                operation=operation_name,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise OnboardingAPIException(
                "Invalid JSON response from onboarding API",
                operation=operation_name,
                original_error=e,
            )

        errors = body.get("errors") or []
        if errors:
            first = errors[0] or {}
            extensions = first.get("extensions") or {}
            raise OnboardingAPIException(
                first.get("message") or "Unknown error",
                field_errors=extensions.get("errors") or None,
                operation=operation_name,
            )

        return body.get("data") or {}

    async def _field(
        self,
        query: str,
        root: str,
        variables: Dict[str, Any],
        operation_name: str,
    ) -> Any:
        data = await self.execute(query, variables, operation_name)
        return data.get(root)

    # ===========================================
    # ONBOARDING PROGRESS
    # ===========================================

    async def get_onboarding_status(self, user_id: str) -> Dict[str, Any]:
        status = await self._field(
            GET_ONBOARDING_STATUS, "onboardingStatus",
            {"userId": user_id}, "GetOnboardingStatus",
        )
        return status or {}

    async def update_onboarding_step(
        self,
        user_id: str,
        step: str,
        data: Dict[str, Any],
    ) -> Dict[str, Any]:
        status = await self._field(
            UPDATE_ONBOARDING_STEP, "updateOnboardingStep",
            {"input": {"userId": user_id, "step": step, **data}}, "UpdateOnboardingStep",
        )
        return status or {}

    async def complete_onboarding(self, user_id: str, selected_plan: str) -> Dict[str, Any]:
        status = await self._field(
            COMPLETE_ONBOARDING, "completeOnboarding",
            {"input": {"userId": user_id, "selectedPlan": selected_plan}}, "CompleteOnboarding",
        )
        return status or {}

    async def resume_onboarding(self, user_id: str) -> Dict[str, Any]:
        status = await self._field(
            RESUME_ONBOARDING, "resumeOnboarding",
            {"userId": user_id}, "ResumeOnboarding",
        )
        return status or {}

    async def validate_step_data(self, step: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Returns {"isValid": bool, "errors": {field: [messages]}}."""
        result = await self._field(
            VALIDATE_STEP_DATA, "validateOnboardingStepData",
            {"input": {"step": step, "data": data}}, "ValidateStepData",
        )
        return result or {"isValid": True, "errors": {}}

    # ===========================================
    # TIERS AND PERMISSIONS
    # ===========================================

    async def get_current_tier(self, user_id: str) -> Optional[str]:
        result = await self._field(
            GET_CURRENT_TIER, "currentTier",
            {"userId": user_id}, "GetCurrentTier",
        )
        return (result or {}).get("tier")

    async def assign_tier(self, assignment: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._field(ASSIGN_TIER, "assignTier", {"input": assignment}, "AssignTier")
        return result or {}

    async def update_permissions(self, update: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._field(
            UPDATE_USER_PERMISSIONS, "updateUserPermissions",
            {"input": update}, "UpdateUserPermissions",
        )
        return result or {}

    async def upgrade_tier(self, upgrade: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._field(UPGRADE_TIER, "upgradeTier", {"input": upgrade}, "UpgradeTier")
        return result or {}

    async def downgrade_tier(self, downgrade: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._field(DOWNGRADE_TIER, "downgradeTier", {"input": downgrade}, "DowngradeTier")
        return result or {}

    # ===========================================
    # RECOVERY SESSIONS
    # ===========================================

    async def create_recovery_session(self, session: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._field(
            CREATE_RECOVERY_SESSION, "createRecoverySession",
            {"input": session}, "CreateRecoverySession",
        )
        return result or {}

    async def get_recovery_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return await self._field(
            GET_RECOVERY_SESSION, "recoverySession",
            {"sessionId": session_id}, "GetRecoverySession",
        )

    async def update_recovery_session(self, session_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._field(
            UPDATE_RECOVERY_SESSION, "updateRecoverySession",
            {"input": {"sessionId": session_id, **updates}}, "UpdateRecoverySession",
        )
        return result or {}

    async def clear_recovery_session(self, session_id: str) -> Dict[str, Any]:
        result = await self._field(
            CLEAR_RECOVERY_SESSION, "clearRecoverySession",
            {"sessionId": session_id}, "ClearRecoverySession",
        )
        return result or {}

    async def get_active_recovery_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        result = await self._field(
            GET_ACTIVE_RECOVERY_SESSIONS, "activeRecoverySessions",
            {"userId": user_id}, "GetActiveRecoverySessions",
        )
        return result or []

    async def resume_from_failure(
        self,
        session_id: str,
        resume_from_step: str,
        onboarding_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        result = await self._field(
            RESUME_FROM_FAILURE, "resumeOnboardingFromFailure",
            {
                "input": {
                    "recoverySessionId": session_id,
                    "resumeFromStep": resume_from_step,
                    "onboardingData": onboarding_data,
                }
            },
            "ResumeOnboardingFromFailure",
        )
        return result or {}

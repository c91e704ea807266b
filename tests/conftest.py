"""
TierPath Onboarding - Test Configuration

Pytest fixtures and configuration.
"""

from typing import Any, AsyncGenerator, Dict
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from tierpath.config.settings import Settings
from tierpath.dependencies import ServiceContainer, build_container
from tierpath.models.onboarding import OnboardingStep
from tierpath.services.kv_store import InMemoryKeyValueStore
from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.services.permission_mapper import PermissionMapper
from tierpath.services.recommendation_engine import RecommendationEngine
from tierpath.services.step_validator import StepValidator
from main import create_app


# ===========================================
# CORE FIXTURES
# ===========================================

@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        app_env="testing",
        debug=False,
        recovery_local_backend="memory",
        remote_step_validation=True,
    )


@pytest.fixture
def api_client() -> AsyncMock:
    """
    Onboarding API double.

    Defaults model a reachable backend with no stored recovery sessions,
    so reads fall through to the local store.
    """
    client = AsyncMock(spec=OnboardingAPIClient)
    client.get_onboarding_status.return_value = {
        "sessionId": "onboarding_1_abc",
        "currentStep": 0,
        "completedSteps": [],
        "onboardingData": {},
        "recommendedPlan": None,
    }
    client.resume_onboarding.return_value = {
        "sessionId": "onboarding_2_def",
        "currentStep": 2,
        "completedSteps": ["business_profile", "business_type"],
        "onboardingData": {
            "businessName": "Corner Shop",
            "businessIndustry": "Retail",
            "businessSize": "small",
            "businessType": "retail",
        },
        "recommendedPlan": None,
    }
    client.update_onboarding_step.return_value = {}
    client.complete_onboarding.return_value = {"completedAt": "2026-01-15T10:00:00+00:00"}
    client.validate_step_data.return_value = {"isValid": True, "errors": {}}
    client.get_current_tier.return_value = "small"
    client.assign_tier.return_value = {"success": True, "assignedTier": "small"}
    client.update_permissions.return_value = {"success": True}
    client.upgrade_tier.return_value = {"success": True, "activatedAt": "2026-01-15T10:00:00+00:00"}
    client.downgrade_tier.return_value = {"success": True, "downgradedAt": "2026-01-15T10:00:00+00:00"}
    client.create_recovery_session.return_value = {"success": True}
    client.get_recovery_session.return_value = None
    client.update_recovery_session.return_value = {"success": True}
    client.clear_recovery_session.return_value = {"success": True}
    client.get_active_recovery_sessions.return_value = []
    client.resume_from_failure.return_value = {"success": True, "resumedStep": None, "onboardingData": None}
    return client


@pytest.fixture
def local_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def container(settings, api_client, local_store) -> ServiceContainer:
    return build_container(settings, api_client=api_client, local_store=local_store)


@pytest.fixture
def engine() -> RecommendationEngine:
    return RecommendationEngine()


@pytest.fixture
def mapper() -> PermissionMapper:
    return PermissionMapper()


@pytest.fixture
def validator() -> StepValidator:
    return StepValidator()


@pytest_asyncio.fixture(scope="function")
async def client(settings, container) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against an app wired to the test container."""
    app = create_app(settings=settings, container=container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def business_profile_data() -> Dict[str, Any]:
    return {
        "businessName": "Corner Shop",
        "businessIndustry": "Retail",
        "businessSize": "small",
    }


@pytest.fixture
def usage_data() -> Dict[str, Any]:
    return {
        "expectedEmployees": 3,
        "expectedLocations": 1,
        "expectedMonthlyTransactions": 80,
        "expectedMonthlyRevenue": 3000,
    }


@pytest.fixture
def wizard_data(business_profile_data, usage_data) -> Dict[str, Any]:
    """Everything entered up to plan selection."""
    return {**business_profile_data, "businessType": "retail", **usage_data}


@pytest.fixture
def completed_through_usage():
    return [
        OnboardingStep.BUSINESS_PROFILE,
        OnboardingStep.BUSINESS_TYPE,
        OnboardingStep.USAGE_EXPECTATIONS,
    ]

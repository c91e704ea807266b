"""
TierPath Onboarding - FastAPI Dependencies

Service wiring for the application.

Each component is built once in build_container() and stored on
app.state.container; the getters below hand them to route handlers.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request

from tierpath.config.settings import Settings
from tierpath.services.kv_store import KeyValueStore, create_key_value_store
from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.services.onboarding_service import OnboardingService
from tierpath.services.permission_mapper import PermissionMapper
from tierpath.services.recommendation_engine import RecommendationEngine
from tierpath.services.recovery_service import RecoveryService
from tierpath.services.recovery_store import RecoverySessionStore
from tierpath.services.step_validator import StepValidator
from tierpath.services.tier_assignment_service import TierAssignmentService


@dataclass
class ServiceContainer:
    """Every service the API uses, constructed once per application."""
    settings: Settings
    api_client: OnboardingAPIClient
    local_store: KeyValueStore
    validator: StepValidator
    engine: RecommendationEngine
    mapper: PermissionMapper
    recovery: RecoveryService
    tiers: TierAssignmentService
    onboarding: OnboardingService

    async def close(self) -> None:
        await self.api_client.close()
        await self.local_store.close()


def build_container(
    settings: Settings,
    api_client: Optional[OnboardingAPIClient] = None,
    local_store: Optional[KeyValueStore] = None,
) -> ServiceContainer:
    """Wire all services from settings. Clients can be passed in for tests."""
    api_client = api_client or OnboardingAPIClient.from_settings(settings)
    local_store = local_store or create_key_value_store(settings.recovery_local_backend, settings.redis_url)

    validator = StepValidator()
    engine = RecommendationEngine(
        min_viability=settings.recommendation_min_viability,
        fallback_confidence=settings.recommendation_fallback_confidence,
    )
    mapper = PermissionMapper()
    recovery = RecoveryService(
        store=RecoverySessionStore(api_client, local_store),
        api_client=api_client,
        max_attempts=settings.recovery_max_attempts,
        session_ttl=timedelta(hours=settings.recovery_session_ttl_hours),
    )
    tiers = TierAssignmentService(api_client, mapper)
    onboarding = OnboardingService(
        api_client=api_client,
        validator=validator,
        engine=engine,
        mapper=mapper,
        recovery=recovery,
        tiers=tiers,
        settings=settings,
    )
    return ServiceContainer(
        settings=settings,
        api_client=api_client,
        local_store=local_store,
        validator=validator,
        engine=engine,
        mapper=mapper,
        recovery=recovery,
        tiers=tiers,
        onboarding=onboarding,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_onboarding_service(request: Request) -> OnboardingService:
    return get_container(request).onboarding


def get_permission_mapper(request: Request) -> PermissionMapper:
    return get_container(request).mapper


def get_tier_assignment_service(request: Request) -> TierAssignmentService:
    return get_container(request).tiers

"""
TierPath Onboarding - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "TierPath Onboarding"
    app_env: str = "development"
    debug: bool = True
    api_version: str = "v1"
    dashboard_url: str = "/dashboard"  # Redirect target after onboarding completes

    # ===========================================
    # ONBOARDING API (remote persistence, GraphQL)
    # ===========================================
    onboarding_api_url: str = "http://localhost:4000/graphql"
    onboarding_api_token: Optional[str] = None
    onboarding_api_timeout: float = 10.0
    remote_step_validation: bool = True

    # ===========================================
    # RECOVERY SESSIONS
    # ===========================================
    recovery_max_attempts: int = 3
    recovery_session_ttl_hours: int = 24
    recovery_local_backend: str = "memory"  # memory | redis
    redis_url: str = "redis://localhost:6379/0"

    @property
    def recovery_session_ttl_seconds(self) -> int:
        """Recovery session lifetime in seconds."""
        return self.recovery_session_ttl_hours * 3600

    # ===========================================
    # TIER RECOMMENDATION
    # ===========================================
    recommendation_min_viability: float = 0.1
    recommendation_fallback_confidence: float = 0.5

    # ===========================================
    # CORS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()

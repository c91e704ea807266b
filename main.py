"""
TierPath Onboarding - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tierpath import __version__
from tierpath.config.settings import Settings, get_settings
from tierpath.dependencies import ServiceContainer, build_container
from tierpath.routers import onboarding
from tierpath.utils.error_handling import setup_exception_handlers

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Build the application. Tests pass their own settings and container."""
    settings = settings or get_settings()

    logging.basicConfig(
        level=logging.INFO if not settings.debug else logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan context manager for FastAPI.
        Handles startup and shutdown events.
        """
        # Startup
        logger.info(f"Starting {settings.app_name}...")
        logger.info(f"Environment: {settings.app_env}")
        logger.info(f"Onboarding API: {settings.onboarding_api_url}")
        logger.info(f"Recovery fallback store: {settings.recovery_local_backend}")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}...")
        await app.state.container.close()
        logger.info("Service connections closed")

    app = FastAPI(
        title=settings.app_name,
        description="Tier recommendation, plan selection and recoverable onboarding for new businesses",
        version=__version__,
        docs_url="/api/docs" if settings.is_development else None,
        redoc_url="/api/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.container = container or build_container(settings)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.app_env,
            "recovery_store": settings.recovery_local_backend,
        }

    # ===========================================
    # INCLUDE ROUTERS
    # ===========================================

    app.include_router(
        onboarding.router,
        prefix=f"/api/{settings.api_version}/onboarding",
        tags=["Onboarding"],
    )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().is_development,
    )

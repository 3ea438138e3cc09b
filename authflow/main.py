"""
FastAPI Main Application

Run with: uvicorn authflow.main:create_app --factory
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from authflow.api import api_router
from authflow.common.exceptions import register_exception_handlers
from authflow.common.logging import LoggingMiddleware, setup_logging
from authflow.core.oauth.config import ProviderConfigLoader
from authflow.core.options import AuthOptions
from authflow.core.settings import get_settings
from authflow.repositories.memory import InMemoryAdapter


def default_options() -> AuthOptions:
    """Options from the environment: YAML providers and the in-memory adapter."""
    settings = get_settings()
    loader = ProviderConfigLoader(settings.providers_config_path)
    return AuthOptions.from_loader(settings, loader, adapter=InMemoryAdapter())


def create_app(options: Optional[AuthOptions] = None) -> FastAPI:
    """Build the application around a fixed set of auth options."""
    options = options or default_options()
    settings = options.settings

    setup_logging(level=settings.log_level, log_dir=settings.log_dir or "logs", to_file=bool(settings.log_dir))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"   Environment: {settings.environment}")
        logger.info(f"   Session mode: {'jwt' if settings.session_jwt else 'database'}")
        logger.info(f"   Providers: {', '.join(options.providers) or '(none)'}")

        if options.adapter is None and not settings.session_jwt:
            logger.warning("   ⚠️  Database sessions are enabled but no adapter is configured")
        if settings.environment == "production" and "localhost" in settings.base_url:
            logger.warning(
                "   ⚠️  Running in 'production' but AUTH_BASE_URL contains 'localhost'. "
                "Provider callbacks and email links will not reach this service."
            )

        yield

        await options.events.drain()
        logger.info("Application shutdown")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs" if settings.debug or settings.environment == "development" else None,
        redoc_url="/redoc" if settings.debug or settings.environment == "development" else None,
        lifespan=lifespan,
    )
    app.state.auth_options = options

    register_exception_handlers(app)

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    @app.get("/", tags=["Root"])
    async def root():
        """Root path, health check"""
        return {"status": "ok", "service": settings.app_name, "version": settings.app_version}

    return app

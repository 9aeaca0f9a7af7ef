"""FastAPI application with lifespan management."""

from __future__ import annotations

import importlib.metadata
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from context_mcp.api.middleware.error_handler import register_error_handlers
from context_mcp.api.middleware.rate_limiter import RedisRateLimiter, rate_limit_middleware
from context_mcp.api.middleware.request_context import request_context_middleware
from context_mcp.api.routes import health, messages, metrics, tokens
from context_mcp.core.config import APIConfig, AppSettings
from context_mcp.core.startup_checks import validate_settings
from context_mcp.hooks import setup_logging
from context_mcp.services.container import ServiceContainer, build_container

log = logging.getLogger(__name__)


def _get_version() -> str:
    """Read package version from installed metadata, with dev fallback."""
    try:
        return importlib.metadata.version("context-mcp")
    except importlib.metadata.PackageNotFoundError:
        return "0.0.0-dev"


def _create_rate_limiter(container: ServiceContainer) -> Optional[RedisRateLimiter]:
    config = container.settings.rate_limit
    if not config.enabled:
        return None
    if container.redis_client is None:
        log.warning("Rate limiting enabled but no Redis client is configured; requests are not limited")
        return None
    return RedisRateLimiter(
        container.redis_client,
        requests_per_minute=config.requests_per_minute,
        max_concurrent=config.max_concurrent,
        key_prefix=config.key_prefix,
    )


def create_app(
    container: Optional[ServiceContainer] = None,
    settings: Optional[AppSettings] = None,
) -> FastAPI:
    """Build the application.

    Args:
        container: Pre-built services (tests pass one wired with fakes).
            When omitted, the lifespan builds one from ``settings``.
        settings: Settings to build from; read from the environment when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application startup/shutdown lifecycle."""
        services = container
        if services is None:
            app_settings = settings or AppSettings()
            validate_settings(app_settings)
            setup_logging(app_settings.observability)
            services = build_container(app_settings)

        app.state.container = services
        app.state.rate_limiter = _create_rate_limiter(services)
        app.state.started_at = time.monotonic()
        log.info("Context MCP server started", extra={"version": app.version})
        try:
            yield
        finally:
            log.info("Shutting down server")
            await services.close()

    api_config = settings.api if settings is not None else APIConfig()
    app = FastAPI(
        title=api_config.title,
        description=api_config.description,
        version=_get_version(),
        lifespan=lifespan,
    )

    register_error_handlers(app)
    # Last added runs first: request context wraps the rate limiter.
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_context_middleware)

    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(tokens.router)
    app.include_router(messages.router)
    return app


app = create_app()

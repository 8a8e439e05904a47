"""Application factory for the FastAPI app.

Centralizes app construction (state, middleware, handlers, routers) so tests
can build isolated instances with their own limiter registry.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.rate_limit.registry import RateLimiterRegistry
from app.api.routes import health_router
from app.core.config import RateLimitSettings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("app.startup", extra={"policies": app.state.rate_limiters.policy_names})
    yield
    app.state.rate_limiters.clear()
    logger.info("app.shutdown")


def create_app(rate_limit_settings: RateLimitSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    The resolved rate limit settings and the limiter registry built from them
    are kept on ``app.state`` (``rate_limit_settings``, ``rate_limiters``) for
    the guard and the health route to use.

    Args:
        rate_limit_settings: Optional override; defaults to global settings.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title=settings.app.name,
        description=(
            "Backend for the event ticket marketplace. Mutating and high-traffic "
            "routes are guarded by per-client fixed-window rate limits and answer "
            "HTTP 429 with Retry-After and X-RateLimit-* headers when exceeded."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    app.state.started_at = time.monotonic()
    app.state.rate_limit_settings = rate_limit_settings or settings.rate_limit
    app.state.rate_limiters = RateLimiterRegistry.from_settings(app.state.rate_limit_settings)

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)
    app.include_router(health_router)

    return app

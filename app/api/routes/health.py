from __future__ import annotations

import platform
import sys
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app.core.config import settings
from app.core.rate_limit import get_rate_limit_settings, get_rate_limiters
from app.schemas.health import DetailedHealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers and monitoring.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/detailed", response_model=DetailedHealthResponse)
def detailed_health_check(request: Request) -> DetailedHealthResponse:
    """Report uptime, runtime details and rate limiter memory usage per policy."""

    return DetailedHealthResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=round(time.monotonic() - request.app.state.started_at, 3),
        system={
            "python_version": sys.version.split()[0],
            "platform": platform.platform(),
            "environment": settings.app_env,
        },
        rate_limit={
            "enabled": get_rate_limit_settings(request).enabled,
            "policies": get_rate_limiters(request).stats(),
        },
    )

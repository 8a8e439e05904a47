"""Rate limiting guard for FastAPI routes.

This module wires the limiter registry into the HTTP layer.

- Each guarded route names a policy (e.g. ``"ticket_create"``); limiters are
  looked up in the registry stored on ``app.state`` when the app is built.
- Clients are identified by the first ``X-Forwarded-For`` address, then
  ``X-Real-IP``. Requests carrying neither share the ``"unknown"`` bucket.
- A denied request gets a complete 429 response that is returned verbatim.

Usage:
    @router.post(
        "/tickets",
        dependencies=[Depends(rate_limit("ticket_create"))],
        responses=RATE_LIMITED_RESPONSES,
    )
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Awaitable, Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import RateLimitDecision
from app.adapters.rate_limit.registry import RateLimiterRegistry
from app.core.config import RateLimitSettings
from app.schemas.rate_limit import TOO_MANY_REQUESTS_MESSAGE, RateLimitErrorResponse

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"
FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"

RATE_LIMITED_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_429_TOO_MANY_REQUESTS: {
        "model": RateLimitErrorResponse,
        "description": "Rate limit exceeded for this client.",
    }
}


class RateLimitExceeded(Exception):
    """Carries a prepared 429 response out of a FastAPI dependency."""

    def __init__(self, response: JSONResponse) -> None:
        super().__init__(TOO_MANY_REQUESTS_MESSAGE)
        self.response = response


def get_client_key(request: Request) -> str:
    """Derive the rate limit key for the current request.

    Args:
        request: FastAPI request.

    Returns:
        str: First forwarded-for address, else the real-ip header, else "unknown".

    Examples:
        ``X-Forwarded-For: 9.9.9.9, 10.0.0.1`` -> ``"9.9.9.9"``
    """

    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get(REAL_IP_HEADER)
    if real_ip:
        return real_ip

    return UNKNOWN_CLIENT


def get_rate_limiters(request: Request) -> RateLimiterRegistry:
    """Return the registry attached to the running application."""

    return request.app.state.rate_limiters


def get_rate_limit_settings(request: Request) -> RateLimitSettings:
    """Return the rate limit settings the running application was built with."""

    return request.app.state.rate_limit_settings


def _hash_client_key(key: str) -> str:
    """Hash the client key for logging without exposing addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def build_rate_limit_response(decision: RateLimitDecision) -> JSONResponse:
    """Render a denied decision as the HTTP 429 response."""

    retry_after = decision.retry_after_seconds or 0
    body = RateLimitErrorResponse(retry_after=retry_after)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(by_alias=True),
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": decision.reset_at_iso,
        },
    )


def check_rate_limit(request: Request, policy: str) -> JSONResponse | None:
    """Count the request against ``policy`` and return a 429 when over budget.

    Args:
        request: FastAPI request.
        policy: Name of a configured rate limit policy.

    Returns:
        None if the request may proceed, otherwise the response to send.

    Raises:
        ConfigurationAppError: If ``policy`` is not configured.
    """

    if not get_rate_limit_settings(request).enabled:
        return None

    limiter = get_rate_limiters(request).get(policy)
    key = get_client_key(request)
    decision = limiter.check(key)

    log_extra = {
        "policy": policy,
        "key_hash": _hash_client_key(key),
        "limit": decision.limit,
        "remaining": decision.remaining,
        "window_ms": limiter.config.window_ms,
    }

    if decision.allowed:
        logger.debug("rate_limit.allowed", extra=log_extra)
        return None

    logger.warning(
        "rate_limit.exceeded",
        extra={**log_extra, "retry_after_s": decision.retry_after_seconds},
    )
    return build_rate_limit_response(decision)


def rate_limit(policy: str) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing ``policy``.

    Raises:
        RateLimitExceeded: From the dependency, when the client is over budget.
    """

    async def enforce_rate_limit(request: Request) -> None:
        response = check_rate_limit(request, policy)
        if response is not None:
            raise RateLimitExceeded(response)

    enforce_rate_limit.__name__ = f"enforce_rate_limit_{policy}"
    return enforce_rate_limit

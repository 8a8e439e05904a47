"""Rate limiting adapters.

This package keeps the counting logic behind a small abstraction so the HTTP
guard does not depend on how counters are stored.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    ClientCounter,
    RateLimitConfig,
    RateLimitDecision,
)
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter, create_limiter
from app.adapters.rate_limit.registry import RateLimiterRegistry

__all__ = [
    "AbstractRateLimiter",
    "ClientCounter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitConfig",
    "RateLimitDecision",
    "RateLimiterRegistry",
    "create_limiter",
]

"""Rate limiter interfaces and value types.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the counter storage can change without touching the guard.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from app.core.errors import ConfigurationAppError


def _is_positive_int(value: object) -> bool:
    # bool is an int subclass; True must not pass as a window of 1 ms.
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass(frozen=True)
class RateLimitConfig:
    """Policy for a single limiter instance.

    Attributes:
        window_ms: Length of the fixed counting window in milliseconds.
        max_requests: Requests allowed per window for one client key.

    Raises:
        ConfigurationAppError: If either value is not a positive integer.
    """

    window_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if not _is_positive_int(self.window_ms):
            raise ConfigurationAppError(
                code="invalid_rate_limit_window",
                message="window_ms must be a positive integer",
                details={"field": "window_ms", "actual_value": self.window_ms},
            )
        if not _is_positive_int(self.max_requests):
            raise ConfigurationAppError(
                code="invalid_rate_limit_max_requests",
                message="max_requests must be an integer >= 1",
                details={"field": "max_requests", "actual_value": self.max_requests},
            )


@dataclass
class ClientCounter:
    """Request count for one client key inside the current window."""

    identifier: str
    count: int
    reset_time_ms: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.reset_time_ms


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when denied).
        reset_at: UTC time at which the current window resets.
        retry_after_seconds: Seconds to wait before retrying; None when allowed.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after_seconds: int | None

    @property
    def reset_at_iso(self) -> str:
        """ISO-8601 reset timestamp with millisecond precision, e.g. ``2025-01-01T00:01:00.000Z``."""
        reset_at = self.reset_at.astimezone(timezone.utc)
        return reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @property
    @abstractmethod
    def config(self) -> RateLimitConfig:
        raise NotImplementedError

    @property
    @abstractmethod
    def tracked_keys(self) -> int:
        """Number of client counters currently held in memory."""
        raise NotImplementedError

    @abstractmethod
    def check(self, client_key: str) -> RateLimitDecision:
        """Record a request for ``client_key`` and decide whether it may proceed.

        Args:
            client_key: Client identifier (e.g., forwarded IP address).

        Returns:
            RateLimitDecision describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Drop every tracked counter."""
        raise NotImplementedError

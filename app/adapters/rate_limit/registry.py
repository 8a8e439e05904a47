"""Named rate limit policies mapped to long-lived limiter instances.

One registry is built when the application is created and attached to
``app.state``. Limiters are memoized per policy so counters survive across
requests; building a limiter per request would reset them every time.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Mapping

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitConfig
from app.adapters.rate_limit.in_memory import create_limiter
from app.core.errors import ConfigurationAppError

if TYPE_CHECKING:
    from app.core.config import RateLimitSettings

logger = logging.getLogger(__name__)

LimiterFactory = Callable[[RateLimitConfig], AbstractRateLimiter]


class RateLimiterRegistry:
    """Owns one limiter per named policy."""

    def __init__(
        self,
        policies: Mapping[str, RateLimitConfig],
        *,
        limiter_factory: LimiterFactory = create_limiter,
    ) -> None:
        self._policies = dict(policies)
        self._factory = limiter_factory
        self._limiters: dict[str, AbstractRateLimiter] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, rate_limit_settings: "RateLimitSettings") -> "RateLimiterRegistry":
        """Build a registry from the configured policies.

        Args:
            rate_limit_settings: Resolved ``RateLimitSettings``.

        Returns:
            Registry whose limiters share the configured sweep tuning.

        Raises:
            ConfigurationAppError: If any policy has invalid values.
        """

        policies = {
            name: RateLimitConfig(window_ms=policy.window_ms, max_requests=policy.max_requests)
            for name, policy in rate_limit_settings.policies.items()
        }

        def factory(config: RateLimitConfig) -> AbstractRateLimiter:
            return create_limiter(
                config,
                sweep_threshold=rate_limit_settings.sweep_threshold,
                sweep_interval=rate_limit_settings.sweep_interval,
            )

        return cls(policies, limiter_factory=factory)

    @property
    def policy_names(self) -> list[str]:
        return sorted(self._policies)

    def get(self, policy: str) -> AbstractRateLimiter:
        """Return the limiter for ``policy``, creating it on first use.

        Raises:
            ConfigurationAppError: If no policy with that name is configured.
        """

        with self._lock:
            limiter = self._limiters.get(policy)
            if limiter is not None:
                return limiter

            config = self._policies.get(policy)
            if config is None:
                raise ConfigurationAppError(
                    code="unknown_rate_limit_policy",
                    message=f"No rate limit policy named '{policy}' is configured",
                    details={"policy": policy, "hint": "Add it to RATE_LIMIT_POLICIES"},
                )

            limiter = self._factory(config)
            self._limiters[policy] = limiter
            return limiter

    def clear(self) -> None:
        """Reset the counters of every limiter created so far."""

        with self._lock:
            for limiter in self._limiters.values():
                limiter.clear()
        logger.info("rate_limit.registry_cleared", extra={"policies": len(self._limiters)})

    def stats(self) -> dict[str, dict[str, Any]]:
        """Return per-policy configuration and tracked key counts."""

        with self._lock:
            return {
                name: {
                    "window_ms": config.window_ms,
                    "max_requests": config.max_requests,
                    "tracked_keys": self._limiters[name].tracked_keys if name in self._limiters else 0,
                }
                for name, config in sorted(self._policies.items())
            }

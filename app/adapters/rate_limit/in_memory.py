"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so sync routes running in
  the threadpool cannot lose increments.
- Windows are anchored at each client's first request, not at clock
  boundaries. A client may still burst up to twice the limit across a
  window edge.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    ClientCounter,
    RateLimitConfig,
    RateLimitDecision,
)
from app.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_THRESHOLD = 1000
DEFAULT_SWEEP_INTERVAL = 100


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per client key in a fixed window.

    The first request from a key opens a window of ``config.window_ms``; the
    key may then make ``config.max_requests`` requests before the window
    resets. A request arriving exactly at the reset time opens a new window.

    Expired counters are harmless to correctness (they are replaced on the
    next request) and are reclaimed by ``sweep()``, which ``check()`` runs
    once the store grows past ``sweep_threshold`` entries, at most every
    ``sweep_interval`` checks.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.time,
        sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
        sweep_interval: int = DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            config: Window length and request budget.
            clock: Time source function returning UNIX time in seconds.
            sweep_threshold: Store size above which expired counters are swept.
            sweep_interval: Minimum number of checks between two sweeps.

        Raises:
            ConfigurationAppError: If the sweep tuning values are invalid.
        """
        if sweep_threshold < 0:
            raise ConfigurationAppError(
                code="invalid_sweep_threshold",
                message="sweep_threshold must be >= 0",
                details={"field": "sweep_threshold", "actual_value": sweep_threshold},
            )
        if sweep_interval < 1:
            raise ConfigurationAppError(
                code="invalid_sweep_interval",
                message="sweep_interval must be >= 1",
                details={"field": "sweep_interval", "actual_value": sweep_interval},
            )

        self._config = config
        self._clock = clock
        self._sweep_threshold = sweep_threshold
        self._sweep_interval = sweep_interval
        self._checks_since_sweep = 0
        self._lock = threading.RLock()
        self._counters: dict[str, ClientCounter] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryFixedWindowRateLimiter(window_ms={self._config.window_ms}, "
            f"max_requests={self._config.max_requests}, tracked_keys={len(self._counters)})"
        )

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._counters)

    def _now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    def _build_allowed_result(self, counter: ClientCounter) -> RateLimitDecision:
        """Build a RateLimitDecision for an allowed request."""
        return RateLimitDecision(
            allowed=True,
            limit=self._config.max_requests,
            remaining=max(0, self._config.max_requests - counter.count),
            reset_at=_to_datetime(counter.reset_time_ms),
            retry_after_seconds=None,
        )

    def _build_blocked_result(self, counter: ClientCounter, now_ms: int) -> RateLimitDecision:
        """Build a RateLimitDecision for a denied request."""
        retry_after = max(0, math.ceil((counter.reset_time_ms - now_ms) / 1000))
        return RateLimitDecision(
            allowed=False,
            limit=self._config.max_requests,
            remaining=0,
            reset_at=_to_datetime(counter.reset_time_ms),
            retry_after_seconds=retry_after,
        )

    def _maybe_sweep_locked(self, now_ms: int) -> None:
        self._checks_since_sweep += 1
        if len(self._counters) <= self._sweep_threshold:
            return
        if self._checks_since_sweep < self._sweep_interval:
            return
        self._sweep_locked(now_ms)

    def _sweep_locked(self, now_ms: int) -> int:
        expired = [key for key, counter in self._counters.items() if counter.reset_time_ms < now_ms]
        for key in expired:
            del self._counters[key]
        self._checks_since_sweep = 0
        logger.debug(
            "rate_limit.sweep",
            extra={
                "evicted": len(expired),
                "size": len(self._counters),
                "window_ms": self._config.window_ms,
            },
        )
        return len(expired)

    def check(self, client_key: str) -> RateLimitDecision:
        """Record a request for the provided key and decide on it.

        Denied requests still increment the counter, so the stored count
        never decreases within a window.

        Args:
            client_key: Unique identifier for rate limiting (e.g., client IP).

        Returns:
            RateLimitDecision with allowance decision and metadata.

        Raises:
            ValueError: If client_key is empty.
        """
        if not client_key:
            raise ValueError("client_key must be a non-empty string")

        now_ms = self._now_ms()

        with self._lock:
            self._maybe_sweep_locked(now_ms)

            counter = self._counters.get(client_key)
            if counter is None or counter.is_expired(now_ms):
                counter = ClientCounter(
                    identifier=client_key,
                    count=1,
                    reset_time_ms=now_ms + self._config.window_ms,
                )
                self._counters[client_key] = counter
                return self._build_allowed_result(counter)

            counter.count += 1
            if counter.count > self._config.max_requests:
                return self._build_blocked_result(counter, now_ms)
            return self._build_allowed_result(counter)

    def sweep(self) -> int:
        """Evict counters whose window has already ended.

        Returns:
            Number of counters removed.
        """
        now_ms = self._now_ms()
        with self._lock:
            return self._sweep_locked(now_ms)

    def get_counter(self, client_key: str) -> ClientCounter | None:
        """Return a copy of the stored counter for ``client_key``, if any."""
        with self._lock:
            counter = self._counters.get(client_key)
            return replace(counter) if counter is not None else None

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._checks_since_sweep = 0


def create_limiter(
    config: RateLimitConfig,
    *,
    clock: Callable[[], float] = time.time,
    sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
    sweep_interval: int = DEFAULT_SWEEP_INTERVAL,
) -> InMemoryFixedWindowRateLimiter:
    """Build a limiter for one policy. Create it once and reuse it across requests."""
    return InMemoryFixedWindowRateLimiter(
        config,
        clock=clock,
        sweep_threshold=sweep_threshold,
        sweep_interval=sweep_interval,
    )


def _to_datetime(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)

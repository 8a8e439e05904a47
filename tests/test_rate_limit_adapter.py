"""Unit tests for the in-memory fixed-window rate limiter."""

import threading
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.base import RateLimitConfig
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter, create_limiter
from app.core.errors import ConfigurationAppError


def _limiter(clock: Mock, *, window_ms: int = 60_000, max_requests: int = 5, **kwargs) -> InMemoryFixedWindowRateLimiter:
    return InMemoryFixedWindowRateLimiter(
        RateLimitConfig(window_ms=window_ms, max_requests=max_requests),
        clock=clock,
        **kwargs,
    )


def test_allows_up_to_limit_in_same_window(clock: Mock) -> None:
    limiter = _limiter(clock, max_requests=3)

    assert limiter.check("k").allowed is True
    assert limiter.check("k").allowed is True
    result = limiter.check("k")
    assert result.allowed is True
    assert result.remaining == 0
    assert result.retry_after_seconds is None


def test_blocks_request_after_limit(clock: Mock) -> None:
    limiter = _limiter(clock, max_requests=2)

    assert limiter.check("k").allowed is True
    assert limiter.check("k").allowed is True

    blocked = limiter.check("k")
    assert blocked.allowed is False
    assert blocked.limit == 2
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == 60


def test_concrete_minute_window_scenario() -> None:
    clock = Mock(return_value=0.0)
    limiter = _limiter(clock, window_ms=60_000, max_requests=5)

    for _ in range(5):
        assert limiter.check("1.2.3.4").allowed is True

    clock.return_value = 0.1
    denied = limiter.check("1.2.3.4")
    assert denied.allowed is False
    assert denied.retry_after_seconds == 60
    assert denied.reset_at == datetime(1970, 1, 1, 0, 1, tzinfo=timezone.utc)

    clock.return_value = 61.0
    assert limiter.check("1.2.3.4").allowed is True


def test_fresh_window_allows_full_budget_again(clock: Mock) -> None:
    limiter = _limiter(clock, window_ms=10_000, max_requests=3)

    for _ in range(3):
        assert limiter.check("k").allowed is True
    assert limiter.check("k").allowed is False

    clock.return_value = 1010.0
    for _ in range(3):
        assert limiter.check("k").allowed is True
    assert limiter.check("k").allowed is False

    counter = limiter.get_counter("k")
    assert counter is not None
    assert counter.reset_time_ms == 1_020_000


def test_request_at_exact_reset_time_opens_new_window(clock: Mock) -> None:
    limiter = _limiter(clock, window_ms=10_000, max_requests=1)

    assert limiter.check("k").allowed is True
    clock.return_value = 1009.999
    assert limiter.check("k").allowed is False

    clock.return_value = 1010.0
    assert limiter.check("k").allowed is True
    assert limiter.get_counter("k").count == 1


def test_window_is_anchored_at_first_request(clock: Mock) -> None:
    clock.return_value = 1005.5
    limiter = _limiter(clock, window_ms=10_000, max_requests=1)

    result = limiter.check("k")
    assert result.reset_at_iso == "1970-01-01T00:16:55.500Z"


def test_isolated_by_key(clock: Mock) -> None:
    limiter = _limiter(clock, max_requests=1)

    assert limiter.check("k1").allowed is True
    assert limiter.check("k1").allowed is False
    assert limiter.check("k1").allowed is False

    assert limiter.check("k2").allowed is True
    assert limiter.get_counter("k2").count == 1


def test_denied_metadata_points_into_the_future(clock: Mock) -> None:
    limiter = _limiter(clock, window_ms=1_500, max_requests=1)

    limiter.check("k")
    clock.return_value = 1001.2
    denied = limiter.check("k")

    assert denied.allowed is False
    assert denied.retry_after_seconds == 1
    now = datetime.fromtimestamp(clock.return_value, tz=timezone.utc)
    assert denied.reset_at >= now
    assert denied.reset_at_iso.endswith("Z")


def test_count_keeps_growing_while_denied(clock: Mock) -> None:
    limiter = _limiter(clock, max_requests=2)

    counts = []
    for _ in range(5):
        limiter.check("k")
        counts.append(limiter.get_counter("k").count)

    assert counts == [1, 2, 3, 4, 5]
    assert counts == sorted(counts)


def test_get_counter_returns_a_copy(clock: Mock) -> None:
    limiter = _limiter(clock)
    limiter.check("k")

    snapshot = limiter.get_counter("k")
    snapshot.count = 100

    assert limiter.get_counter("k").count == 1
    assert limiter.get_counter("missing") is None


def test_sweep_removes_only_expired_counters(clock: Mock) -> None:
    limiter = _limiter(clock, window_ms=10_000)
    limiter.check("old")

    clock.return_value = 1008.0
    limiter.check("live")

    clock.return_value = 1012.0
    removed = limiter.sweep()

    assert removed == 1
    assert limiter.get_counter("old") is None
    live = limiter.get_counter("live")
    assert live is not None
    assert live.reset_time_ms == 1_018_000
    assert limiter.tracked_keys == 1


def test_sweep_never_removes_live_counters(clock: Mock) -> None:
    limiter = _limiter(clock, window_ms=60_000, max_requests=1)
    for i in range(50):
        limiter.check(f"10.0.0.{i}")

    clock.return_value = 1059.0
    assert limiter.sweep() == 0
    assert limiter.tracked_keys == 50
    assert limiter.check("10.0.0.1").allowed is False


def test_check_sweeps_once_store_exceeds_threshold(clock: Mock) -> None:
    limiter = _limiter(clock, window_ms=1_000, sweep_threshold=3, sweep_interval=2)
    for key in ("a", "b", "c", "d"):
        limiter.check(key)
    assert limiter.tracked_keys == 4

    clock.return_value = 1002.0
    limiter.check("e")
    limiter.check("f")

    # a-d expired and were reclaimed by the sweep triggered from check()
    assert limiter.tracked_keys == 2
    assert limiter.get_counter("e") is not None
    assert limiter.get_counter("f") is not None


def test_check_does_not_sweep_below_threshold(clock: Mock) -> None:
    limiter = _limiter(clock, window_ms=1_000, sweep_threshold=10, sweep_interval=1)
    for key in ("a", "b", "c"):
        limiter.check(key)

    clock.return_value = 1005.0
    limiter.check("d")

    assert limiter.tracked_keys == 4


def test_eviction_does_not_change_decisions(clock: Mock) -> None:
    swept = _limiter(clock, window_ms=1_000, max_requests=2, sweep_threshold=0, sweep_interval=1)
    unswept = _limiter(clock, window_ms=1_000, max_requests=2, sweep_threshold=10_000)

    timeline = [1000.0, 1000.2, 1000.4, 1000.9, 1001.0, 1001.1, 1001.5, 1003.0]
    for now in timeline:
        clock.return_value = now
        for key in ("x", "y"):
            assert swept.check(key).allowed == unswept.check(key).allowed


def test_clear_drops_all_counters(clock: Mock) -> None:
    limiter = _limiter(clock, max_requests=1)
    limiter.check("k")
    assert limiter.check("k").allowed is False

    limiter.clear()

    assert limiter.tracked_keys == 0
    assert limiter.check("k").allowed is True


def test_create_limiter_passes_options(clock: Mock) -> None:
    config = RateLimitConfig(window_ms=1_000, max_requests=1)
    limiter = create_limiter(config, clock=clock)

    assert isinstance(limiter, InMemoryFixedWindowRateLimiter)
    assert limiter.config is config
    assert limiter.check("k").allowed is True


def test_create_limiter_forwards_sweep_tuning(clock: Mock) -> None:
    limiter = create_limiter(
        RateLimitConfig(window_ms=1_000, max_requests=1),
        clock=clock,
        sweep_threshold=0,
        sweep_interval=1,
    )
    limiter.check("a")

    clock.return_value = 1002.0
    limiter.check("b")

    assert limiter.get_counter("a") is None
    assert limiter.tracked_keys == 1


def test_concurrent_checks_do_not_lose_increments() -> None:
    threads_count = 8
    checks_per_thread = 2000
    limiter = InMemoryFixedWindowRateLimiter(
        RateLimitConfig(window_ms=3_600_000, max_requests=1_000_000),
    )
    start = threading.Barrier(threads_count)

    def worker() -> None:
        start.wait()
        for _ in range(checks_per_thread):
            limiter.check("k")

    threads = [threading.Thread(target=worker) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert limiter.get_counter("k").count == threads_count * checks_per_thread


@pytest.mark.parametrize(
    "kwargs",
    [
        {"window_ms": 0, "max_requests": 1},
        {"window_ms": -1, "max_requests": 1},
        {"window_ms": 1000, "max_requests": 0},
        {"window_ms": 1000, "max_requests": -5},
        {"window_ms": 1000.5, "max_requests": 1},
        {"window_ms": True, "max_requests": 1},
    ],
)
def test_invalid_config_is_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationAppError):
        RateLimitConfig(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sweep_threshold": -1},
        {"sweep_interval": 0},
    ],
)
def test_invalid_sweep_tuning_is_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationAppError):
        InMemoryFixedWindowRateLimiter(RateLimitConfig(window_ms=1000, max_requests=1), **kwargs)


def test_empty_key_is_rejected() -> None:
    limiter = InMemoryFixedWindowRateLimiter(RateLimitConfig(window_ms=1000, max_requests=1))

    with pytest.raises(ValueError):
        limiter.check("")

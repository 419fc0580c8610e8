"""Tests for the fixed-window rate limiter."""
import pytest
from swarmhook.errors import RateLimitedError
from swarmhook.services.rate_limit import FixedWindowRateLimiter


def test_allows_up_to_limit(clock):
    limiter = FixedWindowRateLimiter(limit=3, window_seconds=60, clock=clock)

    results = [limiter.admit("agent:a") for _ in range(3)]

    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [2, 1, 0]


def test_denies_past_limit(clock):
    limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.admit("k")
    limiter.admit("k")

    denied = limiter.admit("k")

    assert denied.allowed is False
    assert denied.remaining == 0
    assert 1 <= denied.retry_after(clock.now()) <= 60


def test_denials_are_not_counted(clock):
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
    first = limiter.admit("k")
    for _ in range(5):
        limiter.admit("k")

    clock.advance(seconds=61)
    assert limiter.admit("k").allowed
    assert first.allowed


def test_window_resets(clock):
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
    assert limiter.admit("k").allowed
    assert not limiter.admit("k").allowed

    clock.advance(seconds=60)

    assert limiter.admit("k").allowed


def test_keys_are_independent(clock):
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
    assert limiter.admit("10.0.0.1").allowed
    assert limiter.admit("10.0.0.2").allowed
    assert not limiter.admit("10.0.0.1").allowed


def test_remaining_and_sweep(clock):
    limiter = FixedWindowRateLimiter(limit=5, window_seconds=60, clock=clock)
    limiter.admit("a")
    limiter.admit("b")

    assert limiter.remaining("a") == 4
    assert limiter.remaining("unknown") == 5
    assert len(limiter) == 2

    clock.advance(minutes=2)
    assert limiter.sweep() == 2
    assert len(limiter) == 0


def test_service_admit_raises(service, clock):
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
    service.admit(limiter, "inbox:a", "api")

    with pytest.raises(RateLimitedError) as exc_info:
        service.admit(limiter, "inbox:a", "api")

    error = exc_info.value
    assert error.status_code == 429
    assert error.detail["limit"] == 1
    assert error.detail["retry_after"] >= 1

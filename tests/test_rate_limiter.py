"""Tests for the sliding-window per-user rate limiter and queue config."""

from __future__ import annotations

import pytest

from bookmark_ai.config import QueueConfig
from bookmark_ai.queue import UserRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def test_limit_refuses_after_quota() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(limit=2, window=60.0, clock=clock)
    first = limiter.check("alice")
    second = limiter.check("alice")
    third = limiter.check("alice")
    if not (first.allowed and second.allowed):
        raise AssertionError("First two requests should be allowed")
    if first.remaining != 1 or second.remaining != 0:
        raise AssertionError("Remaining count should decrease per admitted request")
    if third.allowed:
        raise AssertionError("Third request inside the window must be refused")
    if third.reset_at != pytest.approx(1060.0):
        raise AssertionError("reset_at is when the oldest hit leaves the window")


def test_window_slides() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(limit=1, window=10.0, clock=clock)
    limiter.check("alice")
    clock.now += 10.5
    if not limiter.check("alice").allowed:
        raise AssertionError("Hits older than the window should be forgotten")


def test_users_are_isolated() -> None:
    limiter = UserRateLimiter(limit=1, window=60.0, clock=FakeClock())
    limiter.check("alice")
    if not limiter.check("bob").allowed:
        raise AssertionError("One user's usage must not affect another")


def test_consume_and_reset() -> None:
    limiter = UserRateLimiter(limit=1, window=60.0, clock=FakeClock())
    limiter.consume("alice")
    if limiter.check("alice").allowed:
        raise AssertionError("consume should count against the quota")
    limiter.reset("alice")
    if not limiter.check("alice").allowed:
        raise AssertionError("reset should forget the user's hits")


def test_idle_users_are_forgotten() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(limit=2, window=10.0, clock=clock)
    limiter.check("alice")
    limiter.check("bob")
    if limiter.tracked_users != 2:
        raise AssertionError("Both users have live hits")
    clock.now += 10.5
    limiter.check("alice")
    if limiter.tracked_users != 1:
        raise AssertionError("Users without hits in the window should not be kept")
    clock.now += 10.5
    if limiter.tracked_users != 0:
        raise AssertionError("Expired users should be dropped on the next sweep")


def test_disabled_limiter_always_allows() -> None:
    limiter = UserRateLimiter(limit=1, window=60.0, enabled=False)
    results = [limiter.check("alice").allowed for _ in range(5)]
    if not all(results):
        raise AssertionError("Disabled limiter should allow everything")


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BOOKMARK_AI_USER_RATE_LIMIT", raising=False)
    monkeypatch.setenv("BOOKMARK_AI_MAX_CONCURRENT", "2")
    monkeypatch.setenv("BOOKMARK_AI_RATE_LIMIT_WINDOW", "30")
    config = QueueConfig.from_env()
    if config.max_concurrent != 2 or config.rate_limit_window != 30.0:
        msg = f"Unexpected config {config}"
        raise AssertionError(msg)
    if config.user_rate_limit != 20:
        raise AssertionError("Unset variables fall back to defaults")


def test_config_rejects_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOOKMARK_AI_MAX_CONCURRENT", "many")
    with pytest.raises(ValueError, match="BOOKMARK_AI_MAX_CONCURRENT"):
        QueueConfig.from_env()
    with pytest.raises(ValueError, match="positive"):
        QueueConfig(max_concurrent=0)

"""Tests for the per-route rate limit policies and both limiter backends."""

from __future__ import annotations

import time
from dataclasses import replace

import fakeredis
import pytest

from tenantconsole.config import get_settings
from tenantconsole.security.rate_limiter import (
    RateLimitPolicy,
    RouteRateLimits,
    SlidingWindowRateLimiter,
    build_rate_limiter,
)
from tenantconsole.security.redis_rate_limiter import RedisRateLimiter

RESEND = RateLimitPolicy("resend", max_requests=2, window_seconds=1)
INVITE = RateLimitPolicy("invite", max_requests=1, window_seconds=60)


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def test_policy_parses_requests_per_window():
    policy = RateLimitPolicy.parse("resend", "3/3600")
    assert policy == RateLimitPolicy("resend", max_requests=3, window_seconds=3600)


@pytest.mark.parametrize("spec", ["", "3", "three/60", "0/60", "5/0"])
def test_policy_rejects_malformed_specs(spec):
    with pytest.raises(ValueError):
        RateLimitPolicy.parse("resend", spec)


def test_route_limits_come_from_settings():
    settings = replace(get_settings(), last_login_rate_limit="5/60", resend_rate_limit="1/900")
    limits = RouteRateLimits.from_settings(settings)
    assert limits.last_login.max_requests == 5
    assert limits.resend.window_seconds == 900
    assert limits.invite.name == "invite"


def test_memory_limiter_tracks_policies_and_keys_independently():
    limiter = SlidingWindowRateLimiter()
    assert limiter.allow(INVITE, "u-1")
    assert not limiter.allow(INVITE, "u-1")
    assert limiter.allow(INVITE, "u-2")
    assert limiter.allow(RESEND, "u-1")


def test_memory_limiter_releases_after_window(monkeypatch):
    clock = [100.0]
    monkeypatch.setattr(time, "monotonic", lambda: clock[0])
    limiter = SlidingWindowRateLimiter()
    policy = RateLimitPolicy("last-login", max_requests=2, window_seconds=10)

    assert limiter.allow(policy, "u-1")
    assert limiter.allow(policy, "u-1")
    assert not limiter.allow(policy, "u-1")

    clock[0] += 10.5
    assert limiter.allow(policy, "u-1")


def test_redis_limiter_blocks_excess_per_key(redis_client):
    limiter = RedisRateLimiter(redis_client, key_prefix="test")
    assert limiter.allow(RESEND, "u-1")
    assert limiter.allow(RESEND, "u-1")
    assert not limiter.allow(RESEND, "u-1")
    assert limiter.allow(RESEND, "u-2")
    assert limiter.allow(INVITE, "u-1")


def test_redis_limiter_does_not_count_rejected_hits(redis_client):
    limiter = RedisRateLimiter(redis_client, key_prefix="test")
    for _ in range(5):
        limiter.allow(RESEND, "u-1")
    assert redis_client.zcard("test:resend:u-1") == RESEND.max_requests


def test_redis_limiter_expires_entries(redis_client):
    limiter = RedisRateLimiter(redis_client, key_prefix="test")
    policy = RateLimitPolicy("last-login", max_requests=1, window_seconds=1)
    assert limiter.allow(policy, "u-1")
    assert not limiter.allow(policy, "u-1")
    time.sleep(1.1)
    assert limiter.allow(policy, "u-1")


def test_build_rate_limiter_defaults_to_memory():
    settings = replace(get_settings(), rate_limit_backend="memory", redis_url="")
    assert isinstance(build_rate_limiter(settings), SlidingWindowRateLimiter)


def test_build_rate_limiter_falls_back_when_redis_is_unreachable():
    settings = replace(
        get_settings(), rate_limit_backend="redis", redis_url="redis://127.0.0.1:1/0"
    )
    assert isinstance(build_rate_limiter(settings), SlidingWindowRateLimiter)

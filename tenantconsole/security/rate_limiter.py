"""Per-route rate limiting for the console's write routes."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Deque, DefaultDict, Protocol

from ..config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """At most ``max_requests`` hits per key within ``window_seconds``."""

    name: str
    max_requests: int
    window_seconds: int

    @classmethod
    def parse(cls, name: str, spec: str) -> "RateLimitPolicy":
        """Build a policy from ``"<requests>/<seconds>"``, e.g. ``"3/3600"``."""
        requests, _, window = spec.partition("/")
        try:
            policy = cls(name=name, max_requests=int(requests), window_seconds=int(window))
        except ValueError as exc:
            raise ValueError(f"invalid rate limit for {name}: {spec!r}") from exc
        if policy.max_requests < 1 or policy.window_seconds < 1:
            raise ValueError(f"invalid rate limit for {name}: {spec!r}")
        return policy


@dataclass(frozen=True, slots=True)
class RouteRateLimits:
    last_login: RateLimitPolicy
    invite: RateLimitPolicy
    resend: RateLimitPolicy

    @classmethod
    def from_settings(cls, settings: Settings) -> "RouteRateLimits":
        return cls(
            last_login=RateLimitPolicy.parse("last-login", settings.last_login_rate_limit),
            invite=RateLimitPolicy.parse("invite", settings.invite_rate_limit),
            resend=RateLimitPolicy.parse("resend", settings.resend_rate_limit),
        )


class RateLimiter(Protocol):
    def allow(self, policy: RateLimitPolicy, key: str) -> bool: ...


class SlidingWindowRateLimiter:
    """Thread-safe in-process limiter; one timestamp queue per policy and key."""

    def __init__(self) -> None:
        self._hits: DefaultDict[tuple[str, str], Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def allow(self, policy: RateLimitPolicy, key: str) -> bool:
        """Record a hit for ``key`` unless it already used up the policy's window."""
        now = time.monotonic()
        cutoff = now - policy.window_seconds
        with self._lock:
            hits = self._hits[(policy.name, key)]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= policy.max_requests:
                return False
            hits.append(now)
            return True


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Return the configured limiter, falling back to memory when Redis is unreachable."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        import redis
        from redis.exceptions import RedisError

        from .redis_rate_limiter import RedisRateLimiter

        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
        except RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisRateLimiter(client, key_prefix="console-rate")

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter()

"""Redis-backed rate limiter shared by every API worker."""

from __future__ import annotations

import time
import uuid

from redis import Redis

from .rate_limiter import RateLimitPolicy


class RedisRateLimiter:
    """Sliding window over a sorted set per policy and key.

    Each hit is added inside a MULTI/EXEC pipeline together with the pruning
    and the count, so concurrent workers agree on the window. A hit that
    overshoots the limit is removed again and does not count.
    """

    def __init__(self, client: Redis, *, key_prefix: str = "rate") -> None:
        self._client = client
        self._key_prefix = key_prefix

    def allow(self, policy: RateLimitPolicy, key: str) -> bool:
        now_ms = int(time.time() * 1000)
        window_ms = policy.window_seconds * 1000
        redis_key = f"{self._key_prefix}:{policy.name}:{key}"
        member = f"{now_ms}:{uuid.uuid4().hex}"

        pipe = self._client.pipeline(transaction=True)
        pipe.zremrangebyscore(redis_key, "-inf", now_ms - window_ms)
        pipe.zadd(redis_key, {member: now_ms})
        pipe.zcard(redis_key)
        pipe.pexpire(redis_key, window_ms)
        _, _, hits, _ = pipe.execute()

        if hits > policy.max_requests:
            self._client.zrem(redis_key, member)
            return False
        return True

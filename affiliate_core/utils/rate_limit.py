"""
Rate limiting for partner-facing endpoints.

Sliding-window counters keyed by partner id, stored in Redis (sorted set per
key) when REDIS_URL is configured, in process memory otherwise.
"""
import logging
import time
from collections import defaultdict
from typing import Optional, Tuple
from threading import Lock

import redis

from ..config import settings

logger = logging.getLogger(__name__)

POSTBACK_WINDOW_SECONDS = 60


class InMemoryRateLimiter:
    """
    Simple in-memory rate limiter with TTL.

    Thread-safe. Used when Redis is not configured or unreachable.
    """

    def __init__(self):
        self._store: dict = defaultdict(list)
        self._lock = Lock()

    def _cleanup(self, key: str, window_seconds: int):
        """Remove expired entries."""
        cutoff = time.time() - window_seconds
        self._store[key] = [ts for ts in self._store[key] if ts > cutoff]

    def check_and_increment(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        """
        Check if key is within rate limit and increment counter.

        Returns: (allowed, remaining_count)
        """
        with self._lock:
            self._cleanup(key, window_seconds)
            current_count = len(self._store[key])

            if current_count >= limit:
                return False, 0

            self._store[key].append(time.time())
            return True, limit - current_count - 1

    def reset(self):
        with self._lock:
            self._store.clear()


class PartnerRateLimiter:
    """
    Per-partner limiter for postback ingestion.

    Uses Redis if available, falls back to in-memory.
    """

    def __init__(self, redis_client=None):
        self._redis = redis_client
        self._memory = InMemoryRateLimiter()
        self._use_redis = redis_client is not None

    @staticmethod
    def _get_partner_key(partner_id: str) -> str:
        return f"affiliate:rate:postback:{partner_id}"

    def check_partner_limit(self, partner_id: str, limit: Optional[int] = None) -> Tuple[bool, int]:
        """
        Check whether a partner may submit another postback in the current window.

        Returns:
            (allowed, remaining_count)
        """
        if limit is None:
            limit = settings.postback_rate_limit_per_minute
        key = self._get_partner_key(partner_id)

        if self._use_redis:
            try:
                return self._check_redis_limit(key, limit, POSTBACK_WINDOW_SECONDS)
            except redis.RedisError as e:
                logger.warning(f"Redis rate limit check failed, using memory: {e}")

        return self._memory.check_and_increment(key, limit, POSTBACK_WINDOW_SECONDS)

    def _check_redis_limit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        """Check rate limit using Redis sorted set with sliding window."""
        now = time.time()
        cutoff = now - window_seconds
        member = f"{now}"

        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(key, 0, cutoff)
        pipe.zcard(key)
        pipe.zadd(key, {member: now})
        pipe.expire(key, window_seconds + 1)
        results = pipe.execute()
        current_count = results[1]

        if current_count >= limit:
            # Over limit: drop the entry we just added
            self._redis.zrem(key, member)
            return False, 0

        return True, limit - current_count - 1

    def reset(self):
        self._memory.reset()


# Singleton instance
_rate_limiter: Optional[PartnerRateLimiter] = None


def get_rate_limiter() -> PartnerRateLimiter:
    """Get singleton rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        if settings.redis_url:
            redis_client = redis.Redis.from_url(settings.redis_url, socket_timeout=0.5)
            _rate_limiter = PartnerRateLimiter(redis_client)
            logger.info("Rate limiter initialized with Redis")
        else:
            _rate_limiter = PartnerRateLimiter()
            logger.info("Rate limiter initialized with in-memory store")
    return _rate_limiter

"""Rate limiting utilities."""

from datetime import datetime

import redis

from salvebot.db.repositories import RetryAfter


def make_rate_limit_key(client_id: str, bucket: str) -> str:
    """Create rate limit key from client identity and bucket.

    Args:
        client_id: Client identity (remote address or tenant ID)
        bucket: Bucket name (e.g., "chat", "upload", "api")

    Returns:
        Rate limit key
    """
    return f"{bucket}:{client_id}"


class RedisRateLimiter:
    """Redis-based fixed-window rate limiter using INCR + EXPIRE."""

    def __init__(self, redis_client: redis.Redis, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Redis client
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._redis = redis_client
        self._max_requests = max_requests
        self._window_seconds = window_seconds

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Windows are aligned to multiples of window_seconds, so all workers
        sharing the Redis instance count into the same key.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        window_start = int(now.timestamp() // self._window_seconds) * self._window_seconds
        redis_key = f"ratelimit:{key}:{window_start}"

        count = self._redis.incr(redis_key)

        # First hit in this window owns the expiry
        if count == 1:
            self._redis.expire(redis_key, self._window_seconds)

        if count > self._max_requests:
            ttl = self._redis.ttl(redis_key)
            return RetryAfter(seconds=max(1, ttl))

        return None

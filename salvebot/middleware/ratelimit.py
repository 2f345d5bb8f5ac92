"""Rate limiting middleware."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from salvebot.db.repositories import RateLimiter
from salvebot.models.common import utcnow
from salvebot.ratelimit import make_rate_limit_key

logger = logging.getLogger(__name__)

CHAT_BUCKET = "chat"
UPLOAD_BUCKET = "upload"
API_BUCKET = "api"


class RateLimitMiddleware:
    """Maps request paths to buckets and enforces per-client limits.

    Each bucket has its own limiter since buckets differ in quota.
    """

    def __init__(
        self,
        limiters: dict[str, RateLimiter],
        bucket_map: dict[str, str],
        default_bucket: str | None = API_BUCKET,
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            limiters: Limiter per bucket name
            bucket_map: Mapping from path prefixes to bucket names, checked in order
            default_bucket: Bucket for /api paths matching no prefix (None: unlimited)
        """
        self._limiters = limiters
        self._bucket_map = bucket_map
        self._default_bucket = default_bucket

    def check_rate_limit(
        self, path: str, client_id: str, now: datetime | None = None
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Args:
            path: Request path
            client_id: Client identity
            now: Current time (for testing)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if now is None:
            now = utcnow()

        bucket = self._get_bucket(path)
        limiter = self._limiters.get(bucket) if bucket else None

        if limiter is None:
            return (True, 0)

        retry_after = limiter.check_quota(make_rate_limit_key(client_id, bucket), now)

        if retry_after is None:
            return (True, 0)

        return (False, retry_after.seconds)

    async def __call__(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """HTTP middleware entry point (app.middleware("http"))."""
        client_id = request.client.host if request.client else "unknown"
        allowed, retry_after = self.check_rate_limit(request.url.path, client_id)

        if not allowed:
            logger.info(f"Rate limit exceeded for {client_id} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later."},
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)

    def _get_bucket(self, path: str) -> str | None:
        for prefix, bucket in self._bucket_map.items():
            if path.startswith(prefix):
                return bucket

        if path.startswith("/api/"):
            return self._default_bucket

        return None


def create_default_bucket_map() -> dict[str, str]:
    """Create default bucket mapping.

    Returns:
        Dictionary mapping path prefixes to bucket names
    """
    return {
        "/api/chat/": CHAT_BUCKET,
        "/api/documents/upload": UPLOAD_BUCKET,
    }

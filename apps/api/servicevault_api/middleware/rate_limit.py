"""Rate limiting middleware."""

import logging
import threading
import time
from typing import Callable, Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from servicevault_api.middleware.auth import is_public_path
from servicevault_api.settings import Settings, get_settings
from servicevault_api.utils.metrics import rate_limited_requests

logger = logging.getLogger(__name__)


class RateLimitStore:
    """Key/value store holding token bucket state."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    def expire(self, key: str, ttl_seconds: int) -> None:
        raise NotImplementedError


class RedisRateLimitStore(RateLimitStore):
    """Bucket state shared by every API process through Redis."""

    def __init__(self, redis_client):
        self.redis_client = redis_client

    def get(self, key: str) -> Optional[str]:
        return self.redis_client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.redis_client.set(key, value, ex=ttl_seconds)

    def expire(self, key: str, ttl_seconds: int) -> None:
        self.redis_client.expire(key, ttl_seconds)


class InMemoryRateLimitStore(RateLimitStore):
    """Per-process bucket state for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def expire(self, key: str, ttl_seconds: int) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries[key] = (entry[0], self._clock() + ttl_seconds)


def build_rate_limit_store(settings: Optional[Settings] = None) -> RateLimitStore:
    """Create the store selected by ``RATE_LIMIT_STORE``."""
    settings = settings or get_settings()
    if settings.rate_limit_store == "memory":
        return InMemoryRateLimitStore()

    import redis

    return RedisRateLimitStore(redis.from_url(settings.redis_url, decode_responses=True))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Token bucket rate limiting per tenant."""

    def __init__(
        self,
        app,
        store: RateLimitStore,
        requests_per_minute: Optional[int] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        settings = get_settings()
        self.store = store
        self.requests_per_minute = requests_per_minute or settings.rate_limit_requests_per_minute
        self.ttl_seconds = ttl_seconds or settings.rate_limit_ttl_seconds
        self.clock = clock

    async def dispatch(self, request: Request, call_next):
        """Apply rate limiting."""
        if is_public_path(request.url.path):
            return await call_next(request)

        # Tenant is set by the auth middleware; fall back to client IP
        tenant_id = getattr(request.state, "tenant_id", None)
        if not tenant_id:
            tenant_id = request.client.host if request.client else "unknown"

        key = f"rate_limit:{tenant_id}"
        now = self.clock()
        limit = self.requests_per_minute

        stored_tokens = self.store.get(key)
        stored_refill = self.store.get(f"{key}:last_refill")
        tokens = float(stored_tokens) if stored_tokens else float(limit)
        last_refill = float(stored_refill) if stored_refill else now

        # Refill tokens based on time passed
        refill_amount = ((now - last_refill) / 60.0) * limit
        tokens = min(float(limit), tokens + refill_amount)

        if tokens < 1:
            rate_limited_requests.inc()
            logger.warning("Rate limit exceeded", extra={"rate_limit_key": key, "path": request.url.path})
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": "60"},
            )

        tokens -= 1
        self.store.set(key, str(tokens), self.ttl_seconds)
        self.store.set(f"{key}:last_refill", str(now), self.ttl_seconds)

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(int(tokens))
        response.headers["X-RateLimit-Reset"] = str(int(now + 60))

        return response

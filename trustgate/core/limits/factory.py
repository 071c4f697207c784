"""Factory for rate limit stores.

Returns the store implementation for the configured backend (memory|redis).

Usage:
    from trustgate.core.limits.factory import get_rate_limit_store

    store = get_rate_limit_store(settings.limits_backend, redis_url=settings.redis_url)
"""

from __future__ import annotations

import redis.asyncio as redis

from trustgate.config.settings import Settings
from trustgate.core.limits import RateLimitResult, RateLimitStore
from trustgate.core.limits.memory import InMemoryRateLimitStore

SUPPORTED_BACKENDS = ("memory", "redis")


def get_rate_limit_store(
    backend: str = "memory",
    *,
    redis_url: str = "",
    window_seconds: int = 60,
    socket_timeout_seconds: float = 0.25,
) -> RateLimitStore:
    """Get a rate limit store implementation.

    Args:
        backend: Backend type ("memory" or "redis")
        redis_url: Redis connection URL (required for redis backend)
        window_seconds: Default window duration
        socket_timeout_seconds: Connect/read timeout for the redis client

    Returns:
        RateLimitStore implementation

    Raises:
        ValueError: If redis backend selected but redis_url not provided
    """
    if backend == "memory":
        return InMemoryRateLimitStore(window_seconds=window_seconds)

    if backend == "redis":
        if not redis_url:
            raise ValueError(
                "redis_url is required when limits_backend=redis"
            )
        return _RedisRateLimitStore(
            redis_url=redis_url,
            window_seconds=window_seconds,
            socket_timeout_seconds=socket_timeout_seconds,
        )

    raise ValueError(f"Unknown limits_backend: {backend}. Use 'memory' or 'redis'")


def get_store_from_settings(settings: Settings) -> RateLimitStore:
    """Build the token-issuance counter store from settings."""
    return get_rate_limit_store(
        settings.limits_backend,
        redis_url=settings.redis_url,
        window_seconds=settings.csrf_rate_limit_window_seconds,
        socket_timeout_seconds=settings.limits_store_timeout_ms / 1000,
    )


class _RedisRateLimitStore(RateLimitStore):
    """Redis-based rate limiting using atomic INCR + EXPIRE.

    Works across multiple workers and instances. Keys are prefixed with
    "trustgate:ratelimit:" to avoid collisions.
    """

    def __init__(
        self,
        redis_url: str,
        window_seconds: int = 60,
        socket_timeout_seconds: float = 0.25,
    ):
        """Initialize Redis rate limit store.

        Args:
            redis_url: Redis connection URL
            window_seconds: Window duration for rate limiting
            socket_timeout_seconds: Connect/read timeout for every command
        """
        self._redis_url = redis_url
        self._window_seconds = window_seconds
        self._socket_timeout = socket_timeout_seconds
        self._prefix = "trustgate:ratelimit:"
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        """Get or create Redis client (lazy initialization)."""
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        return self._client

    async def hit(self, key: str, limit: int, window_s: int | None = None) -> RateLimitResult:
        """Record a request using Redis INCR + EXPIRE."""
        ws = window_s or self._window_seconds
        client = self._get_client()

        # Bucket by redis server time so every instance agrees on the window
        now_s = await client.time()
        now_seconds = float(now_s[0]) + (float(now_s[1]) / 1_000_000)
        bucket = int(now_seconds // ws)
        redis_key = f"{self._prefix}{key}:{bucket}"
        reset_in_s = max(0.0, (bucket + 1) * ws - now_seconds)

        pipe = client.pipeline(transaction=True)
        pipe.incr(redis_key)
        pipe.expire(redis_key, ws, nx=True)
        results = await pipe.execute()

        current_count = int(results[0])

        if current_count > limit:
            return RateLimitResult(allowed=False, remaining=0, reset_in_s=reset_in_s)
        return RateLimitResult(
            allowed=True,
            remaining=limit - current_count,
            reset_in_s=reset_in_s,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

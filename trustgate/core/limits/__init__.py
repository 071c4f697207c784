"""Rate limit counter store abstractions.

The gateway's only shared mutable state is the token-issuance counters. This
package provides an in-memory store (single process) and a redis store
(shared across instances) behind one protocol, so the rate limiter does not
care where counts live.

Usage:
    from trustgate.core.limits.factory import get_rate_limit_store

    store = get_rate_limit_store(settings.limits_backend, redis_url=settings.redis_url)
    result = await store.hit("csrf:user:123", limit=10, window_s=60)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

__all__ = [
    "RateLimitResult",
    "RateLimitStore",
]


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed.
        remaining: Number of requests remaining in the window.
        reset_in_s: Seconds until the current window resets.
    """
    allowed: bool
    remaining: int
    reset_in_s: float


class RateLimitStore(Protocol):
    """Protocol for fixed-window rate limit backends.

    Implementations must make the increment for a key atomic so concurrent
    callers can never be admitted beyond ``limit`` within one window.
    """

    async def hit(self, key: str, limit: int, window_s: int) -> RateLimitResult:
        """Record a request and check rate limit.

        Args:
            key: Unique identifier for the rate limit bucket (e.g., "csrf:ip:1.2.3.4")
            limit: Maximum requests allowed in the window.
            window_s: Window duration in seconds.

        Returns:
            RateLimitResult with allowed/remaining/reset info.
        """
        ...

    async def aclose(self) -> None:
        """Release any connections held by the store."""
        ...

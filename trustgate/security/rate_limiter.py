"""Fail-closed rate limiting for token issuance."""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import Optional

from trustgate.core.limits import RateLimitStore
from trustgate.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one ``RateLimiter.allow`` call.

    Attributes:
        allowed: Whether the caller may proceed.
        remaining: Slots left in the current window (0 when denied).
        retry_after_seconds: Whole seconds until a retry can succeed.
        reason: None when allowed, else "quota_exceeded" or "store_unavailable".
    """
    allowed: bool
    remaining: int
    retry_after_seconds: int
    reason: Optional[str] = None


class RateLimiter:
    """Fixed-window limiter over a pluggable counter store.

    The store call is the only place the gateway may block, so it is bounded
    by ``timeout_seconds``. A timeout or store failure denies the request:
    an unreachable counter must never mean unlimited admissions.
    """

    def __init__(
        self,
        store: RateLimitStore,
        quota: int = 10,
        window_seconds: int = 60,
        timeout_seconds: float = 0.25,
    ):
        self.store = store
        self.quota = quota
        self.window_seconds = window_seconds
        self.timeout_seconds = timeout_seconds

    async def allow(self, key: str) -> RateLimitDecision:
        """Consume one slot for ``key``."""
        try:
            result = await asyncio.wait_for(
                self.store.hit(key, limit=self.quota, window_s=self.window_seconds),
                timeout=self.timeout_seconds,
            )
        except Exception as exc:
            logger.error(
                "Rate limit store unavailable, failing closed",
                data={"key": key, "error": f"{type(exc).__name__}: {exc}"},
            )
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                retry_after_seconds=self.window_seconds,
                reason="store_unavailable",
            )

        retry_after = max(1, math.ceil(result.reset_in_s))
        if not result.allowed:
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                retry_after_seconds=retry_after,
                reason="quota_exceeded",
            )
        return RateLimitDecision(
            allowed=True,
            remaining=result.remaining,
            retry_after_seconds=retry_after,
        )

    async def aclose(self) -> None:
        await self.store.aclose()

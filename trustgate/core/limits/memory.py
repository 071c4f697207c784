"""In-memory fixed-window rate limit store.

Per-process only; use the redis store when more than one worker or instance
issues tokens.
"""

from __future__ import annotations

import time
from asyncio import Lock
from dataclasses import dataclass
from typing import Callable

from trustgate.core.limits import RateLimitResult, RateLimitStore


@dataclass
class RateLimitBucket:
    """Counter for one key within one fixed window."""

    count: int
    window_start: float


class InMemoryRateLimitStore(RateLimitStore):
    """In-memory fixed-window rate limiting.

    Each key holds a ``{count, window_start}`` bucket. Increments for one key
    are serialized by a per-key lock; the registry lock is only held while
    looking the key's lock up, so unrelated keys do not contend.

    Note: This implementation is NOT shared across processes.
    """

    # Prune idle buckets once the registry grows past this many keys
    PRUNE_THRESHOLD = 10_000

    def __init__(
        self,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the rate limit store.

        Args:
            window_seconds: Default window duration in seconds.
            clock: Monotonic time source in seconds.
        """
        self._window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}
        self._key_locks: dict[str, Lock] = {}
        self._registry_lock = Lock()
        self._last_prune: float | None = None

    async def _lock_for(self, key: str) -> Lock:
        async with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = Lock()
                self._key_locks[key] = lock
            return lock

    async def hit(self, key: str, limit: int, window_s: int | None = None) -> RateLimitResult:
        """Record a request and check rate limit.

        Args:
            key: Unique identifier for the rate limit bucket.
            limit: Maximum requests allowed in the window.
            window_s: Window duration in seconds. Defaults to constructor value.

        Returns:
            RateLimitResult with allowed/remaining/reset info.
        """
        ws = window_s or self._window_seconds
        lock = await self._lock_for(key)

        async with lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None or now - bucket.window_start >= ws:
                bucket = RateLimitBucket(count=0, window_start=now)
                self._buckets[key] = bucket

            reset_in_s = max(0.0, bucket.window_start + ws - now)

            if bucket.count >= limit:
                return RateLimitResult(allowed=False, remaining=0, reset_in_s=reset_in_s)

            bucket.count += 1
            remaining = limit - bucket.count

        if len(self._buckets) > self.PRUNE_THRESHOLD:
            await self._prune(ws)

        return RateLimitResult(allowed=True, remaining=remaining, reset_in_s=reset_in_s)

    async def _prune(self, window_s: int) -> None:
        """Drop buckets whose window has elapsed, at most once per window."""
        async with self._registry_lock:
            now = self._clock()
            if self._last_prune is not None and now - self._last_prune < window_s:
                return
            self._last_prune = now
            expired = []
            for key, bucket in self._buckets.items():
                lock = self._key_locks.get(key)
                if now - bucket.window_start >= window_s and not (lock and lock.locked()):
                    expired.append(key)
            for key in expired:
                del self._buckets[key]
                self._key_locks.pop(key, None)

    async def reset(self, key: str) -> None:
        """Forget the bucket for ``key``."""
        async with self._registry_lock:
            self._buckets.pop(key, None)
            lock = self._key_locks.get(key)
            # A held lock stays registered so waiters and newcomers share it
            if lock is not None and not lock.locked():
                del self._key_locks[key]

    async def aclose(self) -> None:
        async with self._registry_lock:
            self._buckets.clear()
            self._key_locks.clear()
            self._last_prune = None

"""
Per-repository token bucket rate limiting.

Each repository gets its own bucket holding up to `burst` tokens, refilled
at `rps` tokens per second. Buckets are created lazily and live for the
lifetime of the process.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Dict, Optional

from app.core.exceptions import RateLimitedError
from app.core.metrics import rate_limit_buckets, rate_limit_rejections_total

logger = logging.getLogger(__name__)


class TokenBucket:
    """A single token bucket. Safe to share between threads and tasks."""

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic):
        self.rate = float(rate)
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._updated_at = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated_at)
        if self.rate > 0:
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated_at = now

    def allow(self) -> bool:
        """Take one token if available, without waiting."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def reserve(self) -> Optional[float]:
        """
        Take one token, possibly on credit.

        Returns the number of seconds the caller must wait before acting, or
        None if the bucket can never supply a token.
        """
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1:
                self._tokens -= 1
                return 0.0
            if self.rate <= 0 or self.burst < 1:
                return None
            self._tokens -= 1
            return -self._tokens / self.rate

    def cancel(self) -> None:
        """Give back a token taken by reserve()."""
        with self._lock:
            self._tokens = min(float(self.burst), self._tokens + 1)

    @property
    def tokens(self) -> float:
        with self._lock:
            self._refill(self._clock())
            return self._tokens


class RateLimiter:
    """
    Keyed collection of token buckets.

    Lookups of an existing bucket take no lock. Creation re-checks under the
    lock so concurrent first requests for one key share a single bucket.
    """

    def __init__(self, rps: float, burst: int, clock: Callable[[], float] = time.monotonic):
        self.rps = rps
        self.burst = burst
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def _get_bucket(self, key: str) -> TokenBucket:
        bucket = self._buckets.get(key)
        if bucket is not None:
            return bucket

        with self._lock:
            # Double-check after acquiring lock
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(self.rps, self.burst, clock=self._clock)
                self._buckets[key] = bucket
                rate_limit_buckets.set(len(self._buckets))
            return bucket

    def allow(self, key: str) -> bool:
        """Consume one token for `key`, returning False if none is available."""
        allowed = self._get_bucket(key).allow()
        if not allowed:
            rate_limit_rejections_total.inc()
            logger.debug(f"Rate limit exceeded for {key}")
        return allowed

    async def wait(self, key: str) -> None:
        """
        Wait until a token for `key` is available and consume it.

        Raises:
            RateLimitedError: The bucket can never supply a token.
        """
        bucket = self._get_bucket(key)
        delay = bucket.reserve()
        if delay is None:
            rate_limit_rejections_total.inc()
            raise RateLimitedError(key)
        if delay <= 0:
            return

        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            bucket.cancel()
            raise

    def reset(self) -> None:
        """Drop every bucket."""
        with self._lock:
            self._buckets = {}
            rate_limit_buckets.set(0)

    def count(self) -> int:
        """Number of keys currently tracked."""
        with self._lock:
            return len(self._buckets)

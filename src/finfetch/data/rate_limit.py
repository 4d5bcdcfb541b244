"""
Per-source token bucket rate limiting.

A RateLimiterRegistry holds one TokenBucket per data source. Buckets are
created lazily the first time a source is used and live as long as the
registry. Every fetch unit of a source shares that source's bucket, so the
outbound call rate is bounded per provider rather than per unit.

Token state is guarded by a threading.Lock and only held for arithmetic,
never across an await, so a registry can be reused by successive event loops
(for example one asyncio.run() per CLI invocation in the same process).
"""

from __future__ import annotations

import asyncio
import math
import threading
import time
from dataclasses import dataclass
from typing import Mapping

from finfetch.exceptions import FetchError
from finfetch.logging import get_logger
from finfetch.types import SourceName

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimit:
    """Refill rate (tokens per second) and bucket size."""

    rate: float
    burst: int = 1

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be > 0")
        if self.burst < 1:
            raise ValueError("burst must be >= 1")

    @property
    def unlimited(self) -> bool:
        return math.isinf(self.rate)


# Conservative production defaults. Alpha Vantage's free tier allows 5 calls
# per minute, i.e. one every 12 seconds.
DEFAULT_RATE_LIMITS: dict[str, RateLimit] = {
    SourceName.ETHERSCAN.value: RateLimit(rate=4.0),
    SourceName.ALPHAVANTAGE.value: RateLimit(rate=1.0 / 12.0),
    SourceName.RENTCAST.value: RateLimit(rate=10.0),
}

UNLIMITED = RateLimit(rate=math.inf)


class TokenBucket:
    """Token bucket that refills continuously at ``rate`` tokens per second.

    acquire() reserves a token immediately (the balance may go negative) and
    then sleeps until the reservation is due. Waiters are therefore served in
    the order they arrived, and N acquisitions on a fresh bucket take at least
    (N - burst) / rate seconds.
    """

    def __init__(self, rate: float, burst: int = 1) -> None:
        self._limit = RateLimit(rate=rate, burst=burst)
        self._tokens = float(burst)
        self._updated = time.monotonic()
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        return self._limit.rate

    @property
    def burst(self) -> int:
        return self._limit.burst

    def _refill(self, now: float) -> None:
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            self._updated = now

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        if self._limit.unlimited:
            return True
        with self._lock:
            self._refill(time.monotonic())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def _reserve(self) -> float:
        """Take a token and return the seconds until it may be used."""
        with self._lock:
            self._refill(time.monotonic())
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    def _release(self) -> None:
        """Hand back a reservation that will not be used."""
        with self._lock:
            self._refill(time.monotonic())
            self._tokens = min(float(self.burst), self._tokens + 1.0)

    async def acquire(self, deadline: float | None = None) -> None:
        """Wait until a token is available.

        Args:
            deadline: Event loop time by which the token must be usable.

        Raises:
            FetchError: Timeout if the token cannot be granted before the
                deadline. The reservation is returned to the bucket.
        """
        if self._limit.unlimited:
            return

        delay = self._reserve()
        if delay <= 0:
            return

        loop = asyncio.get_running_loop()
        if deadline is not None and loop.time() + delay > deadline:
            self._release()
            raise FetchError.timeout(
                TimeoutError(f"rate limit wait of {delay:.2f}s exceeds deadline")
            )

        try:
            await asyncio.sleep(delay)
        except BaseException:
            self._release()
            raise


class RateLimiterRegistry:
    """Lazily-created token buckets keyed by source name.

    Sources with no configured limit are unlimited, so a new provider works
    without being registered first.
    """

    def __init__(self, limits: Mapping[str, RateLimit] | None = None) -> None:
        self._limits: dict[str, RateLimit] = dict(
            DEFAULT_RATE_LIMITS if limits is None else limits
        )
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    @classmethod
    def unlimited(cls) -> RateLimiterRegistry:
        """Registry that never throttles any source (tests, benchmarks)."""
        return cls({name: UNLIMITED for name in DEFAULT_RATE_LIMITS})

    def limit_for(self, source: str) -> RateLimit | None:
        return self._limits.get(source)

    def _bucket(self, source: str) -> TokenBucket | None:
        limit = self._limits.get(source)
        if limit is None or limit.unlimited:
            return None

        with self._lock:
            bucket = self._buckets.get(source)
            if bucket is None:
                bucket = TokenBucket(limit.rate, limit.burst)
                self._buckets[source] = bucket
                logger.debug(
                    "Created rate limiter",
                    source=source,
                    rate=limit.rate,
                    burst=limit.burst,
                )
            return bucket

    async def wait(self, source: str, deadline: float | None = None) -> None:
        """Block until ``source`` may make another call.

        Raises:
            FetchError: Timeout if the deadline passes first.
        """
        bucket = self._bucket(source)
        if bucket is None:
            return
        await bucket.acquire(deadline)

    def try_acquire(self, source: str) -> bool:
        """Non-blocking probe; consumes a token when it returns True."""
        bucket = self._bucket(source)
        if bucket is None:
            return True
        return bucket.try_acquire()

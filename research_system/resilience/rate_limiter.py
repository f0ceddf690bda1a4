"""Token bucket rate limiter for provider request throttling."""

import asyncio
import threading
import time
from typing import Callable, Dict, Optional

from loguru import logger

from research_system.errors import APIError, ErrorCodes

# Sentinel distinguishing "use the configured timeout" from an explicit None
_DEFAULT = object()


class TokenBucket:
    """
    Token bucket algorithm implementation for rate limiting.

    Tokens refill continuously at a fixed rate. Requests consume tokens.
    If insufficient tokens are available, the request must wait or be rejected.

    Attributes:
        capacity: Maximum number of tokens the bucket can hold
        refill_rate: Tokens added per second
        tokens: Current number of tokens available
        last_refill: Timestamp of last token refill
        lock: Thread lock making refill-and-consume atomic across callers
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize token bucket with capacity and refill rate.

        Args:
            capacity: Maximum tokens (burst size)
            refill_rate: Tokens per second
            clock: Monotonic time source
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")

        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock
        self.tokens = float(capacity)
        self.last_refill = clock()
        self.lock = threading.Lock()

    def _refill(self) -> None:
        """Add tokens for the time elapsed since the last refill. Caller holds the lock."""
        now = self._clock()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def try_acquire(self, tokens: int = 1) -> bool:
        """
        Attempt to acquire tokens from the bucket without waiting.

        Returns:
            True if tokens were acquired, False if insufficient tokens available
        """
        with self.lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    def time_until_available(self, tokens: int = 1) -> float:
        """Seconds until `tokens` could be acquired, 0.0 if available now."""
        with self.lock:
            self._refill()
            deficit = tokens - self.tokens
            if deficit <= 0:
                return 0.0
            return deficit / self.refill_rate

    @property
    def available(self) -> float:
        with self.lock:
            self._refill()
            return self.tokens


class RateLimiter:
    """
    Async gate in front of provider calls.

    Either one bucket shared by every endpoint (the default) or one bucket per
    endpoint. When the bucket is empty a caller sleeps until refill; if the
    acquire timeout elapses first it fails with a retryable APIError(429).

    Timeout policy (from configuration, overridable per call):
    - None: block until a token is available
    - 0: fail fast when the bucket is empty
    - > 0: wait at most that many seconds
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        acquire_timeout: Optional[float] = None,
        per_endpoint: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], "asyncio.Future"] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            capacity: Bucket size (burst)
            refill_rate: Tokens per second
            acquire_timeout: Default wait bound, see class docstring
            per_endpoint: Keep one bucket per endpoint instead of one shared bucket
            clock: Monotonic time source
            sleep: Async sleep function
        """
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.acquire_timeout = acquire_timeout
        self.per_endpoint = per_endpoint
        self._clock = clock
        self._sleep = sleep
        self._shared = TokenBucket(capacity, refill_rate, clock)
        self._buckets: Dict[str, TokenBucket] = {}
        self._buckets_lock = threading.Lock()
        self.logger = logger.bind(component="RateLimiter")

        self.logger.info(
            f"RateLimiter initialized: capacity={capacity}, "
            f"refill_rate={refill_rate}/s, per_endpoint={per_endpoint}"
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "RateLimiter":
        return cls(
            capacity=settings.rate_limit_capacity,
            refill_rate=settings.rate_limit_refill_rate,
            acquire_timeout=settings.rate_limit_acquire_timeout,
            per_endpoint=settings.rate_limit_per_endpoint,
            **kwargs,
        )

    def bucket_for(self, endpoint: str) -> TokenBucket:
        if not self.per_endpoint:
            return self._shared
        with self._buckets_lock:
            bucket = self._buckets.get(endpoint)
            if bucket is None:
                bucket = TokenBucket(self.capacity, self.refill_rate, self._clock)
                self._buckets[endpoint] = bucket
            return bucket

    async def acquire(self, endpoint: str, timeout=_DEFAULT) -> None:
        """
        Take one token for `endpoint`, waiting for refill as the policy allows.

        Args:
            endpoint: Endpoint identity (selects the bucket in per-endpoint mode)
            timeout: Overrides acquire_timeout for this call

        Raises:
            APIError: Retryable 429 when the timeout elapses before a token frees up
        """
        if timeout is _DEFAULT:
            timeout = self.acquire_timeout

        bucket = self.bucket_for(endpoint)
        started = self._clock()

        while not bucket.try_acquire():
            wait = bucket.time_until_available()
            if timeout is not None:
                remaining = timeout - (self._clock() - started)
                if remaining <= 0 or wait > remaining:
                    self.logger.warning(f"Rate limit reached for {endpoint}, request rejected")
                    raise APIError(
                        f"Rate limit token not available within {timeout}s",
                        status_code=429,
                        retryable=True,
                        endpoint=endpoint,
                        code=ErrorCodes.API_RATE_LIMIT,
                    )
            self.logger.debug(f"Rate limited on {endpoint}, waiting {wait:.3f}s")
            await self._sleep(max(wait, 0.001))

"""Resilient request executor fronting the research provider.

Per execute() call:
1. Fingerprint the request and consult the cache. Fresh hit: return, no
   network. Stale hit: return the stale value and refresh in the background.
2. Per attempt: circuit check, then a rate-limiter token, then the call with
   a timeout bounded by the remaining deadline. A failed attempt that held the
   half-open trial slot reopens the circuit at once and ends the retry loop.
3. Success: close a half-open circuit, validate the body, write the cache,
   return. A body the validate hook rejects is never cached.
4. Failure: retry retryable statuses with exponential backoff (tenacity);
   on terminal failure count one circuit failure and raise APIError.
5. Deadline: once elapsed no further retries; raise a retryable timeout.

Usage:
    executor = ResilientExecutor.from_settings(settings, transport, rate_limiter,
                                               circuits, cache=cache)
    result = await executor.execute("exa.search", request)
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, stop_any

from research_system.data_management.cache_store import CacheStore
from research_system.data_management.fingerprint import request_fingerprint
from research_system.data_management.schemas.cache_schema import CacheState
from research_system.errors import (
    APIError,
    DataProcessingError,
    ErrorCodes,
    ResearchSystemError,
)
from research_system.providers.transport import ProviderRequest, ProviderResponse, Transport
from research_system.resilience.circuit_breaker import CircuitBreakerRegistry
from research_system.resilience.rate_limiter import RateLimiter
from research_system.resilience.retry import RequestState, RequestTracker, RetryPolicy
from research_system.utils.logging import get_structured_logger


@dataclass
class ExecutionResult:
    """Outcome of one execute() call."""

    response: ProviderResponse
    state: RequestState
    attempts: int
    fingerprint: Optional[str] = None
    cache_state: Optional[CacheState] = None
    parsed: Any = None

    @property
    def from_cache(self) -> bool:
        return self.state == RequestState.SERVED_FROM_CACHE


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, APIError) and error.retryable


class ResilientExecutor:
    """
    Cache-aware, rate-limited, circuit-guarded executor with retry/backoff.

    Shared state (cache, rate limiter, circuit registry) is injected so several
    executors can share one process-wide set, or tests can isolate their own.

    Attributes:
        retry_policy: Default RetryPolicy when execute() receives none
        request_timeout: Per-HTTP-request timeout
        request_deadline: Default overall deadline for one execute() call
        cache_ttl / cache_stale_after: Lifetime of written cache entries
    """

    def __init__(
        self,
        transport: Transport,
        rate_limiter: RateLimiter,
        circuits: CircuitBreakerRegistry,
        cache: Optional[CacheStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        request_timeout: float = 30.0,
        request_deadline: float = 60.0,
        cache_ttl: Optional[float] = None,
        cache_stale_after: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Initialize ResilientExecutor.

        Args:
            transport: Object with async send(request, timeout)
            rate_limiter: Shared token-bucket gate
            circuits: Shared per-endpoint circuit breakers
            cache: CacheStore, or None to disable caching
            retry_policy: Default retry policy
            request_timeout: Per-request timeout in seconds
            request_deadline: Default overall deadline in seconds
            cache_ttl: TTL for written entries (store default if None)
            cache_stale_after: Freshness window for written entries
            sleep: Async sleep used for backoff (injectable for tests)
            clock: Monotonic time source for deadlines
            rng: Random source for jitter
        """
        self.transport = transport
        self.rate_limiter = rate_limiter
        self.circuits = circuits
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.request_timeout = request_timeout
        self.request_deadline = request_deadline
        self.cache_ttl = cache_ttl
        self.cache_stale_after = cache_stale_after
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self._refresh_tasks: set[asyncio.Task] = set()
        self._refreshing: set[str] = set()
        self._logger = get_structured_logger("ResilientExecutor")

    @classmethod
    def from_settings(
        cls,
        settings,
        transport: Transport,
        rate_limiter: RateLimiter,
        circuits: CircuitBreakerRegistry,
        cache: Optional[CacheStore] = None,
        **kwargs: Any,
    ) -> "ResilientExecutor":
        return cls(
            transport=transport,
            rate_limiter=rate_limiter,
            circuits=circuits,
            cache=cache if settings.cache_enabled else None,
            retry_policy=RetryPolicy.from_settings(settings),
            request_timeout=settings.request_timeout,
            request_deadline=settings.request_deadline,
            cache_ttl=settings.cache_default_ttl,
            cache_stale_after=settings.cache_stale_after,
            **kwargs,
        )

    async def execute(
        self,
        endpoint: str,
        request: ProviderRequest,
        retry_policy: Optional[RetryPolicy] = None,
        deadline: Optional[float] = None,
        use_cache: bool = True,
        tracker: Optional[RequestTracker] = None,
        validate: Optional[Callable[[ProviderResponse], Any]] = None,
    ) -> ExecutionResult:
        """
        Execute a provider request with caching, rate limiting, circuit
        breaking and retry.

        Args:
            endpoint: Endpoint identity for circuit/rate-limit state
            request: Request descriptor
            retry_policy: Overrides the default policy for this call
            deadline: Overall budget in seconds (default request_deadline)
            use_cache: Skip the cache for this call when False
            tracker: Optional RequestTracker to record state transitions
            validate: Called with each successful response before it is cached;
                      raising rejects the body. Its return value lands on
                      ExecutionResult.parsed

        Returns:
            ExecutionResult with the response and how it was obtained

        Raises:
            APIError: Terminal provider failure, open circuit, or deadline
            DataProcessingError: validate rejected the response body
        """
        tracker = tracker or RequestTracker(label=endpoint)
        policy = retry_policy or self.retry_policy
        budget = self.request_deadline if deadline is None else deadline

        fingerprint: Optional[str] = None
        if use_cache and self.cache is not None:
            fingerprint = request_fingerprint(endpoint, request.method, request.url, request.body)
            lookup = self.cache.get(fingerprint)
            if lookup.hit:
                cached = ProviderResponse.from_cache(lookup.value)
                try:
                    parsed = self._validate(validate, cached, endpoint)
                except DataProcessingError as e:
                    self.cache.delete(fingerprint)
                    self._logger.warning(
                        "cache_entry_rejected",
                        endpoint=endpoint,
                        fingerprint=fingerprint[:16],
                        error=str(e),
                    )
                else:
                    tracker.transition(RequestState.IN_FLIGHT)
                    tracker.transition(RequestState.SERVED_FROM_CACHE)
                    self._logger.debug(
                        "cache_hit",
                        endpoint=endpoint,
                        fingerprint=fingerprint[:16],
                        cache_state=lookup.state.value,
                    )
                    if lookup.state == CacheState.STALE:
                        self._schedule_refresh(endpoint, request, policy, budget, fingerprint, validate)
                    return ExecutionResult(
                        response=cached,
                        state=tracker.state,
                        attempts=0,
                        fingerprint=fingerprint,
                        cache_state=lookup.state,
                        parsed=parsed,
                    )

        response = await self._execute_with_retry(
            endpoint, request, policy, self._clock() + budget, tracker
        )
        parsed = self._validate(validate, response, endpoint)

        if fingerprint is not None:
            self._store(fingerprint, response)

        return ExecutionResult(
            response=response,
            state=tracker.state,
            attempts=tracker.attempts,
            fingerprint=fingerprint,
            cache_state=CacheState.MISS if fingerprint else None,
            parsed=parsed,
        )

    def _validate(
        self,
        validate: Optional[Callable[[ProviderResponse], Any]],
        response: ProviderResponse,
        endpoint: str,
    ) -> Any:
        if validate is None:
            return None
        try:
            return validate(response)
        except ResearchSystemError:
            raise
        except Exception as e:
            raise DataProcessingError.wrap(
                f"Malformed response body from {endpoint}", e, details={"endpoint": endpoint}
            ) from e

    async def _execute_with_retry(
        self,
        endpoint: str,
        request: ProviderRequest,
        policy: RetryPolicy,
        deadline_at: float,
        tracker: RequestTracker,
    ) -> ProviderResponse:
        breaker = self.circuits.get(endpoint)

        def backoff(retry_state) -> float:
            delay = policy.delay_for(retry_state.attempt_number - 1, self._rng)
            return min(delay, max(0.0, deadline_at - self._clock()))

        def before_sleep(retry_state) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            tracker.schedule_retry(delay)
            error = retry_state.outcome.exception() if retry_state.outcome else None
            self._logger.warning(
                "retry_scheduled",
                endpoint=endpoint,
                attempt=retry_state.attempt_number,
                max_attempts=policy.max_attempts,
                delay=round(delay, 3),
                status_code=getattr(error, "status_code", None),
            )

        # A half-open trial call settles the circuit on its first outcome
        trial_failed = False
        retrying = AsyncRetrying(
            stop=stop_any(
                stop_after_attempt(policy.max_attempts),
                lambda retry_state: self._clock() >= deadline_at,
            ),
            wait=backoff,
            retry=retry_if_exception(lambda error: _is_retryable(error) and not trial_failed),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    tracker.start_attempt()
                    holds_slot = breaker.before_call()
                    dispatched = tracker.dispatched
                    try:
                        response = await self._attempt(endpoint, request, policy, deadline_at, tracker)
                    except Exception:
                        if holds_slot and tracker.dispatched > dispatched:
                            breaker.record_failure()
                            trial_failed = True
                        elif holds_slot:
                            breaker.release_trial()
                        raise
                    except asyncio.CancelledError:
                        if holds_slot:
                            breaker.release_trial()
                        raise
        except APIError as e:
            tracker.transition(RequestState.FAILED)
            if e.code == ErrorCodes.API_CIRCUIT_OPEN:
                self._logger.warning("circuit_open_rejected", endpoint=endpoint)
                raise
            if tracker.dispatched and not trial_failed:
                breaker.record_failure()
            if e.retryable and not trial_failed and self._clock() >= deadline_at:
                self._logger.error("deadline_exceeded", endpoint=endpoint, attempts=tracker.attempts)
                raise self._timeout_error(endpoint, tracker.attempts) from e
            self._logger.error(
                "request_failed",
                endpoint=endpoint,
                status_code=e.status_code,
                retryable=e.retryable,
                attempts=tracker.attempts,
                circuit=breaker.state.value,
            )
            raise
        except ResearchSystemError:
            tracker.transition(RequestState.FAILED)
            if tracker.dispatched and not trial_failed:
                breaker.record_failure()
            raise
        except Exception as e:
            tracker.transition(RequestState.FAILED)
            if tracker.dispatched and not trial_failed:
                breaker.record_failure()
            raise DataProcessingError.wrap(
                f"Unexpected failure calling {endpoint}", e, details={"endpoint": endpoint}
            ) from e

        breaker.record_success()
        tracker.transition(RequestState.SUCCEEDED)
        if tracker.attempts > 1:
            self._logger.info("request_succeeded_after_retry", endpoint=endpoint, attempts=tracker.attempts)
        return response

    async def _attempt(
        self,
        endpoint: str,
        request: ProviderRequest,
        policy: RetryPolicy,
        deadline_at: float,
        tracker: RequestTracker,
    ) -> ProviderResponse:
        """One attempt past the circuit gate: rate-limit token, network call, status check."""
        remaining = deadline_at - self._clock()
        limiter_timeout = self.rate_limiter.acquire_timeout
        limiter_timeout = remaining if limiter_timeout is None else min(limiter_timeout, remaining)
        if remaining <= 0:
            raise self._timeout_error(endpoint, tracker.attempts)
        await self.rate_limiter.acquire(endpoint, timeout=max(limiter_timeout, 0.0))
        remaining = deadline_at - self._clock()
        if remaining <= 0:
            raise self._timeout_error(endpoint, tracker.attempts)

        tracker.dispatched += 1
        try:
            response = await asyncio.wait_for(
                self.transport.send(request, timeout=min(self.request_timeout, remaining)),
                timeout=remaining,
            )
        except asyncio.TimeoutError as e:
            raise self._timeout_error(endpoint, tracker.attempts) from e
        except APIError as e:
            if e.endpoint is None:
                e.endpoint = endpoint
                e.details["endpoint"] = endpoint
            raise

        if not response.ok:
            status = response.status
            raise APIError(
                f"Provider returned HTTP {status} for {endpoint}",
                status_code=status,
                retryable=policy.is_retryable(status),
                endpoint=endpoint,
                details={"body": str(response.body)[:200] if response.body else None},
                code=ErrorCodes.API_RATE_LIMIT if status == 429 else ErrorCodes.API_RESPONSE_ERROR,
            )
        return response

    def _store(self, fingerprint: str, response: ProviderResponse) -> None:
        if self.cache is None:
            return
        self.cache.set(
            fingerprint,
            response.to_cache(),
            ttl=self.cache_ttl,
            stale_after=self.cache_stale_after,
        )

    def _schedule_refresh(
        self,
        endpoint: str,
        request: ProviderRequest,
        policy: RetryPolicy,
        budget: float,
        fingerprint: str,
        validate: Optional[Callable[[ProviderResponse], Any]] = None,
    ) -> None:
        """Start one background refresh per key; concurrent stale hits share it."""
        if fingerprint in self._refreshing:
            return
        self._refreshing.add(fingerprint)
        task = asyncio.create_task(self._refresh(endpoint, request, policy, budget, fingerprint, validate))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh(
        self,
        endpoint: str,
        request: ProviderRequest,
        policy: RetryPolicy,
        budget: float,
        fingerprint: str,
        validate: Optional[Callable[[ProviderResponse], Any]] = None,
    ) -> None:
        tracker = RequestTracker(label=f"refresh:{endpoint}")
        try:
            response = await self._execute_with_retry(
                endpoint, request, policy, self._clock() + budget, tracker
            )
            self._validate(validate, response, endpoint)
            self._store(fingerprint, response)
            self._logger.debug("cache_refreshed", endpoint=endpoint, fingerprint=fingerprint[:16])
        except ResearchSystemError as e:
            # The stale value already went out; the entry simply ages further.
            self._logger.warning(
                "cache_refresh_failed",
                endpoint=endpoint,
                fingerprint=fingerprint[:16],
                error=str(e),
            )
        finally:
            self._refreshing.discard(fingerprint)

    async def wait_for_refreshes(self) -> None:
        """Await all in-flight background refreshes."""
        while self._refresh_tasks:
            await asyncio.gather(*list(self._refresh_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding background refreshes."""
        tasks = list(self._refresh_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _timeout_error(self, endpoint: str, attempts: int) -> APIError:
        return APIError(
            f"Deadline exceeded for {endpoint} after {attempts} attempt(s)",
            status_code=408,
            retryable=True,
            endpoint=endpoint,
            details={"attempts": attempts},
            code=ErrorCodes.API_TIMEOUT,
        )

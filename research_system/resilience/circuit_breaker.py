"""Per-endpoint circuit breaker.

State transitions:

CLOSED --(failure_count >= threshold)--> OPEN
OPEN --(cooldown elapsed, next call)--> HALF_OPEN (exactly one trial call admitted)
HALF_OPEN --(trial succeeds)--> CLOSED, failure_count reset
HALF_OPEN --(trial fails)--> OPEN, opened_at = now

While OPEN (or while a HALF_OPEN trial is in flight) calls are rejected with a
non-retryable APIError before any network attempt.
"""

import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from loguru import logger

from research_system.errors import APIError, ErrorCodes


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Failure-isolation state for one endpoint.

    Attributes:
        endpoint: Endpoint identity this breaker guards
        failure_threshold: Consecutive terminal failures that open the circuit
        cooldown: Seconds the circuit stays open before a trial is allowed
        state: Current CircuitState
        failure_count: Consecutive terminal failures
        opened_at: Clock value when the circuit last opened
    """

    def __init__(
        self,
        endpoint: str,
        failure_threshold: int = 5,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.total_calls = 0
        self.rejected_calls = 0
        self._trial_in_flight = False
        self._clock = clock
        self._lock = threading.Lock()
        self.logger = logger.bind(component="CircuitBreaker")

    def before_call(self) -> bool:
        """
        Gate an outbound attempt.

        Returns:
            True when this caller now holds the single half-open trial slot.
            Only the holder may hand it back with release_trial().

        Raises:
            APIError: Non-retryable, when the circuit is open or a half-open
                      trial is already in flight
        """
        with self._lock:
            self.total_calls += 1

            if self.state == CircuitState.CLOSED:
                return False

            if self.state == CircuitState.OPEN:
                elapsed = self._clock() - (self.opened_at or 0.0)
                if elapsed >= self.cooldown:
                    self.state = CircuitState.HALF_OPEN
                    self._trial_in_flight = True
                    self.logger.info(f"Circuit breaker {self.endpoint} transitioning to HALF_OPEN")
                    return True
                self.rejected_calls += 1
                raise self._open_error(self.cooldown - elapsed)

            # HALF_OPEN: only the single trial may pass
            if not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            self.rejected_calls += 1
            raise self._open_error(0.0)

    def record_success(self) -> None:
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.logger.info(f"Circuit breaker {self.endpoint} transitioning to CLOSED")
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self._trial_in_flight = False

            if self.state == CircuitState.HALF_OPEN:
                self._open()
                self.logger.warning(
                    f"Circuit breaker {self.endpoint} transitioning to OPEN after failed trial"
                )
            elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                self._open()
                self.logger.warning(
                    f"Circuit breaker {self.endpoint} transitioning to OPEN after "
                    f"{self.failure_count} failures"
                )

    def release_trial(self) -> None:
        """Hand back a held half-open slot without recording an outcome.

        Call only when before_call() returned True for this caller.
        """
        with self._lock:
            self._trial_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.opened_at = None
            self._trial_in_flight = False
        self.logger.info(f"Circuit breaker {self.endpoint} manually reset to CLOSED")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "endpoint": self.endpoint,
                "state": self.state.value,
                "failure_count": self.failure_count,
                "opened_at": self.opened_at,
                "total_calls": self.total_calls,
                "rejected_calls": self.rejected_calls,
            }

    def _open(self) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = self._clock()

    def _open_error(self, retry_in: float) -> APIError:
        return APIError(
            f"Circuit breaker for {self.endpoint} is OPEN",
            status_code=503,
            retryable=False,
            endpoint=self.endpoint,
            details={"retry_in": round(max(retry_in, 0.0), 3)},
            code=ErrorCodes.API_CIRCUIT_OPEN,
        )


class CircuitBreakerRegistry:
    """Process-wide map of endpoint -> CircuitBreaker."""

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "CircuitBreakerRegistry":
        return cls(
            failure_threshold=settings.circuit_failure_threshold,
            cooldown=settings.circuit_cooldown,
            **kwargs,
        )

    def get(self, endpoint: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(endpoint)
            if breaker is None:
                breaker = CircuitBreaker(
                    endpoint,
                    failure_threshold=self.failure_threshold,
                    cooldown=self.cooldown,
                    clock=self._clock,
                )
                self._breakers[endpoint] = breaker
            return breaker

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.endpoint: b.snapshot() for b in breakers}

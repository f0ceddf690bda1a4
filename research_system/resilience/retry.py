"""Retry policy and the per-request state machine.

A request moves through:

PENDING -> IN_FLIGHT -> SERVED_FROM_CACHE
PENDING -> IN_FLIGHT -> SUCCEEDED
PENDING -> IN_FLIGHT -> RETRYING -> IN_FLIGHT -> ... -> SUCCEEDED | FAILED
PENDING -> IN_FLIGHT -> FAILED

RequestTracker enforces the transition table and records the side effects of
each step (attempt count, backoff delays) so they can be asserted in isolation.
"""

import random
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from research_system.config.settings import DEFAULT_RETRYABLE_STATUS_CODES
from research_system.errors import DataProcessingError, ErrorCodes

JITTER_FRACTION = 0.1


class RetryPolicy(BaseModel):
    """Retry constants for one execute() call.

    Backoff for retry number `attempt` (0-based) is
    min(max_delay, base_delay * 2**attempt), plus up to 10% jitter.
    """

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay: float = Field(default=1.0, ge=0, description="Seconds before the first retry")
    max_delay: float = Field(default=30.0, gt=0, description="Cap on any single delay")
    retryable_status_codes: frozenset[int] = Field(
        default=DEFAULT_RETRYABLE_STATUS_CODES,
        description="HTTP statuses worth retrying",
    )
    jitter: bool = Field(default=True)

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            retryable_status_codes=frozenset(settings.retryable_status_codes),
            jitter=settings.retry_jitter,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def is_retryable(self, status_code: Optional[int]) -> bool:
        """Transport errors (no status) are retryable; otherwise the status decides."""
        if status_code is None:
            return True
        return status_code in self.retryable_status_codes

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Backoff before retry number `attempt` (0-based)."""
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        if self.jitter and delay > 0:
            rng = rng or random
            delay += rng.uniform(-JITTER_FRACTION, JITTER_FRACTION) * delay
        return max(0.0, delay)


class RequestState(str, Enum):
    """Lifecycle of one provider request (also used per verification query)."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SERVED_FROM_CACHE = "served_from_cache"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.PENDING: frozenset({RequestState.IN_FLIGHT, RequestState.FAILED}),
    RequestState.IN_FLIGHT: frozenset({
        RequestState.SERVED_FROM_CACHE,
        RequestState.SUCCEEDED,
        RequestState.RETRYING,
        RequestState.FAILED,
    }),
    RequestState.RETRYING: frozenset({RequestState.IN_FLIGHT, RequestState.FAILED}),
    RequestState.SERVED_FROM_CACHE: frozenset(),
    RequestState.SUCCEEDED: frozenset(),
    RequestState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({
    RequestState.SERVED_FROM_CACHE,
    RequestState.SUCCEEDED,
    RequestState.FAILED,
})


class InvalidTransition(DataProcessingError):
    default_code = ErrorCodes.INVALID_STATE_TRANSITION


class RequestTracker:
    """Records the state history of one request.

    Attributes:
        state: Current RequestState
        history: Every state entered, in order
        attempts: Attempts started
        dispatched: Attempts that reached the transport
        delays: Backoff delays scheduled between attempts
    """

    def __init__(self, label: str = "request"):
        self.label = label
        self.state = RequestState.PENDING
        self.history: list[RequestState] = [RequestState.PENDING]
        self.attempts = 0
        self.dispatched = 0
        self.delays: list[float] = []

    def transition(self, new_state: RequestState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Illegal transition {self.state.value} -> {new_state.value}",
                details={"request": self.label},
            )
        self.state = new_state
        self.history.append(new_state)

    def start_attempt(self) -> None:
        self.transition(RequestState.IN_FLIGHT)
        self.attempts += 1

    def schedule_retry(self, delay: float) -> None:
        self.transition(RequestState.RETRYING)
        self.delays.append(delay)

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)

    @property
    def total_delay(self) -> float:
        return sum(self.delays)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

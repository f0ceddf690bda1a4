"""Application settings using Pydantic BaseSettings for environment variable management."""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class Settings(BaseSettings):
    """
    Global settings for the research verification subsystem.

    Durations are in seconds. Heuristic thresholds (similarity, score weights)
    live here rather than in code so they can be tuned per deployment.

    Attributes:
        exa_api_key: Exa research API key (required at first provider call)
        exa_base_url: Base URL of the research provider
        cache_enabled: Consult and populate the cache for provider calls
        cache_default_ttl: Lifetime of a cached search result
        cache_stale_after: Age after which a cached result is served stale
        cache_persistence_path: JSON file used by CacheStore.save/preload
        cache_max_entries: Entry count at which the cache starts evicting
        retry_max_retries: Retries after the first attempt
        retry_base_delay: Base delay for exponential backoff
        retry_max_delay: Upper bound on a single backoff delay
        retry_jitter: Add up to 10% random jitter to each backoff
        retryable_status_codes: HTTP statuses that are retried
        rate_limit_capacity: Token bucket size
        rate_limit_refill_rate: Tokens added per second
        rate_limit_acquire_timeout: None blocks until refill, 0 fails fast
        rate_limit_per_endpoint: One bucket per endpoint instead of one shared bucket
        circuit_failure_threshold: Terminal failures before the circuit opens
        circuit_cooldown: Seconds an open circuit rejects calls
        request_timeout: Per-HTTP-request timeout
        request_deadline: Overall deadline for one execute() call
        max_concurrent_queries: In-flight query bound per verification call
        max_sources: Upper bound for the ``sources`` parameter
        similarity_threshold: Content-term Jaccard for "same subject"
        min_shared_terms: Shared content terms that also imply "same subject"
        score_source_weight: Weight of each unique source in the score
        score_corroboration_weight: Weight of each corroborating pair
        score_conflict_penalty: Exponential penalty per conflicting pair
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
    """

    exa_api_key: str = Field(default="", description="Exa research API key")
    exa_base_url: str = Field(
        default="https://api.exa.ai",
        description="Base URL for the Exa API"
    )

    cache_enabled: bool = Field(default=True, description="Enable the research cache")
    cache_default_ttl: float = Field(
        default=3600.0,
        gt=0,
        description="Search result TTL (1 hour)"
    )
    cache_stale_after: float = Field(
        default=2880.0,
        ge=0,
        description="Freshness window (80% of TTL)"
    )
    cache_persistence_path: Optional[str] = Field(
        default=None,
        description="Path to JSON file for cache persistence"
    )
    cache_max_entries: int = Field(
        default=1000,
        ge=1,
        description="Maximum cached search results before eviction"
    )

    retry_max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, gt=0)
    retry_jitter: bool = Field(default=True)
    retryable_status_codes: set[int] = Field(
        default_factory=lambda: set(DEFAULT_RETRYABLE_STATUS_CODES)
    )

    rate_limit_capacity: int = Field(default=10, ge=1, description="Token bucket size")
    rate_limit_refill_rate: float = Field(default=1.0, gt=0, description="Tokens per second")
    rate_limit_acquire_timeout: Optional[float] = Field(
        default=None,
        ge=0,
        description="None blocks until a token is available, 0 fails fast"
    )
    rate_limit_per_endpoint: bool = Field(default=False)

    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_cooldown: float = Field(default=30.0, ge=0)

    request_timeout: float = Field(default=30.0, gt=0)
    request_deadline: float = Field(default=60.0, gt=0)

    max_concurrent_queries: int = Field(default=4, ge=1)
    max_sources: int = Field(default=10, ge=1)

    similarity_threshold: float = Field(default=0.3, ge=0, le=1)
    min_shared_terms: int = Field(default=2, ge=1)
    score_source_weight: float = Field(default=0.25, gt=0)
    score_corroboration_weight: float = Field(default=0.5, gt=0)
    score_conflict_penalty: float = Field(default=0.8, gt=0)

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log output format: json or console")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _stale_window_within_ttl(self) -> "Settings":
        if self.cache_stale_after > self.cache_default_ttl:
            self.cache_stale_after = self.cache_default_ttl
        return self


# Import-time instance. Never fails on a missing credential; providers raise
# ConfigurationError at their first call instead.
settings = Settings()

"""Runtime wiring for the research verification subsystem.

ResearchRuntime builds one explicitly owned set of shared components (cache,
rate limiter, circuit breakers, executor, research client, engine) and manages
their lifecycle. Independent runtimes never share state.

Usage:
    async with ResearchRuntime(Settings()) as runtime:
        result = await runtime.verify_research("query", ["check 1", "check 2"])
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

from research_system.config.logging import get_logger
from research_system.config.settings import Settings
from research_system.data_management.cache_store import CacheStore
from research_system.providers.exa_research import ExaResearchClient
from research_system.providers.transport import HttpxTransport, Transport
from research_system.resilience.circuit_breaker import CircuitBreakerRegistry
from research_system.resilience.executor import ResilientExecutor
from research_system.resilience.rate_limiter import RateLimiter
from research_system.verification.fact_extractor import FactExtractor
from research_system.verification.schemas import VerificationResult
from research_system.verification.verification_engine import ResearchVerificationEngine


class ResearchRuntime:
    """
    Owner of the shared resilience and verification components.

    Attributes:
        settings: Settings the components were built from
        cache: CacheStore shared by every request of this runtime
        rate_limiter: Token-bucket gate shared by every request
        circuits: Per-endpoint circuit breakers
        executor: ResilientExecutor in front of the transport
        research_client: ExaResearchClient
        engine: ResearchVerificationEngine
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[Transport] = None,
        fact_extractor: Optional[FactExtractor] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Build the component graph. No I/O happens until start().

        Args:
            settings: Settings (a fresh Settings() when omitted)
            transport: Transport override; HttpxTransport when omitted
            fact_extractor: FactExtractor override
            clock: Monotonic clock for deadlines, buckets and circuits
            wall_clock: Epoch clock for cache entries (they outlive the process)
            sleep: Async sleep for backoff and rate limiting
        """
        self.settings = settings or Settings()
        self.logger = get_logger("ResearchRuntime")

        self._owns_transport = transport is None
        self.transport = transport or HttpxTransport()

        self.cache = CacheStore(
            default_ttl=self.settings.cache_default_ttl,
            default_stale_after=self.settings.cache_stale_after,
            persistence_path=self.settings.cache_persistence_path,
            clock=wall_clock,
            max_entries=self.settings.cache_max_entries,
        )
        self.rate_limiter = RateLimiter.from_settings(self.settings, clock=clock, sleep=sleep)
        self.circuits = CircuitBreakerRegistry.from_settings(self.settings, clock=clock)
        self.executor = ResilientExecutor.from_settings(
            self.settings,
            self.transport,
            self.rate_limiter,
            self.circuits,
            cache=self.cache,
            sleep=sleep,
            clock=clock,
        )
        self.research_client = ExaResearchClient.from_settings(self.settings, self.executor)
        self.engine = ResearchVerificationEngine.from_settings(
            self.settings, self.research_client, fact_extractor=fact_extractor
        )

        self._started = False
        self._closed = False

    async def start(self) -> int:
        """Preload persisted cache entries. Returns the number restored."""
        if self._started:
            return 0
        self._started = True
        restored = self.cache.preload() if self.settings.cache_enabled else 0
        self.logger.info(f"Research runtime started, {restored} cache entries restored")
        return restored

    async def verify_research(
        self,
        query: str,
        verification_queries: Optional[list[str]] = None,
        sources: int = 3,
        min_confidence: float = 0.5,
        max_facts: int = 10,
        category: Optional[str] = None,
    ) -> VerificationResult:
        return await self.engine.verify_research(
            query,
            verification_queries=verification_queries,
            sources=sources,
            min_confidence=min_confidence,
            max_facts=max_facts,
            category=category,
        )

    async def aclose(self) -> None:
        """Cancel background refreshes, persist the cache, close the HTTP client."""
        if self._closed:
            return
        self._closed = True

        await self.executor.aclose()
        try:
            if self.settings.cache_enabled:
                self.cache.close()
        finally:
            if self._owns_transport and isinstance(self.transport, HttpxTransport):
                await self.transport.aclose()

        self.logger.info("Research runtime closed", circuits=self.circuits.snapshot())

    async def __aenter__(self) -> "ResearchRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

"""Research verification engine.

Runs a primary query and its verification queries concurrently, extracts
sourced facts from every result set, compares them across origins and scores
the combined evidence.

Verification flow:
1. Validate the request (ValidationError before any I/O)
2. Search primary + verification queries under a concurrency bound
3. Extract facts per search result, tagged with origin and query
4. Cross-source analysis (CrossSourceAnalyzer)
5. Score (ConfidenceScorer) and deduplicate facts

A failed verification query degrades the result; a failed primary query fails
the call.

Usage:
    engine = ResearchVerificationEngine(research_client)
    result = await engine.verify_research(
        "Acme Corp acquisition of Globex",
        verification_queries=["Globex acquisition announced"],
        sources=3,
    )
"""

import asyncio
from typing import Any, Optional
from urllib.parse import urlparse

from research_system.data_management.fingerprint import normalize_query
from research_system.errors import (
    DataProcessingError,
    ResearchSystemError,
    ValidationError,
)
from research_system.utils.logging import (
    bind_correlation_id,
    clear_correlation_id,
    get_correlation_id,
    get_structured_logger,
)
from research_system.verification.confidence import ConfidenceScorer
from research_system.verification.cross_source import CrossSourceAnalyzer
from research_system.verification.fact_extractor import FactExtractor, HeuristicFactExtractor
from research_system.verification.schemas import (
    MAX_SOURCES,
    ExtractionOptions,
    QueryReport,
    QueryState,
    SourceResult,
    SourcedFact,
    VerificationRequest,
    VerificationResult,
)


def source_origin(result: SourceResult) -> str:
    """Origin key of a search result: url domain without www., else normalized title."""
    if result.url:
        host = urlparse(result.url).hostname or ""
        if host.startswith("www."):
            host = host[4:]
        if host:
            return host.lower()
    title = normalize_query(result.title or "")
    return title or "unknown"


class ResearchVerificationEngine:
    """Cross-checks a research query against independent verification queries.

    The research client only needs an async ``search(query, num_results=...,
    category=..., deadline=...)`` returning an object with ``results``,
    ``state`` and ``from_cache``; ExaResearchClient is the production one.
    """

    def __init__(
        self,
        research_client: Any,
        fact_extractor: Optional[FactExtractor] = None,
        analyzer: Optional[CrossSourceAnalyzer] = None,
        scorer: Optional[ConfidenceScorer] = None,
        max_concurrency: int = 4,
        max_sources: int = MAX_SOURCES,
        deadline: Optional[float] = None,
    ):
        """Initialize ResearchVerificationEngine.

        Args:
            research_client: Search client (ExaResearchClient or a test double)
            fact_extractor: FactExtractor implementation
            analyzer: Cross-source comparison
            scorer: Confidence scorer
            max_concurrency: Queries in flight at once per verification call
            max_sources: Upper bound for the sources parameter
            deadline: Overall deadline per query in seconds (executor default if None)
        """
        self.research_client = research_client
        self.fact_extractor = fact_extractor or HeuristicFactExtractor()
        self.analyzer = analyzer or CrossSourceAnalyzer()
        self.scorer = scorer or ConfidenceScorer()
        self.max_concurrency = max(1, max_concurrency)
        self.max_sources = min(max_sources, MAX_SOURCES)
        self.deadline = deadline
        self._logger = get_structured_logger("ResearchVerificationEngine")

    @classmethod
    def from_settings(
        cls,
        settings,
        research_client: Any,
        fact_extractor: Optional[FactExtractor] = None,
    ) -> "ResearchVerificationEngine":
        return cls(
            research_client,
            fact_extractor=fact_extractor,
            analyzer=CrossSourceAnalyzer.from_settings(settings),
            scorer=ConfidenceScorer.from_settings(settings),
            max_concurrency=settings.max_concurrent_queries,
            max_sources=settings.max_sources,
        )

    async def verify_research(
        self,
        query: str,
        verification_queries: Optional[list[str]] = None,
        sources: int = 3,
        min_confidence: float = 0.5,
        max_facts: int = 10,
        category: Optional[str] = None,
    ) -> VerificationResult:
        """Validate arguments and run verify().

        Raises:
            ValidationError: Empty query, sources out of range, bad thresholds
            APIError: The primary query failed terminally
            ConfigurationError: Provider credential missing
            DataProcessingError: Unexpected internal failure
        """
        request = VerificationRequest.parse({
            "query": query,
            "verification_queries": verification_queries,
            "sources": sources,
            "min_confidence": min_confidence,
            "max_facts": max_facts,
            "category": category,
        })
        return await self.verify(request)

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        """Run a validated verification request."""
        if request.sources > self.max_sources:
            raise ValidationError(
                f"sources must be between 1 and {self.max_sources}",
                details={"field": "sources", "value": request.sources},
            )

        correlation_id = get_correlation_id()
        bind_correlation_id(correlation_id)
        try:
            self._logger.info(
                "verification_started",
                query=request.query[:80],
                verification_queries=len(request.verification_queries),
                sources=request.sources,
            )
            try:
                result = await self._verify(request)
            except ResearchSystemError:
                raise
            except Exception as e:
                self._logger.error("verification_crashed", error=str(e))
                raise DataProcessingError.wrap(
                    "Research verification failed unexpectedly",
                    e,
                    details={"query": request.query[:80]},
                ) from e

            self._logger.info(
                "verification_complete",
                score=round(result.confidence.score, 4),
                source_count=result.confidence.details.source_count,
                conflicts=len(result.confidence.details.conflicting_claims),
                corroborations=result.confidence.details.corroboration_count,
                failed_queries=len(result.confidence.details.failed_queries),
            )
            return result
        finally:
            clear_correlation_id()

    async def _verify(self, request: VerificationRequest) -> VerificationResult:
        reports = [QueryReport(query=request.query, role="primary")]
        reports.extend(
            QueryReport(query=q, role="verification") for q in request.verification_queries
        )

        result_sets = await self._run_queries(reports, request)

        options = ExtractionOptions(
            min_confidence=request.min_confidence,
            max_facts=request.max_facts,
        )
        sourced_facts: list[SourcedFact] = []
        origins: list[str] = []
        source_count = 0

        # zip keeps each result set tied to the query that produced it
        for report, results in zip(reports, result_sets):
            if results is None:
                continue
            source_count += len(results)
            for source in results:
                origin = source_origin(source)
                origins.append(origin)
                sourced_facts.extend(self._extract(source, origin, report, options))

        analysis = self.analyzer.analyze(sourced_facts)
        confidence = self.scorer.build(
            source_count=source_count,
            unique_sources=origins,
            conflicting_claims=analysis.conflicts,
            corroboration_count=analysis.corroboration_count,
            failed_queries=[r.query for r in reports if r.state == QueryState.FAILED],
        )

        return VerificationResult(
            verified_results=self.deduplicate(sourced_facts),
            confidence=confidence,
            queries=reports,
        )

    async def _run_queries(
        self,
        reports: list[QueryReport],
        request: VerificationRequest,
    ) -> list[Optional[list[SourceResult]]]:
        """Search every query concurrently; the result list is aligned with reports."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def search_with_semaphore(report: QueryReport) -> Optional[list[SourceResult]]:
            async with semaphore:
                report.state = QueryState.IN_FLIGHT
                try:
                    outcome = await self.research_client.search(
                        report.query,
                        num_results=request.sources,
                        category=request.category,
                        deadline=self.deadline,
                    )
                except ResearchSystemError as e:
                    report.state = QueryState.FAILED
                    report.error = e.to_dict()
                    if report.role == "primary":
                        self._logger.error(
                            "primary_query_failed",
                            query=report.query[:80],
                            error_code=e.code,
                            error=str(e),
                        )
                        raise
                    self._logger.warning(
                        "verification_query_failed",
                        query=report.query[:80],
                        error_code=e.code,
                        error=str(e),
                    )
                    return None

                report.state = outcome.state
                report.source_count = len(outcome.results)
                report.from_cache = outcome.from_cache
                return outcome.results

        tasks = [asyncio.create_task(search_with_semaphore(r)) for r in reports]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            # Primary failure or caller cancellation: nothing may outlive the call
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _extract(
        self,
        source: SourceResult,
        origin: str,
        report: QueryReport,
        options: ExtractionOptions,
    ) -> list[SourcedFact]:
        text = source.contents or source.title
        if not text:
            return []
        extraction = self.fact_extractor.extract_facts(text, options)
        return [
            SourcedFact(
                **fact.model_dump(),
                source=origin,
                source_title=source.title,
                source_url=source.url,
                query=report.query,
                query_role=report.role,
            )
            for fact in extraction.facts
        ]

    @staticmethod
    def deduplicate(facts: list[SourcedFact]) -> list[SourcedFact]:
        """
        Keep one fact per normalized text.

        The highest confidence wins; ties keep the first seen, and primary
        facts are seen first. Output is ordered by confidence (descending),
        then by first appearance.
        """
        best: dict[str, tuple[int, SourcedFact]] = {}
        for index, fact in enumerate(facts):
            key = normalize_query(fact.fact)
            current = best.get(key)
            if current is None:
                best[key] = (index, fact)
            elif fact.confidence > current[1].confidence:
                best[key] = (current[0], fact)

        ranked = sorted(best.values(), key=lambda item: (-item[1].confidence, item[0]))
        return [fact for _, fact in ranked]

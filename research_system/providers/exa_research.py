"""Exa research API client.

Builds the Exa /search request, runs it through the ResilientExecutor and
parses the results into SourceResult models. The credential is checked at the
first search, not at construction, so a runtime can be assembled without one.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from research_system.errors import ConfigurationError, DataProcessingError, ErrorCodes, ValidationError
from research_system.providers.transport import ProviderRequest
from research_system.resilience.executor import ResilientExecutor
from research_system.resilience.retry import RequestState, RequestTracker
from research_system.utils.logging import get_structured_logger
from research_system.verification.schemas import MAX_SOURCES, SEARCH_CATEGORIES, SourceResult

DEFAULT_BASE_URL = "https://api.exa.ai"
MAX_TIME_RANGE_MONTHS = 36


@dataclass
class SearchOutcome:
    """Parsed search results plus how they were obtained."""

    results: list[SourceResult]
    state: RequestState
    from_cache: bool = False
    attempts: int = 0
    tracker: Optional[RequestTracker] = field(default=None, repr=False)


class ExaResearchClient:
    """
    Client for the Exa search endpoint.

    Attributes:
        executor: ResilientExecutor handling cache, limits, circuit and retry
        base_url: Provider base URL
        endpoint: Endpoint identity for circuit/rate-limit state
    """

    def __init__(
        self,
        executor: ResilientExecutor,
        api_key: str = "",
        base_url: str = DEFAULT_BASE_URL,
        endpoint: str = "exa.search",
    ):
        self.executor = executor
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint
        self._api_key = api_key
        self.logger = get_structured_logger("ExaResearchClient", endpoint=endpoint)

    @classmethod
    def from_settings(cls, settings, executor: ResilientExecutor) -> "ExaResearchClient":
        return cls(executor, api_key=settings.exa_api_key, base_url=settings.exa_base_url)

    def build_request(
        self,
        query: str,
        num_results: int = 5,
        include_contents: bool = True,
        use_web_results: bool = True,
        use_news_results: bool = False,
        time_range_months: Optional[int] = None,
        category: Optional[str] = None,
    ) -> ProviderRequest:
        """Validate search arguments and build the provider request."""
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Search query must not be empty", details={"field": "query"})
        if not 1 <= num_results <= MAX_SOURCES:
            raise ValidationError(
                f"num_results must be between 1 and {MAX_SOURCES}",
                details={"field": "num_results", "value": num_results},
            )
        if time_range_months is not None and not 1 <= time_range_months <= MAX_TIME_RANGE_MONTHS:
            raise ValidationError(
                f"time_range_months must be between 1 and {MAX_TIME_RANGE_MONTHS}",
                details={"field": "time_range_months", "value": time_range_months},
            )
        if category is not None and category not in SEARCH_CATEGORIES:
            raise ValidationError(
                f"Unknown search category: {category}",
                details={"field": "category", "allowed": sorted(SEARCH_CATEGORIES)},
            )

        body: dict[str, Any] = {
            "query": query.strip(),
            "numResults": num_results,
            "useWebResults": use_web_results,
            "useNewsResults": use_news_results,
            "includeContents": include_contents,
        }
        if time_range_months is not None:
            body["timeRange"] = f"{time_range_months}m"
        if category is not None:
            body["category"] = category

        return ProviderRequest(
            method="POST",
            url=f"{self.base_url}/search",
            body=body,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
        )

    async def search(
        self,
        query: str,
        num_results: int = 5,
        include_contents: bool = True,
        use_web_results: bool = True,
        use_news_results: bool = False,
        time_range_months: Optional[int] = None,
        category: Optional[str] = None,
        deadline: Optional[float] = None,
    ) -> SearchOutcome:
        """
        Search Exa and parse the results.

        Raises:
            ConfigurationError: No API key configured
            ValidationError: Invalid search arguments
            APIError: Terminal provider failure (after retries)
            DataProcessingError: Malformed provider payload
        """
        if not self._api_key:
            raise ConfigurationError(
                "EXA_API_KEY is not configured",
                details={"setting": "exa_api_key"},
                code=ErrorCodes.CONFIG_MISSING,
            )

        request = self.build_request(
            query,
            num_results=num_results,
            include_contents=include_contents,
            use_web_results=use_web_results,
            use_news_results=use_news_results,
            time_range_months=time_range_months,
            category=category,
        )

        tracker = RequestTracker(label=f"{self.endpoint}:{query[:40]}")
        result = await self.executor.execute(
            self.endpoint,
            request,
            deadline=deadline,
            tracker=tracker,
            validate=lambda response: self.parse_results(response.body),
        )
        results = result.parsed

        self.logger.info(
            "search_completed",
            query=query[:80],
            result_count=len(results),
            from_cache=result.from_cache,
            attempts=result.attempts,
        )
        return SearchOutcome(
            results=results,
            state=result.state,
            from_cache=result.from_cache,
            attempts=result.attempts,
            tracker=tracker,
        )

    def parse_results(self, payload: Any) -> list[SourceResult]:
        """Parse the ``results`` array of an Exa response body."""
        if not isinstance(payload, dict):
            raise DataProcessingError(
                "Malformed search response: expected a JSON object",
                details={"received": type(payload).__name__, "endpoint": self.endpoint},
            )
        raw_results = payload.get("results") or []
        if not isinstance(raw_results, list):
            raise DataProcessingError(
                "Malformed search response: results is not a list",
                details={"endpoint": self.endpoint},
            )

        parsed = []
        for index, item in enumerate(raw_results):
            if not isinstance(item, dict):
                raise DataProcessingError(
                    "Malformed search result",
                    details={"index": index, "endpoint": self.endpoint},
                )
            try:
                parsed.append(
                    SourceResult(
                        title=item.get("title") or "",
                        url=item.get("url"),
                        contents=self._contents_of(item),
                        published_date=item.get("publishedDate"),
                        score=item.get("score"),
                    )
                )
            except ValueError as e:
                raise DataProcessingError.wrap(
                    "Malformed search result",
                    e,
                    details={"index": index, "endpoint": self.endpoint},
                ) from e
        return parsed

    @staticmethod
    def _contents_of(item: dict[str, Any]) -> str:
        contents = item.get("contents")
        if isinstance(contents, dict):
            contents = contents.get("text")
        if contents is None:
            contents = item.get("text")
        if contents is None:
            return ""
        if not isinstance(contents, str):
            raise ValueError(f"contents must be text, got {type(contents).__name__}")
        return contents

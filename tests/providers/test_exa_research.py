"""Tests for ExaResearchClient request building and result parsing."""

import pytest

from research_system.data_management.cache_store import CacheStore
from research_system.errors import (
    APIError,
    ConfigurationError,
    DataProcessingError,
    ErrorCodes,
    ValidationError,
)
from research_system.providers.exa_research import ExaResearchClient
from research_system.resilience.circuit_breaker import CircuitBreakerRegistry
from research_system.resilience.executor import ResilientExecutor
from research_system.resilience.rate_limiter import RateLimiter
from research_system.resilience.retry import RequestState, RetryPolicy
from conftest import ScriptedTransport, exa_payload, exa_result, ok_response, status_response


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def transport():
    return ScriptedTransport(
        default=ok_response(
            exa_payload(
                exa_result("Acme Corp acquires Globex", "https://www.reuters.com/acme", "Acme Corp acquired Globex."),
                exa_result("Globex deal", "https://news.example.org/globex", "The deal closed in 2023."),
            )
        )
    )


@pytest.fixture
def executor(transport, clock, wall_clock, fake_sleep):
    return ResilientExecutor(
        transport=transport,
        rate_limiter=RateLimiter(capacity=100, refill_rate=100, clock=clock, sleep=fake_sleep),
        circuits=CircuitBreakerRegistry(failure_threshold=3, cooldown=30, clock=clock),
        cache=CacheStore(default_ttl=3600, clock=wall_clock),
        retry_policy=RetryPolicy(max_retries=2, base_delay=0.1, jitter=False),
        sleep=fake_sleep,
        clock=clock,
    )


@pytest.fixture
def client(executor):
    return ExaResearchClient(executor, api_key="test-key", base_url="https://api.exa.test/")


class TestBuildRequest:
    def test_body_shape(self, client):
        request = client.build_request("  acme merger ", num_results=3)

        assert request.method == "POST"
        assert request.url == "https://api.exa.test/search"
        assert request.body == {
            "query": "acme merger",
            "numResults": 3,
            "useWebResults": True,
            "useNewsResults": False,
            "includeContents": True,
        }
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.headers["Content-Type"] == "application/json"

    def test_optional_fields(self, client):
        request = client.build_request("acme", time_range_months=6, category="news")

        assert request.body["timeRange"] == "6m"
        assert request.body["category"] == "news"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"query": "   "},
            {"query": "acme", "num_results": 0},
            {"query": "acme", "num_results": 11},
            {"query": "acme", "time_range_months": 0},
            {"query": "acme", "time_range_months": 37},
            {"query": "acme", "category": "blog"},
        ],
    )
    def test_invalid_arguments(self, client, kwargs):
        with pytest.raises(ValidationError):
            client.build_request(**kwargs)


class TestSearch:
    @pytest.mark.asyncio
    async def test_missing_api_key_raises_before_network(self, executor, transport):
        client = ExaResearchClient(executor, api_key="")

        with pytest.raises(ConfigurationError) as exc_info:
            await client.search("acme")

        assert exc_info.value.code == ErrorCodes.CONFIG_MISSING
        assert transport.calls == 0

    @pytest.mark.asyncio
    async def test_search_parses_results(self, client, transport):
        outcome = await client.search("acme merger", num_results=2)

        assert outcome.state == RequestState.SUCCEEDED
        assert outcome.from_cache is False
        assert outcome.attempts == 1
        assert [r.title for r in outcome.results] == ["Acme Corp acquires Globex", "Globex deal"]
        assert outcome.results[0].url == "https://www.reuters.com/acme"
        assert outcome.results[0].published_date == "2024-03-01"
        assert transport.requests[0].body["numResults"] == 2

    @pytest.mark.asyncio
    async def test_equivalent_queries_hit_cache(self, client, transport):
        await client.search("Acme Merger")
        outcome = await client.search("  acme   MERGER ")

        assert transport.calls == 1
        assert outcome.from_cache is True
        assert outcome.state == RequestState.SERVED_FROM_CACHE
        assert len(outcome.results) == 2

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, executor):
        executor.transport = ScriptedTransport(default=status_response(401))
        client = ExaResearchClient(executor, api_key="bad-key")

        with pytest.raises(APIError) as exc_info:
            await client.search("acme")

        assert exc_info.value.status_code == 401
        assert exc_info.value.retryable is False
        assert executor.transport.calls == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_raises(self, executor):
        executor.transport = ScriptedTransport(default=ok_response(["not", "an", "object"]))
        client = ExaResearchClient(executor, api_key="test-key")

        with pytest.raises(DataProcessingError):
            await client.search("acme")

    @pytest.mark.asyncio
    async def test_malformed_payload_not_cached(self, executor):
        executor.transport = ScriptedTransport(
            [ok_response({"results": "garbage"})],
            default=ok_response(
                exa_payload(exa_result("Globex deal", "https://news.example.org/globex", "The deal closed."))
            ),
        )
        client = ExaResearchClient(executor, api_key="test-key")

        with pytest.raises(DataProcessingError):
            await client.search("acme")
        outcome = await client.search("acme")
        cached = await client.search("acme")

        assert outcome.from_cache is False
        assert [r.title for r in outcome.results] == ["Globex deal"]
        assert cached.from_cache is True
        assert executor.transport.calls == 2


class TestParseResults:
    def test_contents_variants(self, client):
        results = client.parse_results(
            {
                "results": [
                    {"title": "A", "contents": "plain"},
                    {"title": "B", "contents": {"text": "nested"}},
                    {"title": "C", "text": "fallback"},
                    {"title": "D"},
                ]
            }
        )

        assert [r.contents for r in results] == ["plain", "nested", "fallback", ""]

    def test_missing_results_is_empty(self, client):
        assert client.parse_results({}) == []

    @pytest.mark.parametrize(
        "payload",
        [
            "text body",
            {"results": "nope"},
            {"results": ["not a dict"]},
            {"results": [{"title": "A", "contents": 42}]},
        ],
    )
    def test_malformed(self, client, payload):
        with pytest.raises(DataProcessingError):
            client.parse_results(payload)

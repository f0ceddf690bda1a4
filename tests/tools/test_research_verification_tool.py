"""Tests for the research_verification tool boundary."""

import pytest

from research_system.errors import APIError, ErrorCodes, ValidationError
from research_system.providers.exa_research import SearchOutcome
from research_system.resilience.retry import RequestState
from research_system.tools.research_verification import TOOL_NAME, TOOL_SCHEMA, verify_research_tool
from research_system.verification.schemas import SourceResult
from research_system.verification.verification_engine import ResearchVerificationEngine


class StubResearchClient:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.queries: list[str] = []

    async def search(self, query, num_results=5, category=None, deadline=None):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return SearchOutcome(results=self.results[:num_results], state=RequestState.SUCCEEDED, from_cache=True)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def client():
    return StubResearchClient(
        results=[
            SourceResult(
                title="Acme Corp acquires Globex",
                url="https://www.reuters.com/acme",
                contents="Acme Corp acquired Globex in 2023 for five billion dollars.",
            )
        ]
    )


@pytest.fixture
def engine(client):
    return ResearchVerificationEngine(client)


class TestToolSchema:
    def test_schema_shape(self):
        assert TOOL_SCHEMA["name"] == TOOL_NAME == "research_verification"
        properties = TOOL_SCHEMA["inputSchema"]["properties"]
        assert set(properties) == {
            "query", "verificationQueries", "sources", "minConfidence", "maxFacts", "category",
        }
        assert TOOL_SCHEMA["inputSchema"]["required"] == ["query"]
        assert properties["sources"]["maximum"] == 10


class TestVerifyResearchTool:
    @pytest.mark.asyncio
    async def test_camel_case_round_trip(self, engine, client):
        output = await verify_research_tool(
            engine,
            {"query": "acme globex", "verificationQueries": ["globex deal"], "sources": 1, "minConfidence": 0.6},
        )

        assert sorted(client.queries) == ["acme globex", "globex deal"]
        assert output["verifiedResults"]
        assert all(f["confidence"] >= 0.6 for f in output["verifiedResults"])
        assert output["confidence"]["details"]["uniqueSources"] == ["reuters.com"]
        assert output["confidence"]["details"]["sourceCount"] == 2
        assert [q["role"] for q in output["queries"]] == ["primary", "verification"]
        assert output["queries"][0]["fromCache"] is True
        assert output["queries"][0]["state"] == "succeeded"

    @pytest.mark.asyncio
    async def test_null_arguments_use_defaults(self, engine):
        output = await verify_research_tool(engine, {"query": "acme", "category": None, "sources": None})

        assert output["confidence"]["details"]["sourceCount"] == 1

    @pytest.mark.asyncio
    async def test_validation_error_tagged(self, engine, client):
        with pytest.raises(ValidationError) as exc_info:
            await verify_research_tool(engine, {"query": "   "})

        assert exc_info.value.tool_name == TOOL_NAME
        assert str(exc_info.value).startswith(f"[{TOOL_NAME}]")
        assert client.queries == []

    @pytest.mark.asyncio
    async def test_missing_query(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            await verify_research_tool(engine, {"verificationQueries": ["x"]})

        assert exc_info.value.code == ErrorCodes.MISSING_REQUIRED_PARAM

    @pytest.mark.asyncio
    async def test_provider_error_tagged(self):
        failing = StubResearchClient(error=APIError("HTTP 503", status_code=503, retryable=True))
        engine = ResearchVerificationEngine(failing)

        with pytest.raises(APIError) as exc_info:
            await verify_research_tool(engine, {"query": "acme"})

        assert exc_info.value.tool_name == TOOL_NAME
        assert exc_info.value.to_dict()["code"] == ErrorCodes.API_UNAVAILABLE

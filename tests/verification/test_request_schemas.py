"""Tests for verification request/result models."""

import pytest

from research_system.errors import ErrorCodes, ValidationError
from research_system.verification.schemas import (
    ConfidenceScore,
    QueryReport,
    SourcedFact,
    FactType,
    VerificationRequest,
    VerificationResult,
)


class TestVerificationRequest:
    def test_defaults(self):
        request = VerificationRequest.parse({"query": "acme"})

        assert request.verification_queries == []
        assert request.sources == 3
        assert request.min_confidence == 0.5
        assert request.max_facts == 10
        assert request.category is None

    def test_camel_case_aliases(self):
        request = VerificationRequest.parse({
            "query": "  acme  ",
            "verificationQueries": [" globex deal "],
            "minConfidence": 0.2,
            "maxFacts": 5,
        })

        assert request.query == "acme"
        assert request.verification_queries == ["globex deal"]
        assert request.min_confidence == 0.2
        assert request.max_facts == 5

    def test_null_verification_queries(self):
        assert VerificationRequest.parse({"query": "acme", "verificationQueries": None}).verification_queries == []

    def test_not_an_object(self):
        with pytest.raises(ValidationError) as exc_info:
            VerificationRequest.parse(["acme"])

        assert exc_info.value.code == ErrorCodes.INVALID_INPUT

    def test_missing_query(self):
        with pytest.raises(ValidationError) as exc_info:
            VerificationRequest.parse({"sources": 3})

        assert exc_info.value.code == ErrorCodes.MISSING_REQUIRED_PARAM

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            VerificationRequest.parse({"query": "acme", "depth": "deep"})

        assert exc_info.value.details["errors"][0]["field"] == "depth"

    @pytest.mark.parametrize("sources", [0, 11, -1])
    def test_sources_range(self, sources):
        with pytest.raises(ValidationError) as exc_info:
            VerificationRequest.parse({"query": "acme", "sources": sources})

        assert exc_info.value.code == ErrorCodes.VALIDATION_FAILED
        assert exc_info.value.details["errors"][0]["field"] == "sources"

    def test_max_facts_range(self):
        with pytest.raises(ValidationError):
            VerificationRequest.parse({"query": "acme", "maxFacts": 21})

    def test_known_category(self):
        assert VerificationRequest.parse({"query": "acme", "category": "research paper"}).category == "research paper"


class TestVerificationResult:
    def test_dumps_camel_case(self):
        result = VerificationResult(
            verified_results=[
                SourcedFact(
                    fact="Globex",
                    type=FactType.NAMED_ENTITY,
                    confidence=0.7,
                    source="reuters.com",
                    source_url="https://reuters.com/a",
                    query="acme",
                    query_role="primary",
                )
            ],
            confidence=ConfidenceScore(score=0.2),
            queries=[QueryReport(query="acme", role="primary")],
        )

        dumped = result.model_dump(by_alias=True, mode="json")

        fact = dumped["verifiedResults"][0]
        assert fact["sourceUrl"] == "https://reuters.com/a"
        assert fact["queryRole"] == "primary"
        assert fact["type"] == "named_entity"
        assert dumped["confidence"]["details"]["uniqueSources"] == []
        assert dumped["confidence"]["details"]["conflictingClaims"] == []
        assert dumped["queries"][0]["state"] == "pending"
        assert dumped["queries"][0]["fromCache"] is False

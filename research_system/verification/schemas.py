"""Verification data models.

Inbound:  VerificationRequest (validated before any I/O)
Internal: Fact, FactExtraction, SourceResult, SourcedFact
Outbound: VerificationResult -> verified_results, confidence, queries

All models accept snake_case and camelCase field names and dump camelCase with
``model_dump(by_alias=True)`` for the tool boundary.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from research_system.errors import ErrorCodes, ValidationError
from research_system.resilience.retry import RequestState

MAX_SOURCES = 10
MAX_FACTS = 20

# Result categories accepted by the research provider.
SEARCH_CATEGORIES = frozenset({
    "company",
    "research paper",
    "news",
    "pdf",
    "github",
    "tweet",
    "personal site",
    "linkedin profile",
    "financial report",
})

# Per-query lifecycle shares the request state machine.
QueryState = RequestState


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FactType(str, Enum):
    NAMED_ENTITY = "named_entity"
    RELATIONSHIP = "relationship"
    STATEMENT = "statement"
    SENTIMENT = "sentiment"


class SentimentInfo(_CamelModel):
    score: float
    comparative: float
    positive: list[str] = Field(default_factory=list)
    negative: list[str] = Field(default_factory=list)


class Fact(_CamelModel):
    """One extracted fact.

    Attributes:
        fact: Fact text (entity name, sentence, relationship, sentiment summary)
        type: Kind of fact
        confidence: Extraction confidence in [0, 1]
        entities: Named entities mentioned by the fact
        sentiment: Lexicon sentiment, only for sentiment facts
    """

    fact: str
    type: FactType
    confidence: float = Field(..., ge=0.0, le=1.0)
    entities: list[str] = Field(default_factory=list)
    sentiment: Optional[SentimentInfo] = None


class FactExtraction(_CamelModel):
    text: str
    facts: list[Fact] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ExtractionOptions(_CamelModel):
    """Knobs passed to a FactExtractor."""

    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    max_facts: int = Field(default=10, ge=1, le=MAX_FACTS)
    extract_entities: bool = True
    extract_statements: bool = True
    extract_relationships: bool = True
    analyze_sentiment: bool = True


class SourceResult(_CamelModel):
    """One search result returned by the research provider."""

    title: str = ""
    url: Optional[str] = None
    contents: str = ""
    published_date: Optional[str] = None
    score: Optional[float] = None


class SourcedFact(Fact):
    """A Fact with provenance back to its source and originating query.

    Attributes:
        source: Origin key (url domain, else normalized title)
        source_title: Title of the search result
        source_url: URL of the search result, when known
        query: Query that produced the search result
        query_role: primary or verification
    """

    source: str
    source_title: str = ""
    source_url: Optional[str] = None
    query: str
    query_role: Literal["primary", "verification"]


class ConflictingClaim(_CamelModel):
    """Two facts from different origins about the same subject with opposite polarity."""

    subject_terms: list[str] = Field(default_factory=list)
    fact_a: SourcedFact
    fact_b: SourcedFact
    reason: str
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)


class CorroboratingClaim(_CamelModel):
    subject_terms: list[str] = Field(default_factory=list)
    fact_a: SourcedFact
    fact_b: SourcedFact
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)


class ConfidenceDetails(_CamelModel):
    source_count: int = Field(default=0, ge=0)
    unique_sources: list[str] = Field(default_factory=list)
    conflicting_claims: list[ConflictingClaim] = Field(default_factory=list)
    corroboration_count: int = Field(default=0, ge=0)
    source_consistency: float = Field(default=0.0, ge=0.0, le=1.0)
    failed_queries: list[str] = Field(default_factory=list)


class ConfidenceScore(_CamelModel):
    score: float = Field(..., ge=0.0, le=1.0)
    details: ConfidenceDetails = Field(default_factory=ConfidenceDetails)


class QueryReport(_CamelModel):
    """Outcome of one primary or verification query."""

    query: str
    role: Literal["primary", "verification"]
    state: QueryState = QueryState.PENDING
    source_count: int = Field(default=0, ge=0)
    from_cache: bool = False
    error: Optional[dict[str, Any]] = None


class VerificationResult(_CamelModel):
    verified_results: list[SourcedFact] = Field(default_factory=list)
    confidence: ConfidenceScore
    queries: list[QueryReport] = Field(default_factory=list)


class VerificationRequest(_CamelModel):
    """Validated input of a verify_research call.

    Attributes:
        query: Primary research query (non-empty after trimming)
        verification_queries: Additional queries used to cross-check
        sources: Search results requested per query, 1..MAX_SOURCES
        min_confidence: Per-fact extraction threshold
        max_facts: Facts kept per extracted source, 1..MAX_FACTS
        category: Optional provider result category filter
    """

    query: str
    verification_queries: list[str] = Field(default_factory=list)
    sources: int = Field(default=3, ge=1, le=MAX_SOURCES)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    max_facts: int = Field(default=10, ge=1, le=MAX_FACTS)
    category: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        return v

    @field_validator("category")
    @classmethod
    def _known_category(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SEARCH_CATEGORIES:
            raise ValueError(f"unknown category {v!r}")
        return v

    @field_validator("verification_queries", mode="before")
    @classmethod
    def _coerce_queries(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("verification_queries")
    @classmethod
    def _queries_not_blank(cls, v: list[str]) -> list[str]:
        cleaned = [q.strip() for q in v]
        if any(not q for q in cleaned):
            raise ValueError("verification queries must not be empty")
        return cleaned

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "VerificationRequest":
        """Validate raw input, raising our ValidationError instead of pydantic's."""
        if not isinstance(data, dict):
            raise ValidationError(
                "Verification request must be an object",
                details={"received": type(data).__name__},
                code=ErrorCodes.INVALID_INPUT,
            )
        if "query" not in data:
            raise ValidationError(
                "Missing required parameter: query",
                details={"field": "query"},
                code=ErrorCodes.MISSING_REQUIRED_PARAM,
            )
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            raise ValidationError(
                f"Invalid verification request: {errors[0]['field']}: {errors[0]['message']}",
                details={"errors": errors},
                code=ErrorCodes.VALIDATION_FAILED,
            ) from e

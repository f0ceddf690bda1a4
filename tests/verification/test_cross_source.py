"""Tests for CrossSourceAnalyzer corroboration and contradiction detection."""

import pytest

from research_system.verification.cross_source import CrossSourceAnalyzer
from research_system.verification.schemas import (
    ConflictingClaim,
    CorroboratingClaim,
    FactType,
    SentimentInfo,
    SourcedFact,
)


def make_fact(
    text: str,
    source: str,
    fact_type: FactType = FactType.STATEMENT,
    entities: list[str] | None = None,
    sentiment: float | None = None,
) -> SourcedFact:
    return SourcedFact(
        fact=text,
        type=fact_type,
        confidence=0.8,
        entities=entities or [],
        sentiment=SentimentInfo(score=sentiment, comparative=0.0) if sentiment is not None else None,
        source=source,
        query="acme globex",
        query_role="primary",
    )


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def analyzer():
    return CrossSourceAnalyzer(similarity_threshold=0.3, min_shared_terms=2)


class TestPolarity:
    def test_assertion_is_positive(self, analyzer):
        assert analyzer.polarity(make_fact("Acme acquired Globex", "a.com")) == (1, "assertion")

    @pytest.mark.parametrize(
        "text",
        [
            "Acme did not acquire Globex",
            "Acme denied acquiring Globex",
            "Acme didn't acquire Globex",
            "Acme never acquired Globex",
        ],
    )
    def test_negation_is_negative(self, analyzer, text):
        assert analyzer.polarity(make_fact(text, "a.com")) == (-1, "negation")

    def test_sentiment_sign(self, analyzer):
        negative = make_fact("Globex losses", "a.com", FactType.SENTIMENT, sentiment=-3)
        positive = make_fact("Globex growth", "a.com", FactType.SENTIMENT, sentiment=2)

        assert analyzer.polarity(negative) == (-1, "sentiment")
        assert analyzer.polarity(positive) == (1, "sentiment")

    def test_content_terms_drop_stop_and_negation_words(self, analyzer):
        terms = analyzer.content_terms("The deal was not approved by the regulator")

        assert terms == frozenset({"deal", "approved", "regulator"})


class TestCompare:
    def test_same_origin_never_paired(self, analyzer):
        a = make_fact("Acme acquired Globex in 2023", "reuters.com")
        b = make_fact("Acme did not acquire Globex in 2023", "reuters.com")

        assert analyzer.compare(a, b) is None

    def test_same_subject_same_polarity_corroborates(self, analyzer):
        a = make_fact("Acme acquired Globex in 2023", "reuters.com")
        b = make_fact("In 2023 Acme acquired Globex for cash", "bloomberg.com")

        outcome = analyzer.compare(a, b)

        assert isinstance(outcome, CorroboratingClaim)
        assert {"acme", "globex", "2023"} <= set(outcome.subject_terms)

    def test_opposite_polarity_conflicts(self, analyzer):
        a = make_fact("Acme acquired Globex in 2023", "reuters.com")
        b = make_fact("Acme did not acquire Globex in 2023", "bloomberg.com")

        outcome = analyzer.compare(a, b)

        assert isinstance(outcome, ConflictingClaim)
        assert outcome.reason == "negation"
        assert outcome.fact_a is a
        assert outcome.fact_b is b

    def test_unrelated_subjects_ignored(self, analyzer):
        a = make_fact("Acme acquired Globex in 2023", "reuters.com")
        b = make_fact("Rainfall totals exceeded forecasts in Spain", "weather.com")

        assert analyzer.compare(a, b) is None

    def test_shared_entity_makes_same_subject(self, analyzer):
        a = make_fact("Quarterly revenue grew", "a.com", entities=["Globex"])
        b = make_fact("Staff numbers shrank sharply", "b.com", entities=["Globex"])

        assert isinstance(analyzer.compare(a, b), CorroboratingClaim)

    def test_sentiment_conflict_reason(self, analyzer):
        a = make_fact("Globex growth strong", "a.com", FactType.SENTIMENT, sentiment=4)
        b = make_fact("Globex growth weak", "b.com", FactType.SENTIMENT, sentiment=-2)

        outcome = analyzer.compare(a, b)

        assert isinstance(outcome, ConflictingClaim)
        assert outcome.reason == "sentiment"

    def test_identical_entities_corroborate(self, analyzer):
        a = make_fact("Globex", "a.com", FactType.NAMED_ENTITY, entities=["Globex"])
        b = make_fact("globex", "b.com", FactType.NAMED_ENTITY, entities=["globex"])

        outcome = analyzer.compare(a, b)

        assert isinstance(outcome, CorroboratingClaim)
        assert outcome.similarity == 1.0

    def test_entity_never_pairs_with_other_fact_types(self, analyzer):
        a = make_fact("Globex", "a.com", FactType.NAMED_ENTITY, entities=["Globex"])
        b = make_fact("Globex did not report results", "b.com", entities=["Globex"])

        assert analyzer.compare(a, b) is None


class TestAnalyze:
    def test_counts_pairs(self, analyzer):
        facts = [
            make_fact("Acme acquired Globex in 2023", "reuters.com"),
            make_fact("Acme acquired Globex during 2023", "bloomberg.com"),
            make_fact("Acme did not acquire Globex in 2023", "blog.example.org"),
        ]

        analysis = analyzer.analyze(facts)

        assert analysis.corroboration_count == 1
        assert analysis.conflict_count == 2
        assert analysis.consistency == pytest.approx(1 / 3)

    def test_pairs_in_list_order(self, analyzer):
        facts = [
            make_fact("Acme acquired Globex in 2023", "reuters.com"),
            make_fact("Acme did not acquire Globex in 2023", "bloomberg.com"),
        ]

        conflict = analyzer.analyze(facts).conflicts[0]

        assert conflict.fact_a is facts[0]
        assert conflict.fact_b is facts[1]

    def test_entities_of_conflicting_origins_not_counted_as_agreement(self, analyzer):
        entities = ["Acme Corp", "Globex"]
        facts = [
            make_fact("Acme Corp", "reuters.com", FactType.NAMED_ENTITY),
            make_fact("Globex", "reuters.com", FactType.NAMED_ENTITY),
            make_fact("Acme Corp acquired Globex", "reuters.com", FactType.RELATIONSHIP, entities=entities),
            make_fact("Acme Corp", "blog.example.org", FactType.NAMED_ENTITY),
            make_fact("Globex", "blog.example.org", FactType.NAMED_ENTITY),
            make_fact("Acme Corp never acquired Globex in any year", "blog.example.org", entities=entities),
            make_fact("Globex", "bloomberg.com", FactType.NAMED_ENTITY),
        ]

        analysis = analyzer.analyze(facts)

        assert analysis.conflict_count == 1
        assert [(c.fact_a.source, c.fact_b.source) for c in analysis.corroborations] == [
            ("reuters.com", "bloomberg.com"),
            ("blog.example.org", "bloomberg.com"),
        ]

    def test_empty_analysis(self, analyzer):
        analysis = analyzer.analyze([])

        assert analysis.conflicts == []
        assert analysis.corroborations == []
        assert analysis.consistency == 0.0

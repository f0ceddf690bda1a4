"""Tests for ConfidenceScorer."""

import math

import pytest

from research_system.verification.confidence import ConfidenceScorer


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def scorer():
    return ConfidenceScorer()


class TestScore:
    def test_no_sources_scores_zero(self, scorer):
        assert scorer.score(0, 0, 0) == 0.0

    def test_single_source(self, scorer):
        assert scorer.score(1, 0, 0) == pytest.approx(1 - 1 / 1.25)

    @pytest.mark.parametrize("unique_sources", [1, 2, 5])
    @pytest.mark.parametrize("conflicts", [0, 1, 3])
    def test_strictly_increasing_in_corroborations(self, scorer, unique_sources, conflicts):
        scores = [scorer.score(unique_sources, c, conflicts) for c in range(6)]

        assert all(b > a for a, b in zip(scores, scores[1:]))

    @pytest.mark.parametrize("unique_sources", [1, 2, 5])
    @pytest.mark.parametrize("corroborations", [0, 1, 3])
    def test_strictly_decreasing_in_conflicts(self, scorer, unique_sources, corroborations):
        scores = [scorer.score(unique_sources, corroborations, k) for k in range(6)]

        assert all(b < a for a, b in zip(scores, scores[1:]))

    @pytest.mark.parametrize("unique_sources", [1, 2, 3, 8])
    @pytest.mark.parametrize("corroborations", [0, 2])
    def test_contradicting_source_lowers_score(self, scorer, unique_sources, corroborations):
        before = scorer.score(unique_sources, corroborations, 0)
        after = scorer.score(unique_sources + 1, corroborations, 1)

        assert after < before

    def test_bounded(self, scorer):
        assert 0.0 <= scorer.score(10, 100, 0) <= 1.0
        assert 0.0 <= scorer.score(10, 0, 50) <= 1.0

    def test_exact_formula(self):
        scorer = ConfidenceScorer(source_weight=0.5, corroboration_weight=1.0, conflict_penalty=1.0)
        expected = (1 - 1 / (1 + 0.5 * 2 + 1.0 * 1)) * math.exp(-1.0)

        assert scorer.score(2, 1, 1) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "kwargs",
        [{"source_weight": 0}, {"corroboration_weight": -1}, {"conflict_penalty": 0}],
    )
    def test_non_positive_weights_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ConfidenceScorer(**kwargs)


class TestBuild:
    def test_details(self, scorer):
        result = scorer.build(
            source_count=4,
            unique_sources=["reuters.com", "bloomberg.com", "reuters.com"],
            conflicting_claims=[],
            corroboration_count=3,
            failed_queries=["globex lawsuit"],
        )

        assert result.details.source_count == 4
        assert result.details.unique_sources == ["bloomberg.com", "reuters.com"]
        assert result.details.corroboration_count == 3
        assert result.details.source_consistency == 1.0
        assert result.details.failed_queries == ["globex lawsuit"]
        assert result.score == pytest.approx(scorer.score(2, 3, 0))

    def test_consistency(self):
        assert ConfidenceScorer.consistency(0, 0) == 0.0
        assert ConfidenceScorer.consistency(3, 1) == 0.75

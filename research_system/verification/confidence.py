"""Confidence scoring for verified research.

score = (1 - 1 / (1 + support)) * exp(-penalty * K), support = w_s * U + w_c * C

U = unique origins, C = corroborating pairs, K = conflicting pairs.

The score rises strictly with C and falls strictly with K. Adding a
contradicting source adds one origin and one conflict at once; the score still
falls as long as exp(penalty) exceeds the largest ratio a single extra origin
can produce, 2 * (1 + w_s) / (1 + 2 * w_s) going from U = 1 to U = 2 (a conflict
needs two origins). For the defaults that ratio is 1.67 and exp(0.8) is
about 2.23.
"""

import math

from loguru import logger

from research_system.verification.schemas import (
    ConfidenceDetails,
    ConfidenceScore,
    ConflictingClaim,
)


class ConfidenceScorer:
    """Maps source diversity, corroboration and conflict counts to [0, 1]."""

    def __init__(
        self,
        source_weight: float = 0.25,
        corroboration_weight: float = 0.5,
        conflict_penalty: float = 0.8,
    ):
        if source_weight <= 0 or corroboration_weight <= 0 or conflict_penalty <= 0:
            raise ValueError("confidence weights must be positive")
        self.source_weight = source_weight
        self.corroboration_weight = corroboration_weight
        self.conflict_penalty = conflict_penalty
        self._logger = logger.bind(component="ConfidenceScorer")

        worst_ratio = 2 * (1 + source_weight) / (1 + 2 * source_weight)
        if math.exp(conflict_penalty) <= worst_ratio:
            self._logger.warning(
                f"conflict_penalty={conflict_penalty} too small for source_weight={source_weight}: "
                "a contradicting source may raise the score"
            )

    @classmethod
    def from_settings(cls, settings) -> "ConfidenceScorer":
        return cls(
            source_weight=settings.score_source_weight,
            corroboration_weight=settings.score_corroboration_weight,
            conflict_penalty=settings.score_conflict_penalty,
        )

    def score(self, unique_sources: int, corroborations: int, conflicts: int) -> float:
        support = self.source_weight * unique_sources + self.corroboration_weight * corroborations
        base = 1.0 - 1.0 / (1.0 + support)
        value = base * math.exp(-self.conflict_penalty * conflicts)
        return min(1.0, max(0.0, value))

    @staticmethod
    def consistency(corroborations: int, conflicts: int) -> float:
        total = corroborations + conflicts
        return corroborations / total if total else 0.0

    def build(
        self,
        source_count: int,
        unique_sources: list[str],
        conflicting_claims: list[ConflictingClaim],
        corroboration_count: int,
        failed_queries: list[str],
    ) -> ConfidenceScore:
        """Assemble the ConfidenceScore reported with a verification result."""
        conflicts = len(conflicting_claims)
        origins = sorted(set(unique_sources))
        value = self.score(len(origins), corroboration_count, conflicts)
        return ConfidenceScore(
            score=value,
            details=ConfidenceDetails(
                source_count=source_count,
                unique_sources=origins,
                conflicting_claims=conflicting_claims,
                corroboration_count=corroboration_count,
                source_consistency=round(self.consistency(corroboration_count, conflicts), 4),
                failed_queries=failed_queries,
            ),
        )

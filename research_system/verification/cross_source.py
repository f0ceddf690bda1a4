"""Cross-source corroboration and contradiction detection.

Two facts from different origins are about the same subject when their
content terms overlap enough (Jaccard >= similarity_threshold, or at least
min_shared_terms shared terms) or they name a common entity. Same subject with
the same polarity corroborates; opposite polarity conflicts.

Polarity:
- negation words ("not", "denied", "never", "...n't") -> negative
- sentiment facts -> sign of the sentiment score
- otherwise -> positive

Named-entity facts only ever corroborate an identical entity from another
origin; they carry no polarity of their own. When two origins conflict over a
subject, their matching mentions of that subject's entities are not counted
as corroboration.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Set, Union

from loguru import logger

from research_system.verification.schemas import (
    ConflictingClaim,
    CorroboratingClaim,
    FactType,
    SourcedFact,
)

_WORD = re.compile(r"[a-z0-9][a-z0-9'-]*")


@dataclass
class CrossSourceAnalysis:
    """Pairs found across origins, in enumeration order."""

    conflicts: list[ConflictingClaim] = field(default_factory=list)
    corroborations: list[CorroboratingClaim] = field(default_factory=list)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    @property
    def corroboration_count(self) -> int:
        return len(self.corroborations)

    @property
    def consistency(self) -> float:
        total = self.conflict_count + self.corroboration_count
        if total == 0:
            return 0.0
        return self.corroboration_count / total


@dataclass
class _Profile:
    terms: frozenset
    entities: frozenset
    polarity: int
    reason: str


class CrossSourceAnalyzer:
    """
    Pairwise comparison of sourced facts.

    Example:
        >>> analyzer = CrossSourceAnalyzer()
        >>> analysis = analyzer.analyze([fact_from_a, fact_from_b])
        >>> analysis.conflict_count
        1
    """

    NEGATION_WORDS: Set[str] = {
        "not", "no", "never", "denied", "denies", "deny", "rejected",
        "refused", "false", "untrue", "disputed", "contradicted", "none",
        "neither", "nor", "cannot", "without",
    }

    STOP_WORDS: Set[str] = {
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
        "in", "on", "at", "to", "for", "of", "and", "or", "but", "as", "it",
        "its", "has", "have", "had", "that", "this", "these", "those", "with",
        "by", "from", "will", "would", "can", "could", "should", "may",
        "might", "do", "does", "did", "into", "than", "then", "so", "also",
        "about", "after", "before", "over", "under", "their", "they", "he",
        "she", "his", "her", "we", "our", "which", "who", "whom", "what",
    }

    def __init__(self, similarity_threshold: float = 0.3, min_shared_terms: int = 2):
        """
        Initialize analyzer.

        Args:
            similarity_threshold: Content-term Jaccard for "same subject"
            min_shared_terms: Shared content terms that also imply "same subject"
        """
        self.similarity_threshold = similarity_threshold
        self.min_shared_terms = min_shared_terms
        self._logger = logger.bind(component="CrossSourceAnalyzer")

    @classmethod
    def from_settings(cls, settings) -> "CrossSourceAnalyzer":
        return cls(
            similarity_threshold=settings.similarity_threshold,
            min_shared_terms=settings.min_shared_terms,
        )

    def words(self, text: str) -> list[str]:
        return _WORD.findall(text.lower())

    def content_terms(self, text: str) -> frozenset:
        """Lowercase words minus stop words and negation words."""
        return frozenset(
            w for w in self.words(text)
            if w not in self.STOP_WORDS and not self._is_negation(w) and len(w) > 1
        )

    def _is_negation(self, word: str) -> bool:
        return word in self.NEGATION_WORDS or word.endswith("n't")

    def polarity(self, fact: SourcedFact) -> tuple[int, str]:
        """(+1 | -1, reason) for a fact."""
        if fact.type == FactType.SENTIMENT and fact.sentiment is not None:
            return (1 if fact.sentiment.score >= 0 else -1), "sentiment"
        if any(self._is_negation(w) for w in self.words(fact.fact)):
            return -1, "negation"
        return 1, "assertion"

    def _profile(self, fact: SourcedFact) -> _Profile:
        polarity, reason = self.polarity(fact)
        return _Profile(
            terms=self.content_terms(fact.fact),
            entities=frozenset(e.lower() for e in fact.entities),
            polarity=polarity,
            reason=reason,
        )

    def compare(
        self, fact_a: SourcedFact, fact_b: SourcedFact,
        profile_a: Optional[_Profile] = None, profile_b: Optional[_Profile] = None,
    ) -> Optional[Union[ConflictingClaim, CorroboratingClaim]]:
        """Classify one pair, or None when unrelated or from the same origin."""
        if fact_a.source == fact_b.source:
            return None

        a_entity = fact_a.type == FactType.NAMED_ENTITY
        b_entity = fact_b.type == FactType.NAMED_ENTITY
        if a_entity or b_entity:
            if a_entity and b_entity and fact_a.fact.lower() == fact_b.fact.lower():
                return CorroboratingClaim(
                    subject_terms=[fact_a.fact.lower()],
                    fact_a=fact_a,
                    fact_b=fact_b,
                    similarity=1.0,
                )
            return None

        profile_a = profile_a or self._profile(fact_a)
        profile_b = profile_b or self._profile(fact_b)

        shared = profile_a.terms & profile_b.terms
        union = profile_a.terms | profile_b.terms
        similarity = len(shared) / len(union) if union else 0.0
        shared_entities = profile_a.entities & profile_b.entities

        same_subject = (
            similarity >= self.similarity_threshold
            or len(shared) >= self.min_shared_terms
            or bool(shared_entities)
        )
        if not same_subject:
            return None

        subject_terms = sorted(shared | shared_entities)[:10]
        if profile_a.polarity == profile_b.polarity:
            return CorroboratingClaim(
                subject_terms=subject_terms,
                fact_a=fact_a,
                fact_b=fact_b,
                similarity=round(similarity, 3),
            )

        reason = profile_a.reason if profile_a.reason != "assertion" else profile_b.reason
        return ConflictingClaim(
            subject_terms=subject_terms,
            fact_a=fact_a,
            fact_b=fact_b,
            reason=reason,
            similarity=round(similarity, 3),
        )

    def analyze(self, facts: list[SourcedFact]) -> CrossSourceAnalysis:
        """
        Compare every cross-origin pair once, in list order.

        Args:
            facts: Sourced facts, primary query results first

        Returns:
            CrossSourceAnalysis with conflicting and corroborating pairs
        """
        analysis = CrossSourceAnalysis()
        profiles = [self._profile(f) for f in facts]

        for i in range(len(facts)):
            for j in range(i + 1, len(facts)):
                outcome = self.compare(facts[i], facts[j], profiles[i], profiles[j])
                if isinstance(outcome, ConflictingClaim):
                    analysis.conflicts.append(outcome)
                elif isinstance(outcome, CorroboratingClaim):
                    analysis.corroborations.append(outcome)

        if analysis.conflicts:
            analysis.corroborations = self._drop_contested_entities(analysis)

        self._logger.debug(
            f"Cross-source analysis: {len(facts)} facts, "
            f"{analysis.corroboration_count} corroborating, {analysis.conflict_count} conflicting"
        )
        return analysis

    def _drop_contested_entities(self, analysis: CrossSourceAnalysis) -> list[CorroboratingClaim]:
        """Entity matches between two origins that conflict over that entity are not agreement."""
        contested = set()
        for conflict in analysis.conflicts:
            origins = frozenset((conflict.fact_a.source, conflict.fact_b.source))
            for entity in [*conflict.fact_a.entities, *conflict.fact_b.entities, *conflict.subject_terms]:
                contested.add((origins, entity.lower()))

        kept = []
        for claim in analysis.corroborations:
            origins = frozenset((claim.fact_a.source, claim.fact_b.source))
            if claim.fact_a.type == FactType.NAMED_ENTITY and (origins, claim.fact_a.fact.lower()) in contested:
                continue
            kept.append(claim)

        dropped = len(analysis.corroborations) - len(kept)
        if dropped:
            self._logger.debug(f"Dropped {dropped} entity match(es) between conflicting origins")
        return kept

"""Heuristic fact extraction from search result text.

Four techniques run over the same cleaned text:
- Named entities: capitalized spans ("European Central Bank", "Reuters")
- Statements: sentences longer than 30 characters, boilerplate excluded
- Relationships: <Entity> <relation verb> <object> within a sentence
- Sentiment: lexicon score over the whole text

Facts below min_confidence are dropped, the rest sorted by confidence
(descending, stable) and truncated to max_facts. Overall extraction confidence
is min(1, mean * (1 + ln n)).

Any internal failure surfaces as DataProcessingError.
"""

import math
import re
from typing import Optional, Protocol, runtime_checkable

from research_system.errors import DataProcessingError
from research_system.utils.logging import get_structured_logger
from research_system.verification.schemas import (
    ExtractionOptions,
    Fact,
    FactExtraction,
    FactType,
    SentimentInfo,
)

MIN_STATEMENT_LENGTH = 30
BOILERPLATE_MARKERS = ("disclaimer", "copyright")

_SENTENCE_SPLIT = re.compile(r"[.!?]+(?:\s+|$)")
_WORD = re.compile(r"[A-Za-z0-9][A-Za-z0-9'&-]*")
_ENTITY_SPAN = re.compile(r"\b[A-Z][A-Za-z0-9&'-]*(?:\s+(?:of\s+|de\s+)?[A-Z][A-Za-z0-9&'-]*)*")

# Capitalized words that start sentences without naming anything.
_NON_ENTITY_WORDS = {
    "the", "a", "an", "this", "that", "these", "those", "it", "its", "they",
    "we", "he", "she", "i", "you", "in", "on", "at", "for", "but", "and", "or",
    "however", "meanwhile", "according", "after", "before", "while", "when",
    "if", "as", "there", "here", "some", "many", "most", "all", "no", "not",
    "yes", "also", "then", "our", "their", "his", "her", "what", "why", "how",
}

_AUXILIARY_VERBS = re.compile(
    r"\b(is|are|was|were|has|have|had|do|does|did|will|shall|should|would|can|could|may|might)\b",
    re.IGNORECASE,
)

RELATION_VERBS = {
    "acquired", "acquires", "owns", "owned", "leads", "led", "founded",
    "founds", "runs", "ran", "manages", "managed", "controls", "controlled",
    "announced", "announces", "launched", "launches", "released", "releases",
    "reported", "reports", "confirmed", "confirms", "denied", "denies",
    "signed", "signs", "joined", "joins", "left", "leaves", "sued", "sues",
    "invested", "invests", "partnered", "merged", "merges", "bought", "buys",
    "sold", "sells", "approved", "approves", "rejected", "rejects", "raised",
    "raises", "cut", "cuts", "hired", "hires", "fired", "fires", "built",
    "builds", "developed", "develops", "won", "wins", "lost", "loses",
    "increased", "increases", "decreased", "decreases", "supports", "supported",
    "opposes", "opposed",
}

# Small AFINN-style lexicon; weights are signed word valences.
SENTIMENT_LEXICON = {
    "good": 3, "great": 3, "excellent": 3, "strong": 2, "growth": 2,
    "gain": 2, "gains": 2, "success": 2, "successful": 3, "improve": 2,
    "improved": 2, "improvement": 2, "benefit": 2, "benefits": 2,
    "positive": 2, "profit": 2, "profitable": 2, "record": 1, "win": 4,
    "wins": 4, "won": 3, "robust": 2, "boost": 1, "boosted": 1, "rise": 1,
    "rises": 1, "rising": 1, "surge": 2, "surged": 2, "confident": 2,
    "innovative": 2, "leading": 2, "secure": 2, "stable": 2, "reliable": 2,
    "bad": -3, "poor": -2, "weak": -2, "loss": -3, "losses": -3,
    "decline": -2, "declined": -2, "declining": -2, "drop": -1,
    "dropped": -1, "fall": -1, "fell": -1, "failure": -2, "failed": -2,
    "fail": -2, "negative": -2, "risk": -2, "risks": -2, "risky": -2,
    "crisis": -3, "fraud": -4, "scandal": -3, "lawsuit": -2, "concern": -1,
    "concerns": -1, "problem": -2, "problems": -2, "threat": -2,
    "threats": -2, "worse": -3, "worst": -3, "collapse": -2,
    "collapsed": -2, "bankrupt": -3, "bankruptcy": -3, "layoffs": -2,
    "unstable": -2, "unreliable": -2, "breach": -2, "vulnerable": -2,
}

SENTIMENT_SCALE = 5.0
MAX_SENTIMENT_FACT_CHARS = 280


@runtime_checkable
class FactExtractor(Protocol):
    def extract_facts(self, text: str, options: ExtractionOptions) -> FactExtraction:
        ...


class HeuristicFactExtractor:
    """
    Dependency-free extractor combining entity, statement, relationship and
    sentiment heuristics.

    Example:
        >>> extractor = HeuristicFactExtractor()
        >>> result = extractor.extract_facts(
        ...     "Acme Corp acquired Globex in 2023. Analysts expect strong growth next year.",
        ...     ExtractionOptions(min_confidence=0.5),
        ... )
        >>> any(f.type == FactType.RELATIONSHIP for f in result.facts)
        True
    """

    def __init__(self) -> None:
        self.logger = get_structured_logger("HeuristicFactExtractor")

    def extract_facts(self, text: str, options: Optional[ExtractionOptions] = None) -> FactExtraction:
        """
        Extract facts from text.

        Args:
            text: Raw text (search result contents or title)
            options: Filtering/technique options

        Returns:
            FactExtraction with filtered, sorted facts and overall confidence

        Raises:
            DataProcessingError: Extraction failed unexpectedly
        """
        options = options or ExtractionOptions()
        try:
            cleaned = self.preprocess(text)
            if not cleaned:
                return FactExtraction(text="", facts=[], confidence=0.0)

            sentences = self.split_sentences(cleaned)
            entities = self._entity_spans(cleaned)

            candidates: list[Fact] = []
            if options.extract_entities:
                candidates.extend(self.extract_named_entities(cleaned, entities))
            if options.extract_statements:
                candidates.extend(self.extract_statements(sentences, entities))
            if options.extract_relationships:
                candidates.extend(self.extract_relationships(sentences, entities))
            if options.analyze_sentiment:
                candidates.extend(self.extract_sentiment(cleaned))

            kept = [f for f in candidates if f.confidence >= options.min_confidence]
            kept.sort(key=lambda f: f.confidence, reverse=True)
            kept = kept[: options.max_facts]

            extraction = FactExtraction(
                text=cleaned,
                facts=kept,
                confidence=self.overall_confidence(kept),
            )
        except DataProcessingError:
            raise
        except Exception as e:
            self.logger.error("fact_extraction_failed", error=str(e), text_length=len(str(text)))
            raise DataProcessingError.wrap(
                "Failed to extract facts",
                e,
                details={"text_preview": str(text)[:100]},
            ) from e

        self.logger.debug(
            "facts_extracted",
            candidate_count=len(candidates),
            fact_count=len(extraction.facts),
            confidence=extraction.confidence,
        )
        return extraction

    @staticmethod
    def preprocess(text: str) -> str:
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")
        return re.sub(r"\s+", " ", text).strip()

    @staticmethod
    def split_sentences(text: str) -> list[str]:
        return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]

    def _entity_spans(self, text: str) -> list[str]:
        """Distinct capitalized spans in order of first appearance."""
        seen: dict[str, None] = {}
        for match in _ENTITY_SPAN.finditer(text):
            words = match.group(0).split()
            # Drop a leading sentence-starter ("The Federal Reserve" -> "Federal Reserve")
            while words and words[0].lower() in _NON_ENTITY_WORDS:
                words = words[1:]
            if not words:
                continue
            span = " ".join(words)
            if len(span) < 2:
                continue
            seen.setdefault(span, None)
        return list(seen)

    def extract_named_entities(self, text: str, entities: list[str]) -> list[Fact]:
        facts = []
        for entity in entities:
            occurrences = len(re.findall(rf"\b{re.escape(entity)}\b", text))
            confidence = 0.8 if " " in entity else 0.7
            if occurrences > 1:
                confidence = min(1.0, confidence + 0.1)
            facts.append(
                Fact(
                    fact=entity,
                    type=FactType.NAMED_ENTITY,
                    confidence=round(confidence, 2),
                    entities=[entity],
                )
            )
        return facts

    def extract_statements(self, sentences: list[str], entities: list[str]) -> list[Fact]:
        facts = []
        for sentence in sentences:
            if len(sentence) <= MIN_STATEMENT_LENGTH:
                continue
            lowered = sentence.lower()
            if any(marker in lowered for marker in BOILERPLATE_MARKERS):
                continue
            facts.append(
                Fact(
                    fact=sentence,
                    type=FactType.STATEMENT,
                    confidence=self.sentence_confidence(sentence),
                    entities=[e for e in entities if e in sentence],
                )
            )
        return facts

    @staticmethod
    def sentence_confidence(sentence: str) -> float:
        """Average of length, lexical variety and verb-structure factors."""
        words = [w.lower() for w in _WORD.findall(sentence)]
        if not words:
            return 0.0
        length_factor = min(1.0, len(sentence) / 100)
        unique_factor = len(set(words)) / len(words)
        has_verb = bool(_AUXILIARY_VERBS.search(sentence)) or any(w in RELATION_VERBS for w in words)
        structure_factor = 1.0 if has_verb else 0.5
        return round((length_factor + unique_factor + structure_factor) / 3, 2)

    def extract_relationships(self, sentences: list[str], entities: list[str]) -> list[Fact]:
        facts = []
        if not entities:
            return facts

        for sentence in sentences:
            tokens = sentence.split()
            present = [e for e in entities if e in sentence]
            for subject in present:
                subject_len = len(subject.split())
                for i in range(len(tokens) - subject_len):
                    if " ".join(tokens[i:i + subject_len]).strip(",;:") != subject:
                        continue
                    verb_index = i + subject_len
                    verb = tokens[verb_index].strip(",;:").lower()
                    if verb not in RELATION_VERBS:
                        continue
                    rest = " ".join(tokens[verb_index + 1:verb_index + 8])
                    obj = next((e for e in present if e != subject and rest.startswith(e)), None)
                    if obj is None:
                        obj = next((e for e in present if e != subject and e in rest), None)
                    if obj is not None:
                        facts.append(
                            Fact(
                                fact=f"{subject} {verb} {obj}",
                                type=FactType.RELATIONSHIP,
                                confidence=0.7,
                                entities=[subject, obj],
                            )
                        )
                        continue
                    obj_words = [
                        w.strip(",;:") for w in tokens[verb_index + 1:verb_index + 4]
                        if w.strip(",;:").lower() not in _NON_ENTITY_WORDS
                    ]
                    if obj_words:
                        facts.append(
                            Fact(
                                fact=f"{subject} {verb} {' '.join(obj_words)}",
                                type=FactType.RELATIONSHIP,
                                confidence=0.6,
                                entities=[subject],
                            )
                        )
        return facts

    def extract_sentiment(self, text: str) -> list[Fact]:
        words = [w.lower() for w in _WORD.findall(text)]
        if not words:
            return []
        positive = [w for w in words if SENTIMENT_LEXICON.get(w, 0) > 0]
        negative = [w for w in words if SENTIMENT_LEXICON.get(w, 0) < 0]
        score = sum(SENTIMENT_LEXICON.get(w, 0) for w in words)
        if score == 0:
            return []

        summary = text
        if len(summary) > MAX_SENTIMENT_FACT_CHARS:
            summary = summary[:MAX_SENTIMENT_FACT_CHARS].rsplit(" ", 1)[0]

        return [
            Fact(
                fact=summary,
                type=FactType.SENTIMENT,
                confidence=round(min(1.0, abs(score) / SENTIMENT_SCALE), 2),
                sentiment=SentimentInfo(
                    score=score,
                    comparative=round(score / len(words), 4),
                    positive=positive,
                    negative=negative,
                ),
            )
        ]

    @staticmethod
    def overall_confidence(facts: list[Fact]) -> float:
        if not facts:
            return 0.0
        mean = sum(f.confidence for f in facts) / len(facts)
        return round(min(1.0, mean * (1 + math.log(len(facts)))), 2)

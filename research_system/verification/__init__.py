"""Research verification package.

- schemas: request/result models (camelCase on the wire)
- fact_extractor: FactExtractor protocol and HeuristicFactExtractor
- cross_source: CrossSourceAnalyzer (corroboration/contradiction pairs)
- confidence: ConfidenceScorer
- verification_engine: ResearchVerificationEngine.verify_research
"""

from research_system.verification.confidence import ConfidenceScorer
from research_system.verification.cross_source import CrossSourceAnalysis, CrossSourceAnalyzer
from research_system.verification.fact_extractor import FactExtractor, HeuristicFactExtractor
from research_system.verification.schemas import (
    MAX_SOURCES,
    ConfidenceScore,
    Fact,
    FactType,
    SourceResult,
    SourcedFact,
    VerificationRequest,
    VerificationResult,
)
from research_system.verification.verification_engine import ResearchVerificationEngine

__all__ = [
    "MAX_SOURCES",
    "ConfidenceScore",
    "ConfidenceScorer",
    "CrossSourceAnalysis",
    "CrossSourceAnalyzer",
    "Fact",
    "FactExtractor",
    "FactType",
    "HeuristicFactExtractor",
    "ResearchVerificationEngine",
    "SourceResult",
    "SourcedFact",
    "VerificationRequest",
    "VerificationResult",
]

"""
FAQ Triage Module

Classifies chat messages, redirects duplicate questions to existing
threads, opens threads for new questions and links answers back to them.
"""

from .classifier import ClassificationResult, QuestionClassifier
from .claims import FingerprintClaims, fingerprint, normalize_content
from .correlator import AnswerCorrelator
from .enrichment import QuestionEnricher
from .matcher import (
    JudgedStrategy,
    MatchResult,
    ScoredCandidate,
    SimilarityMatcher,
    SimilarityStrategy,
    VectorStrategy,
)
from .orchestrator import TriageAction, TriageOrchestrator, TriageOutcome
from .rules import ClassifierRule, DEFAULT_RULES, load_rules, parse_rule_file

__all__ = [
    "ClassificationResult",
    "QuestionClassifier",
    "FingerprintClaims",
    "fingerprint",
    "normalize_content",
    "AnswerCorrelator",
    "QuestionEnricher",
    "JudgedStrategy",
    "MatchResult",
    "ScoredCandidate",
    "SimilarityMatcher",
    "SimilarityStrategy",
    "VectorStrategy",
    "TriageAction",
    "TriageOrchestrator",
    "TriageOutcome",
    "ClassifierRule",
    "DEFAULT_RULES",
    "load_rules",
    "parse_rule_file",
]

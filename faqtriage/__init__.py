"""
FAQ Triage

Message triage and duplicate-question detection for community chat spaces.

Philosophy:
- Cheap checks first: punctuation and patterns before any LLM call
- A duplicate question is redirected, never answered twice
- Answers are correlated to open questions, not guessed from the whole history
- Failures degrade a decision, they never surface raw errors to users

Usage:
    from faqtriage.common import load_config, EmbeddingService, SemanticJudge
    from faqtriage.common.knowledge_store import InMemoryKnowledgeStore
    from faqtriage.triage import QuestionClassifier, SimilarityMatcher
    from faqtriage.triage import AnswerCorrelator, TriageOrchestrator
"""

__version__ = "0.1.0"

"""
FAQ Triage Common Module

Shared infrastructure: configuration, external collaborators (embedder,
semantic judge, knowledge store) and record schemas.
"""

from .config import TriageConfig, TriageOptions, load_config, validate_config
from .embedding_service import EmbeddingService, cosine_similarity
from .errors import (
    TriageError,
    ConfigError,
    JudgeError,
    EmbeddingError,
    StoreError,
    DuplicateRecordError,
    PlatformError,
)
from .judge import SemanticJudge
from .knowledge_store import KnowledgeStore, InMemoryKnowledgeStore
from .llm_client import LLMClient
from .sqlite_store import SQLiteKnowledgeStore

__all__ = [
    "TriageConfig",
    "TriageOptions",
    "load_config",
    "validate_config",
    "EmbeddingService",
    "cosine_similarity",
    "TriageError",
    "ConfigError",
    "JudgeError",
    "EmbeddingError",
    "StoreError",
    "DuplicateRecordError",
    "PlatformError",
    "SemanticJudge",
    "KnowledgeStore",
    "InMemoryKnowledgeStore",
    "LLMClient",
    "SQLiteKnowledgeStore",
]

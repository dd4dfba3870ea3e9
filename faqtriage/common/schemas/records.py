"""
Knowledge Base Records

Question, Thread and Answer are append-only. A Question owns exactly one
Thread, created in the same write. The only post-creation change allowed on
a Question is attaching derived fields (embedding, key_terms).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================

class ConfidenceTier(str, Enum):
    """Coarse banding of a similarity score, ordered NONE < LOW < MEDIUM < HIGH"""
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return list(ConfidenceTier).index(self)

    def __lt__(self, other):
        if not isinstance(other, ConfidenceTier):
            return NotImplemented
        return self.rank < other.rank


DEFAULT_CONFIDENCE_TIERS: Dict[str, float] = {"HIGH": 0.65, "MEDIUM": 0.45, "LOW": 0.35}


def tier_for_score(score: float, tiers: Optional[Dict[str, float]] = None) -> ConfidenceTier:
    """Map a raw similarity score to its confidence tier.

    Tiers are observational only; the accept/reject decision uses the
    similarity threshold.
    """
    bounds = tiers or DEFAULT_CONFIDENCE_TIERS
    if score >= bounds["HIGH"]:
        return ConfidenceTier.HIGH
    if score >= bounds["MEDIUM"]:
        return ConfidenceTier.MEDIUM
    if score >= bounds["LOW"]:
        return ConfidenceTier.LOW
    return ConfidenceTier.NONE


# ============================================================================
# Records
# ============================================================================

class Thread(BaseModel):
    """Conversation where answers to one question accumulate"""
    id: int
    external_thread_id: str = Field(..., description="Platform thread id (unique)")
    container_id: str = Field(..., description="Workspace/guild the thread lives in")
    parent_channel_id: str
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Question(BaseModel):
    """A question message that was not a duplicate of an earlier one"""
    id: int
    content: str
    embedding: Optional[List[float]] = None
    key_terms: Optional[str] = None
    author_id: str
    source_message_id: str = Field(..., description="Chat message id (unique)")
    created_at: datetime = Field(default_factory=utcnow)
    thread_id: int


class Answer(BaseModel):
    """A message judged relevant to one question"""
    id: int
    content: str
    author_id: str
    source_message_id: str
    created_at: datetime = Field(default_factory=utcnow)
    question_id: int

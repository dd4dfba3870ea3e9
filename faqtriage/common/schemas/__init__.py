"""
FAQ Triage Knowledge Base Schemas

Append-only Question/Thread/Answer records and user-facing notification texts.
"""

from .records import (
    Question,
    Thread,
    Answer,
    ConfidenceTier,
    DEFAULT_CONFIDENCE_TIERS,
    tier_for_score,
    utcnow,
)
from .templates import (
    NEW_THREAD_NOTICE,
    APOLOGY_NOTICE,
    render_thread_name,
    render_redirect,
    render_question_header,
    render_answer_notice,
    preview,
)

__all__ = [
    "Question",
    "Thread",
    "Answer",
    "ConfidenceTier",
    "DEFAULT_CONFIDENCE_TIERS",
    "tier_for_score",
    "utcnow",
    "NEW_THREAD_NOTICE",
    "APOLOGY_NOTICE",
    "render_thread_name",
    "render_redirect",
    "render_question_header",
    "render_answer_notice",
    "preview",
]

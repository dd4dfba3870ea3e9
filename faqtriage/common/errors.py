"""
Error taxonomy for FAQ triage.

Transient external failures (JudgeError, EmbeddingError, PlatformError) are
caught where the call is made and turned into a conservative default.
DuplicateRecordError means "already processed". ConfigError is only raised
at startup.
"""


class TriageError(Exception):
    """Base class for all triage errors."""
    pass


class ConfigError(TriageError):
    """Invalid or incomplete configuration. Fatal at startup."""
    pass


class JudgeError(TriageError):
    """SemanticJudge unavailable, timed out, or returned a malformed verdict."""

    def __init__(self, message: str, raw_response: str = None):
        super().__init__(message)
        self.raw_response = raw_response


class EmbeddingError(TriageError):
    """Embedder unavailable or failed to embed."""
    pass


class StoreError(TriageError):
    """KnowledgeStore read/write failure."""
    pass


class DuplicateRecordError(StoreError):
    """A record with the same source message id already exists."""

    def __init__(self, kind: str, source_message_id: str):
        super().__init__(f"{kind} already recorded for message {source_message_id}")
        self.kind = kind
        self.source_message_id = source_message_id


class PlatformError(TriageError):
    """Chat platform call failed."""
    pass

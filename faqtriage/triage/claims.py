"""
Fingerprint Claims

Short-lived advisory claims keyed by a coarse fingerprint of the question
text. The orchestrator holds a claim across "scan for duplicates, then
create" so two messages with the same fingerprint run that sequence one
after the other, and the second one sees the first one's new question.

Messages with different fingerprints never wait on each other. Paraphrases
that normalise to different fingerprints can still both create a thread.
Claims are local to one process and one event loop.
"""

import asyncio
import hashlib
import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict

logger = logging.getLogger("faqtriage.triage.claims")

STOPWORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "do", "does", "did",
    "i", "me", "my", "you", "your", "we", "it", "its", "this", "that",
    "to", "of", "in", "on", "for", "with", "and", "or", "so",
    "what", "how", "why", "when", "where", "who", "which",
    "can", "could", "would", "should", "will", "anyone", "someone", "please",
})


def normalize_content(content: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace"""
    text = content.lower()
    text = re.sub(r"[^\w\s]", "", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def fingerprint(content: str) -> str:
    """Coarse key: sorted distinct non-stopword tokens of the normalised text."""
    tokens = sorted(set(t for t in normalize_content(content).split() if t not in STOPWORDS))
    basis = " ".join(tokens) or normalize_content(content)
    return hashlib.sha1(basis.encode("utf-8")).hexdigest()[:16]


@dataclass
class _Claim:
    released: asyncio.Event
    expires_at: float


class FingerprintClaims:
    """Advisory claims with a time-to-live."""

    def __init__(self, ttl_seconds: float = 120.0):
        self._ttl = ttl_seconds
        self._claims: Dict[str, _Claim] = {}

    @property
    def active_count(self) -> int:
        now = time.monotonic()
        return sum(1 for c in self._claims.values() if c.expires_at > now)

    @asynccontextmanager
    async def claim(self, content: str) -> AsyncIterator[str]:
        """
        Hold the claim for ``content``'s fingerprint for the duration of the block.

        Waits while another task holds the same fingerprint. A claim older
        than the TTL is treated as abandoned and taken over.
        """
        key = fingerprint(content)

        while True:
            existing = self._claims.get(key)
            if existing is None:
                break
            remaining = existing.expires_at - time.monotonic()
            if remaining <= 0:
                logger.warning("Claim %s expired, taking over", key)
                break
            try:
                await asyncio.wait_for(existing.released.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

        mine = _Claim(released=asyncio.Event(), expires_at=time.monotonic() + self._ttl)
        self._claims[key] = mine
        try:
            yield key
        finally:
            mine.released.set()
            if self._claims.get(key) is mine:
                del self._claims[key]

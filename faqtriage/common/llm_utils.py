"""Shared utilities for parsing LLM verdicts."""

from __future__ import annotations

import math
import re

from .errors import JudgeError

_TRUE_WORDS = {"true", "yes"}
_FALSE_WORDS = {"false", "no"}
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def strip_fences(raw: str) -> str:
    """Remove markdown code fences, surrounding quotes and trailing punctuation."""
    text = (raw or "").strip()
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        text = "\n".join(lines).strip()
    text = text.strip("`\"' \t\n")
    return text.rstrip(".").strip()


def parse_boolean_verdict(raw: str) -> bool:
    """Parse a 'true'/'false' reply.

    Only a single boolean word is accepted. Anything else (empty text,
    explanations, hedged answers) raises JudgeError instead of being
    guessed at.
    """
    text = strip_fences(raw).lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise JudgeError(f"Malformed boolean verdict: {raw!r}", raw_response=raw)


def parse_score(raw: str) -> float:
    """Parse a similarity score in [0, 1].

    Non-numeric text and values outside [0, 1] raise JudgeError. The value
    is never clamped.
    """
    text = strip_fences(raw)
    if not _NUMBER_RE.match(text):
        raise JudgeError(f"Non-numeric score: {raw!r}", raw_response=raw)

    score = float(text)
    if math.isnan(score) or not 0.0 <= score <= 1.0:
        raise JudgeError(f"Score out of range [0, 1]: {raw!r}", raw_response=raw)
    return score

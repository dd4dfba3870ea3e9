"""
Semantic Judge

Asks an LLM for yes/no and graded verdicts on short chat texts.

Every failure mode (no client, timeout, provider error, malformed reply)
surfaces as JudgeError so callers can pick their own conservative default.
Nothing is retried here: a failed verdict degrades the decision, it does
not delay it.
"""

import asyncio
import logging
from typing import Optional

from .errors import JudgeError
from .llm_client import LLMClient
from .llm_utils import parse_boolean_verdict, parse_score

logger = logging.getLogger("faqtriage.common.judge")

JUDGE_SYSTEM = (
    "You are a precise classifier for messages in a community Q&A chat. "
    "Answer exactly in the format requested, with no explanation."
)


class SemanticJudge:
    """Boolean and score judgments on top of an LLMClient."""

    def __init__(
        self,
        llm_client: Optional[LLMClient],
        timeout: float = 30.0,
        max_concurrent: int = 8,
    ):
        """
        Args:
            llm_client: Provider client; None makes the judge unavailable
            timeout: Per-call wall-clock limit in seconds
            max_concurrent: Upper bound on in-flight calls across all tasks
        """
        self._llm = llm_client
        self._timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.call_count = 0
        self.failure_count = 0

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def judge_boolean(self, prompt: str) -> bool:
        raw = await self._ask(prompt, max_tokens=8)
        try:
            return parse_boolean_verdict(raw)
        except JudgeError:
            self.failure_count += 1
            raise

    async def judge_score(self, prompt: str) -> float:
        raw = await self._ask(prompt, max_tokens=8)
        try:
            return parse_score(raw)
        except JudgeError:
            self.failure_count += 1
            raise

    async def _ask(self, prompt: str, max_tokens: int) -> str:
        if not self.is_available:
            raise JudgeError("Semantic judge unavailable (no LLM client)")

        self.call_count += 1
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(
                        self._llm.generate,
                        prompt,
                        system=JUDGE_SYSTEM,
                        max_tokens=max_tokens,
                        timeout=self._timeout,
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                self.failure_count += 1
                raise JudgeError(f"Judge call timed out after {self._timeout}s")
            except JudgeError:
                self.failure_count += 1
                raise
            except Exception as e:
                self.failure_count += 1
                raise JudgeError(f"Judge call failed: {e}") from e

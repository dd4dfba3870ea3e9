"""
Answer Correlator

Decides which open questions a non-question message answers.
"""

import asyncio
import logging
from typing import List, TYPE_CHECKING

from ..common.errors import JudgeError
from ..common.judge import SemanticJudge
from ..common.schemas import Question
from .prompts import relevant_answer_prompt

if TYPE_CHECKING:
    from .handlers.base import InboundMessage

logger = logging.getLogger("faqtriage.triage.correlator")


class AnswerCorrelator:
    """
    Correlates a message with every open question it answers.

    A reply to the question's original message is accepted outright.
    Every other open question gets its own yes/no judge call; a message may
    answer several questions at once, so the calls are not pooled.
    """

    def __init__(self, judge: SemanticJudge = None):
        self._judge = judge

    async def _is_relevant(self, message: "InboundMessage", question: Question) -> bool:
        if message.reply_to_message_id and message.reply_to_message_id == question.source_message_id:
            return True

        if self._judge is None:
            return False

        try:
            return await self._judge.judge_boolean(
                relevant_answer_prompt(question.content, message.content)
            )
        except JudgeError as e:
            logger.warning("Judge failed for question %s, treated as not relevant: %s", question.id, e)
            return False

    async def correlate(self, message: "InboundMessage", open_questions: List[Question]) -> List[Question]:
        """
        Args:
            message: Candidate answer
            open_questions: Questions inside the answer window

        Returns:
            Correlated questions, in the order given
        """
        if not open_questions:
            return []

        verdicts = await asyncio.gather(
            *(self._is_relevant(message, question) for question in open_questions)
        )
        correlated = [q for q, relevant in zip(open_questions, verdicts) if relevant]

        if correlated:
            logger.info(
                "Message %s answers %d of %d open questions",
                message.source_message_id, len(correlated), len(open_questions),
            )
        return correlated

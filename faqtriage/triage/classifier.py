"""
Question Classifier

Decides whether a chat message is an information request.
First stage of the triage pipeline.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..common.errors import JudgeError
from ..common.judge import SemanticJudge
from .prompts import long_question_prompt, short_question_prompt
from .rules import ClassifierRule, DEFAULT_RULES

logger = logging.getLogger("faqtriage.triage.classifier")

# Which step produced the verdict
STAGE_EMPTY = "empty"
STAGE_QUESTION_MARK = "question_mark"
STAGE_PATTERN = "pattern"
STAGE_JUDGE_SHORT = "judge_short"
STAGE_JUDGE_LONG = "judge_long"
STAGE_FALLBACK = "heuristic_fallback"


@dataclass
class ClassificationResult:
    """Result of question classification"""
    is_question: bool
    stage: str
    matched_rule: Optional[str] = None
    judge_error: Optional[str] = None

    @property
    def used_judge(self) -> bool:
        return self.stage in (STAGE_JUDGE_SHORT, STAGE_JUDGE_LONG, STAGE_FALLBACK)


class QuestionClassifier:
    """
    Classifies messages as questions, cheapest check first.

    Algorithm:
    1. A question mark anywhere -> question
    2. Any regex rule matches -> question
    3. Any lexicon word appears -> ask the judge a short yes/no prompt
    4. Otherwise -> ask the judge a longer prompt tolerant of informal text

    When the judge is unavailable or fails, only steps 1-2 count, so the
    message is not a question. A judge failure never turns into a "yes".
    """

    def __init__(
        self,
        judge: Optional[SemanticJudge] = None,
        rules: Optional[List[ClassifierRule]] = None,
    ):
        """
        Args:
            judge: SemanticJudge for ambiguous messages (None: heuristics only)
            rules: Ordered heuristic rules (default: built-in rule set)
        """
        self._judge = judge
        rules = list(DEFAULT_RULES) if rules is None else list(rules)
        self._patterns = [r for r in rules if r.kind == "regex"]
        self._lexicon = [r for r in rules if r.kind == "lexicon"]

    @property
    def rule_count(self) -> int:
        return len(self._patterns) + len(self._lexicon)

    def match_heuristics(self, text: str) -> Optional[ClassificationResult]:
        """Run steps 1-2. Returns a positive result, or None when undecided."""
        if "?" in text:
            return ClassificationResult(is_question=True, stage=STAGE_QUESTION_MARK, matched_rule="?")

        for rule in self._patterns:
            if rule.matches(text):
                return ClassificationResult(is_question=True, stage=STAGE_PATTERN, matched_rule=rule.pattern)

        return None

    def find_lexicon_hit(self, text: str) -> Optional[str]:
        for rule in self._lexicon:
            if rule.matches(text):
                return rule.pattern
        return None

    async def classify(self, text: str) -> ClassificationResult:
        """
        Classify a message.

        Args:
            text: Message content

        Returns:
            ClassificationResult with verdict and the stage that decided it
        """
        if not text or not text.strip():
            return ClassificationResult(is_question=False, stage=STAGE_EMPTY)

        text = text.strip()

        heuristic = self.match_heuristics(text)
        if heuristic:
            return heuristic

        hit = self.find_lexicon_hit(text)
        if hit:
            stage = STAGE_JUDGE_SHORT
            prompt = short_question_prompt(text)
        else:
            stage = STAGE_JUDGE_LONG
            prompt = long_question_prompt(text)

        if self._judge is None:
            return ClassificationResult(is_question=False, stage=STAGE_FALLBACK, matched_rule=hit)

        try:
            verdict = await self._judge.judge_boolean(prompt)
        except JudgeError as e:
            logger.warning("Judge failed during classification, using heuristics only: %s", e)
            return ClassificationResult(
                is_question=False,
                stage=STAGE_FALLBACK,
                matched_rule=hit,
                judge_error=str(e),
            )

        return ClassificationResult(is_question=verdict, stage=stage, matched_rule=hit)

    def explain_classification(self, result: ClassificationResult) -> str:
        """Human-readable explanation of a classification"""
        verdict = "question" if result.is_question else "not a question"
        line = f"Classified as {verdict} at stage '{result.stage}'"
        if result.matched_rule:
            line += f" (rule: {result.matched_rule!r})"
        if result.judge_error:
            line += f" [judge error: {result.judge_error}]"
        return line

"""Tests for QuestionClassifier."""

import pytest

from faqtriage.common.errors import JudgeError
from faqtriage.triage.classifier import (
    STAGE_EMPTY,
    STAGE_FALLBACK,
    STAGE_JUDGE_LONG,
    STAGE_JUDGE_SHORT,
    STAGE_PATTERN,
    STAGE_QUESTION_MARK,
    QuestionClassifier,
)
from faqtriage.triage.rules import ClassifierRule


class TestHeuristics:
    @pytest.mark.asyncio
    async def test_question_mark_needs_no_judge(self, make_judge):
        judge = make_judge(boolean=lambda prompt: False)
        classifier = QuestionClassifier(judge=judge)

        result = await classifier.classify("What is a hashmap?")

        assert result.is_question
        assert result.stage == STAGE_QUESTION_MARK
        assert judge.judge_boolean.await_count == 0

    @pytest.mark.asyncio
    async def test_pattern_needs_no_judge(self, make_judge):
        judge = make_judge(boolean=lambda prompt: False)
        classifier = QuestionClassifier(judge=judge)

        result = await classifier.classify("can someone explain closures")

        assert result.is_question
        assert result.stage == STAGE_PATTERN
        assert result.matched_rule == "can (you|someone|anybody)"
        assert judge.judge_boolean.await_count == 0

    @pytest.mark.asyncio
    async def test_empty_message_not_question(self):
        result = await QuestionClassifier().classify("   ")
        assert not result.is_question
        assert result.stage == STAGE_EMPTY

    def test_custom_rules(self):
        classifier = QuestionClassifier(rules=[ClassifierRule("regex", r"^halp\b")])
        assert classifier.rule_count == 1
        assert classifier.match_heuristics("halp, build is red") is not None
        assert classifier.match_heuristics("can you look") is None


class TestJudgeStages:
    @pytest.mark.asyncio
    async def test_lexicon_hit_uses_short_prompt(self, make_judge):
        prompts = []

        def verdict(prompt):
            prompts.append(prompt)
            return True

        classifier = QuestionClassifier(judge=make_judge(boolean=verdict))
        result = await classifier.classify("wonder where the config lives")

        assert result.is_question
        assert result.stage == STAGE_JUDGE_SHORT
        assert result.matched_rule == "where"
        assert prompts[0].startswith("Analyze if this is a question")

    @pytest.mark.asyncio
    async def test_no_lexicon_hit_uses_long_prompt(self, make_judge):
        prompts = []

        def verdict(prompt):
            prompts.append(prompt)
            return False

        classifier = QuestionClassifier(judge=make_judge(boolean=verdict))
        result = await classifier.classify("thanks, that fixed it")

        assert not result.is_question
        assert result.stage == STAGE_JUDGE_LONG
        assert "informally written" in prompts[0]

    @pytest.mark.asyncio
    async def test_judge_failure_means_not_question(self, make_judge):
        def broken(prompt):
            raise JudgeError("timed out")

        classifier = QuestionClassifier(judge=make_judge(boolean=broken))
        result = await classifier.classify("anyone around")

        assert not result.is_question
        assert result.stage == STAGE_FALLBACK
        assert "timed out" in result.judge_error

    @pytest.mark.asyncio
    async def test_no_judge_means_heuristics_only(self):
        classifier = QuestionClassifier(judge=None)
        result = await classifier.classify("how does this work")

        assert not result.is_question
        assert result.stage == STAGE_FALLBACK

    def test_explain_classification(self):
        classifier = QuestionClassifier()
        result = classifier.match_heuristics("need help with docker")
        text = classifier.explain_classification(result)
        assert "question" in text
        assert "need help" in text

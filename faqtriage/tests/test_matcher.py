"""Tests for SimilarityMatcher and its strategies."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from faqtriage.common.errors import EmbeddingError, JudgeError
from faqtriage.common.schemas import ConfidenceTier, Question
from faqtriage.triage.matcher import JudgedStrategy, SimilarityMatcher, VectorStrategy

BASE_TIME = datetime(2024, 12, 20, 12, 0, tzinfo=timezone.utc)


def _question(qid, content, embedding=None, minutes=0):
    return Question(
        id=qid,
        content=content,
        embedding=embedding,
        author_id="bob",
        source_message_id=f"m{qid}",
        created_at=BASE_TIME + timedelta(minutes=minutes),
        thread_id=qid,
    )


def _embedder(vectors):
    service = Mock()
    service.embed_single = Mock(side_effect=lambda text: vectors[text])
    return service


def _score_by_existing(table):
    """Score callable keyed by the existing question's text in the prompt."""
    def score(prompt):
        for existing, value in table.items():
            if f'Question 2: "{existing}"' in prompt:
                if isinstance(value, Exception):
                    raise value
                return value
        return 0.0
    return score


class TestVectorStrategy:
    @pytest.mark.asyncio
    async def test_identical_text_matches(self):
        vec = [0.2, 0.1, 0.7]
        matcher = SimilarityMatcher(
            VectorStrategy(_embedder({"What is a hashmap?": vec})),
            similarity_threshold=0.92,
        )
        existing = _question(1, "What is a hashmap?", embedding=vec)

        result = await matcher.find_best_match("What is a hashmap?", [existing])

        assert result.is_match
        assert result.match.id == 1
        assert result.score == pytest.approx(1.0)
        assert result.tier == ConfidenceTier.HIGH
        assert result.query_embedding == vec

    @pytest.mark.asyncio
    async def test_candidates_without_embedding_skipped(self):
        matcher = SimilarityMatcher(VectorStrategy(_embedder({"q": [1.0, 0.0]})), similarity_threshold=0.5)
        pending = _question(1, "q", embedding=None)
        wrong_dim = _question(2, "q", embedding=[1.0, 0.0, 0.0])

        result = await matcher.find_best_match("q", [pending, wrong_dim])

        assert not result.is_match
        assert result.scored == []
        assert result.tier == ConfidenceTier.NONE

    @pytest.mark.asyncio
    async def test_wrong_dimension_candidate_does_not_stop_scan(self):
        matcher = SimilarityMatcher(VectorStrategy(_embedder({"q": [1.0, 0.0]})), similarity_threshold=0.9)
        wrong_dim = _question(1, "q", embedding=[1.0, 0.0, 0.0], minutes=5)
        valid = _question(2, "q", embedding=[1.0, 0.0])

        result = await matcher.find_best_match("q", [wrong_dim, valid])

        assert result.is_match
        assert result.match.id == 2
        assert result.score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_zero_norm_and_nan_score_zero(self):
        matcher = SimilarityMatcher(VectorStrategy(_embedder({"q": [1.0, 0.0]})), similarity_threshold=0.0)
        zero = _question(1, "q", embedding=[0.0, 0.0])
        nan = _question(2, "q", embedding=[float("nan"), 1.0])

        result = await matcher.find_best_match("q", [zero, nan])

        assert not result.is_match
        assert result.score == 0.0
        assert [s.score for s in result.scored] == [0.0, 0.0]

    @pytest.mark.asyncio
    async def test_embedder_failure_is_no_match(self):
        service = Mock()
        service.embed_single = Mock(side_effect=EmbeddingError("model missing"))
        matcher = SimilarityMatcher(VectorStrategy(service))

        result = await matcher.find_best_match("q", [_question(1, "q", embedding=[1.0])])

        assert not result.is_match
        assert result.tier == ConfidenceTier.NONE


class TestJudgedStrategy:
    @pytest.mark.asyncio
    async def test_empty_pool_makes_no_calls(self, make_judge):
        judge = make_judge(score=lambda prompt: 1.0)
        matcher = SimilarityMatcher(JudgedStrategy(judge))

        result = await matcher.find_best_match("what is an array", [])

        assert not result.is_match
        assert result.score == 0.0
        assert result.tier == ConfidenceTier.NONE
        assert judge.judge_score.await_count == 0

    @pytest.mark.asyncio
    async def test_best_above_threshold_wins(self, make_judge):
        judge = make_judge(score=_score_by_existing({
            "how do arrays work": 0.5,
            "explain arrays please": 0.9,
            "deploying to prod": 0.05,
        }))
        matcher = SimilarityMatcher(JudgedStrategy(judge), similarity_threshold=0.45)
        candidates = [
            _question(1, "how do arrays work"),
            _question(2, "explain arrays please"),
            _question(3, "deploying to prod"),
        ]

        result = await matcher.find_best_match("what is an array", candidates)

        assert result.match.id == 2
        assert result.score == pytest.approx(0.9)
        assert result.tier == ConfidenceTier.HIGH
        assert judge.judge_score.await_count == 3
        assert [s.question.id for s in result.scored] == [2, 1, 3]

    @pytest.mark.asyncio
    async def test_threshold_is_strict(self, make_judge):
        judge = make_judge(score=lambda prompt: 0.45)
        matcher = SimilarityMatcher(JudgedStrategy(judge), similarity_threshold=0.45)

        result = await matcher.find_best_match("q", [_question(1, "other")])

        assert not result.is_match
        assert result.score == pytest.approx(0.45)
        assert result.tier == ConfidenceTier.MEDIUM

    @pytest.mark.asyncio
    async def test_tie_goes_to_most_recent(self, make_judge):
        judge = make_judge(score=lambda prompt: 0.8)
        matcher = SimilarityMatcher(JudgedStrategy(judge))
        older = _question(1, "first", minutes=0)
        newer = _question(2, "second", minutes=5)

        result = await matcher.find_best_match("q", [older, newer])

        assert result.match.id == 2

    @pytest.mark.asyncio
    async def test_failed_candidate_excluded(self, make_judge):
        judge = make_judge(score=_score_by_existing({
            "broken": JudgeError("malformed"),
            "fine": 0.7,
        }))
        matcher = SimilarityMatcher(JudgedStrategy(judge))

        result = await matcher.find_best_match("q", [_question(1, "broken"), _question(2, "fine")])

        assert result.match.id == 2
        assert len(result.scored) == 1

    @pytest.mark.asyncio
    async def test_all_candidates_fail_is_no_match(self, make_judge):
        def broken(prompt):
            raise JudgeError("down")

        matcher = SimilarityMatcher(JudgedStrategy(make_judge(score=broken)))
        result = await matcher.find_best_match("q", [_question(1, "a"), _question(2, "b")])

        assert not result.is_match
        assert result.tier == ConfidenceTier.NONE

    @pytest.mark.asyncio
    async def test_unavailable_judge_is_no_match(self, make_judge):
        judge = make_judge(score=lambda prompt: 1.0, available=False)
        matcher = SimilarityMatcher(JudgedStrategy(judge))

        result = await matcher.find_best_match("q", [_question(1, "q")])

        assert not result.is_match
        assert judge.judge_score.await_count == 0


class TestRank:
    @pytest.mark.asyncio
    async def test_rank_limits_and_filters(self, make_judge):
        judge = make_judge(score=_score_by_existing({"a": 0.9, "b": 0.6, "c": 0.5, "d": 0.1}))
        matcher = SimilarityMatcher(JudgedStrategy(judge), similarity_threshold=0.45)
        candidates = [_question(i, text) for i, text in enumerate("abcd", start=1)]

        ranked = await matcher.rank("q", candidates, limit=2)

        assert [s.question.content for s in ranked] == ["a", "b"]

        everything = await matcher.rank("q", candidates, limit=10, min_score=0.0)
        assert [s.question.content for s in everything] == ["a", "b", "c", "d"]

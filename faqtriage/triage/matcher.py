"""
Similarity Matcher

Finds the best prior question for a new question, with a confidence tier.

Two interchangeable strategies:
- VectorStrategy: cosine similarity between stored embeddings
- JudgedStrategy: LLM-rated semantic equivalence, one call per candidate

Every candidate is scored before deciding. The best score is accepted only
if it strictly exceeds the similarity threshold; ties go to the most
recently created question. Tiers are attached for observability and do not
gate the decision.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..common.embedding_service import EmbeddingService, cosine_similarity
from ..common.errors import EmbeddingError, JudgeError
from ..common.judge import SemanticJudge
from ..common.schemas import ConfidenceTier, DEFAULT_CONFIDENCE_TIERS, Question, tier_for_score
from .prompts import equivalence_prompt

logger = logging.getLogger("faqtriage.triage.matcher")


@dataclass
class StrategyScores:
    """Per-candidate scores from a strategy; None marks an excluded candidate"""
    scores: List[Optional[float]]
    query_embedding: Optional[List[float]] = None


@dataclass
class ScoredCandidate:
    question: Question
    score: float
    tier: ConfidenceTier


@dataclass
class MatchResult:
    """Result of a duplicate search"""
    match: Optional[Question]
    score: float
    tier: ConfidenceTier
    strategy: str = ""
    query_embedding: Optional[List[float]] = None
    scored: List[ScoredCandidate] = field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return self.match is not None


class SimilarityStrategy(ABC):
    """Scores a new question against each candidate."""

    name: str = ""

    @abstractmethod
    async def score_all(self, question_text: str, candidates: List[Question]) -> StrategyScores:
        """
        Score every candidate.

        Per-candidate failures are logged and returned as None. A failure
        that prevents any scoring raises EmbeddingError or JudgeError.
        """


class VectorStrategy(SimilarityStrategy):
    """Cosine similarity between the question embedding and stored embeddings."""

    name = "vector"

    def __init__(self, embedding_service: EmbeddingService, timeout: float = 20.0):
        self._embedding = embedding_service
        self._timeout = timeout

    async def embed_query(self, question_text: str) -> List[float]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._embedding.embed_single, question_text),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise EmbeddingError(f"Embedding timed out after {self._timeout}s")
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

    async def score_all(self, question_text: str, candidates: List[Question]) -> StrategyScores:
        query = await self.embed_query(question_text)

        scores: List[Optional[float]] = []
        for candidate in candidates:
            if candidate.embedding is None:
                logger.debug("Question %s has no embedding yet, skipped", candidate.id)
                scores.append(None)
                continue
            try:
                scores.append(cosine_similarity(query, candidate.embedding))
            except ValueError as e:
                logger.warning("Skipping question %s: %s", candidate.id, e)
                scores.append(None)

        return StrategyScores(scores=scores, query_embedding=query)


class JudgedStrategy(SimilarityStrategy):
    """LLM-rated equivalence; calls fan out concurrently."""

    name = "judged"

    def __init__(self, judge: SemanticJudge):
        self._judge = judge

    async def _score_one(self, question_text: str, candidate: Question) -> Optional[float]:
        try:
            return await self._judge.judge_score(equivalence_prompt(question_text, candidate.content))
        except JudgeError as e:
            logger.warning("Judge failed for question %s, excluded: %s", candidate.id, e)
            return None

    async def score_all(self, question_text: str, candidates: List[Question]) -> StrategyScores:
        if not self._judge.is_available:
            raise JudgeError("Semantic judge unavailable")

        scores = await asyncio.gather(
            *(self._score_one(question_text, candidate) for candidate in candidates)
        )
        return StrategyScores(scores=list(scores))


class SimilarityMatcher:
    """
    Finds the best-matching prior question.

    Args:
        strategy: VectorStrategy or JudgedStrategy
        similarity_threshold: Best score must be strictly greater to match
        confidence_tiers: {"HIGH", "MEDIUM", "LOW"} lower bounds
    """

    def __init__(
        self,
        strategy: SimilarityStrategy,
        similarity_threshold: float = 0.45,
        confidence_tiers: Optional[Dict[str, float]] = None,
    ):
        self._strategy = strategy
        self._threshold = similarity_threshold
        self._tiers = dict(confidence_tiers or DEFAULT_CONFIDENCE_TIERS)

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    def tier(self, score: float) -> ConfidenceTier:
        return tier_for_score(score, self._tiers)

    async def _score(self, question_text: str, candidates: List[Question]) -> MatchResult:
        """Score and sort candidates best-first. Does not apply the threshold."""
        if not candidates:
            return MatchResult(match=None, score=0.0, tier=ConfidenceTier.NONE, strategy=self.strategy_name)

        try:
            result = await self._strategy.score_all(question_text, candidates)
        except (EmbeddingError, JudgeError) as e:
            logger.warning("Similarity scan failed, treating as no match: %s", e)
            return MatchResult(match=None, score=0.0, tier=ConfidenceTier.NONE, strategy=self.strategy_name)

        scored = [
            ScoredCandidate(question=candidate, score=score, tier=self.tier(score))
            for candidate, score in zip(candidates, result.scores)
            if score is not None
        ]
        scored.sort(key=lambda s: (s.score, s.question.created_at), reverse=True)

        for s in scored:
            logger.debug("score=%.3f tier=%s question=%s", s.score, s.tier.value, s.question.id)

        best_score = scored[0].score if scored else 0.0
        return MatchResult(
            match=None,
            score=best_score,
            tier=self.tier(best_score) if scored else ConfidenceTier.NONE,
            strategy=self.strategy_name,
            query_embedding=result.query_embedding,
            scored=scored,
        )

    async def find_best_match(self, question_text: str, candidates: List[Question]) -> MatchResult:
        """
        Find the best prior question for ``question_text``.

        Args:
            question_text: The new question
            candidates: Previously stored questions

        Returns:
            MatchResult; ``match`` is set only when the best score strictly
            exceeds the threshold
        """
        result = await self._score(question_text, candidates)

        if result.scored and result.scored[0].score > self._threshold:
            result.match = result.scored[0].question
            logger.info(
                "Duplicate found: question %s (score %.3f, tier %s)",
                result.match.id, result.score, result.tier.value,
            )
        else:
            logger.info(
                "No duplicate above threshold %.2f (best %.3f, tier %s, %d candidates)",
                self._threshold, result.score, result.tier.value, len(candidates),
            )
        return result

    async def rank(
        self,
        question_text: str,
        candidates: List[Question],
        limit: int = 3,
        min_score: Optional[float] = None,
    ) -> List[ScoredCandidate]:
        """Scored candidates best-first, for search listings"""
        result = await self._score(question_text, candidates)
        floor = self._threshold if min_score is None else min_score
        return [s for s in result.scored if s.score >= floor][:limit]

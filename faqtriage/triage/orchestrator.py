"""
Triage Orchestrator

Runs one inbound message through the triage pipeline and performs its side
effects.

Pipeline (one pass, no scheduled retries):
1. Classify: question or not
2. Question: search for a duplicate
   - match: reply with a link to the existing thread
   - no match: create Question+Thread, post "awaiting answers" notice
3. Not a question: correlate with open questions (trailing window)
   - each correlated question gets an Answer record and a thread notice
   - no correlation: nothing happens

Reprocessing the same message is a no-op: a duplicate source message id is
reported as ALREADY_PROCESSED, never as an error.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from ..common.config import TriageOptions
from ..common.errors import DuplicateRecordError, PlatformError, StoreError
from ..common.knowledge_store import KnowledgeStore
from ..common.schemas import (
    APOLOGY_NOTICE,
    NEW_THREAD_NOTICE,
    Answer,
    Question,
    Thread,
    render_answer_notice,
    render_question_header,
    render_redirect,
    render_thread_name,
    utcnow,
)
from .claims import FingerprintClaims
from .classifier import ClassificationResult, QuestionClassifier
from .correlator import AnswerCorrelator
from .enrichment import QuestionEnricher
from .handlers.base import ChatPlatform, InboundMessage
from .matcher import MatchResult, SimilarityMatcher

logger = logging.getLogger("faqtriage.triage.orchestrator")


class TriageAction(str, Enum):
    """Terminal state of one message's pass"""
    IGNORED = "ignored"
    MATCHED = "matched"
    CREATED = "created"
    ANSWERED = "answered"
    DROPPED = "dropped"
    ALREADY_PROCESSED = "already_processed"
    FAILED = "failed"


@dataclass
class TriageOutcome:
    """What happened to a message"""
    action: TriageAction
    source_message_id: str
    classification: Optional[ClassificationResult] = None
    match: Optional[MatchResult] = None
    question: Optional[Question] = None
    thread: Optional[Thread] = None
    answers: List[Answer] = field(default_factory=list)
    error: Optional[str] = None


class TriageOrchestrator:
    """Sequences classifier, matcher and correlator for each message."""

    def __init__(
        self,
        store: KnowledgeStore,
        classifier: QuestionClassifier,
        matcher: SimilarityMatcher,
        correlator: AnswerCorrelator,
        platform: ChatPlatform,
        options: Optional[TriageOptions] = None,
        enricher: Optional[QuestionEnricher] = None,
        claims: Optional[FingerprintClaims] = None,
        notify_on_failure: bool = True,
        store_timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._classifier = classifier
        self._matcher = matcher
        self._correlator = correlator
        self._platform = platform
        self._options = options or TriageOptions()
        self._enricher = enricher
        self._claims = claims
        self._notify_on_failure = notify_on_failure
        self._store_timeout = store_timeout
        self._clock = clock
        self._background: Set[asyncio.Task] = set()
        self._stats: Dict[str, int] = {action.value: 0 for action in TriageAction}

    @property
    def options(self) -> TriageOptions:
        return self._options

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def _store_call(self, fn, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs),
                timeout=self._store_timeout,
            )
        except asyncio.TimeoutError:
            raise StoreError(f"Store call {fn.__name__} timed out after {self._store_timeout}s")

    @asynccontextmanager
    async def _claim(self, content: str):
        if self._claims is None:
            yield None
            return
        async with self._claims.claim(content) as key:
            yield key

    # =========================================================================
    # Entry point
    # =========================================================================

    async def process(self, message: InboundMessage) -> TriageOutcome:
        """
        Triage one message to completion.

        Never raises: unexpected failures are logged and reported as FAILED,
        with at most a generic apology shown to the user.
        """
        try:
            outcome = await self._process(message)
        except Exception as e:
            logger.exception("Failed to triage message %s", message.source_message_id)
            outcome = TriageOutcome(
                action=TriageAction.FAILED,
                source_message_id=message.source_message_id,
                error=str(e),
            )
            await self._apologize(message)

        self._stats[outcome.action.value] += 1
        return outcome

    async def _apologize(self, message: InboundMessage) -> None:
        if not self._notify_on_failure:
            return
        try:
            await self._platform.reply(message, APOLOGY_NOTICE)
        except Exception as e:
            logger.warning("Could not send apology for %s: %s", message.source_message_id, e)

    async def _process(self, message: InboundMessage) -> TriageOutcome:
        if not message.is_valid or message.is_bot:
            return TriageOutcome(action=TriageAction.IGNORED, source_message_id=message.source_message_id)

        classification = await self._classifier.classify(message.content)
        logger.info(
            "Message %s: %s",
            message.source_message_id,
            self._classifier.explain_classification(classification),
        )

        if classification.is_question:
            return await self._handle_question(message, classification)
        return await self._handle_answer(message, classification)

    # =========================================================================
    # Questions
    # =========================================================================

    async def _handle_question(
        self,
        message: InboundMessage,
        classification: ClassificationResult,
    ) -> TriageOutcome:
        if await self._store_call(self._store.question_exists_for_message, message.source_message_id):
            return TriageOutcome(
                action=TriageAction.ALREADY_PROCESSED,
                source_message_id=message.source_message_id,
                classification=classification,
            )

        async with self._claim(message.content):
            # A concurrent delivery of this message may have created it while we waited
            if await self._store_call(self._store.question_exists_for_message, message.source_message_id):
                return TriageOutcome(
                    action=TriageAction.ALREADY_PROCESSED,
                    source_message_id=message.source_message_id,
                    classification=classification,
                )

            candidates = await self._store_call(self._store.list_all_questions)
            candidates = [q for q in candidates if q.source_message_id != message.source_message_id]
            match = await self._matcher.find_best_match(message.content, candidates)

            if match.is_match:
                thread = await self._store_call(self._store.find_thread_by_id, match.match.thread_id)
                if thread is not None:
                    await self._platform.reply(message, render_redirect(self._platform.thread_link(thread)))
                    return TriageOutcome(
                        action=TriageAction.MATCHED,
                        source_message_id=message.source_message_id,
                        classification=classification,
                        match=match,
                        question=match.match,
                        thread=thread,
                    )
                logger.warning(
                    "Thread %s for matched question %s not found, creating a new thread",
                    match.match.thread_id, match.match.id,
                )

            return await self._create_question(message, classification, match)

    async def _create_question(
        self,
        message: InboundMessage,
        classification: ClassificationResult,
        match: MatchResult,
    ) -> TriageOutcome:
        platform_thread = await self._platform.create_thread(
            message,
            render_thread_name(message.content),
            render_question_header(self._platform.mention(message.author_id), message.content),
        )

        try:
            question = await self._store_call(
                self._store.create_question_with_thread,
                content=message.content,
                author_id=message.author_id,
                source_message_id=message.source_message_id,
                external_thread_id=platform_thread.external_thread_id,
                container_id=platform_thread.container_id,
                parent_channel_id=platform_thread.parent_channel_id,
                thread_url=platform_thread.url,
                embedding=match.query_embedding,
                created_at=self._clock(),
            )
        except DuplicateRecordError as e:
            logger.info("Question already recorded: %s", e)
            logger.warning(
                "Thread %s left orphaned for message %s",
                platform_thread.external_thread_id, message.source_message_id,
            )
            return TriageOutcome(
                action=TriageAction.ALREADY_PROCESSED,
                source_message_id=message.source_message_id,
                classification=classification,
                match=match,
            )

        thread = await self._store_call(self._store.find_thread_by_id, question.thread_id)
        await self._platform.post_to_thread(thread, NEW_THREAD_NOTICE)
        logger.info("Created question %s with thread %s", question.id, thread.external_thread_id)

        self._schedule_enrichment(question)

        return TriageOutcome(
            action=TriageAction.CREATED,
            source_message_id=message.source_message_id,
            classification=classification,
            match=match,
            question=question,
            thread=thread,
        )

    def _schedule_enrichment(self, question: Question) -> None:
        if self._enricher is None:
            return
        task = asyncio.create_task(self._enricher.enrich(question))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        """Wait for pending enrichment tasks (used at shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # =========================================================================
    # Answers
    # =========================================================================

    async def _handle_answer(
        self,
        message: InboundMessage,
        classification: ClassificationResult,
    ) -> TriageOutcome:
        if await self._store_call(self._store.answer_exists_for_message, message.source_message_id):
            return TriageOutcome(
                action=TriageAction.ALREADY_PROCESSED,
                source_message_id=message.source_message_id,
                classification=classification,
            )

        since = self._clock() - timedelta(hours=self._options.answer_window_hours)
        open_questions = await self._store_call(self._store.find_questions_created_since, since)
        open_questions = [q for q in open_questions if q.source_message_id != message.source_message_id]

        correlated = await self._correlator.correlate(message, open_questions)
        if not correlated:
            return TriageOutcome(
                action=TriageAction.DROPPED,
                source_message_id=message.source_message_id,
                classification=classification,
            )

        answers: List[Answer] = []
        duplicates = 0
        for question in correlated:
            try:
                answer = await self._store_call(
                    self._store.create_answer,
                    content=message.content,
                    author_id=message.author_id,
                    source_message_id=message.source_message_id,
                    question_id=question.id,
                    created_at=self._clock(),
                )
            except DuplicateRecordError:
                duplicates += 1
                continue
            except StoreError as e:
                logger.warning("Could not record answer to question %s: %s", question.id, e)
                continue

            answers.append(answer)

            thread = await self._store_call(self._store.find_thread_by_id, question.thread_id)
            if thread is None:
                logger.warning("Thread %s for question %s not found, answer not announced",
                               question.thread_id, question.id)
                continue
            try:
                await self._platform.post_to_thread(
                    thread,
                    render_answer_notice(self._platform.mention(message.author_id), message.content),
                )
            except PlatformError as e:
                logger.warning("Could not notify thread %s: %s", thread.external_thread_id, e)

        if not answers and duplicates:
            return TriageOutcome(
                action=TriageAction.ALREADY_PROCESSED,
                source_message_id=message.source_message_id,
                classification=classification,
            )

        return TriageOutcome(
            action=TriageAction.ANSWERED if answers else TriageAction.DROPPED,
            source_message_id=message.source_message_id,
            classification=classification,
            answers=answers,
        )

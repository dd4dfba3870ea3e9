"""
End-to-end triage scenarios.

Real classifier, matcher, correlator and in-memory store; the judge and the
chat platform are scripted doubles.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from faqtriage.common.config import TriageOptions
from faqtriage.common.schemas import APOLOGY_NOTICE, NEW_THREAD_NOTICE
from faqtriage.triage.claims import FingerprintClaims
from faqtriage.triage.classifier import QuestionClassifier
from faqtriage.triage.correlator import AnswerCorrelator
from faqtriage.triage.matcher import JudgedStrategy, SimilarityMatcher
from faqtriage.triage.orchestrator import TriageAction, TriageOrchestrator

NOW = datetime(2024, 12, 20, 12, 0, tzinfo=timezone.utc)

QUESTIONS = {"how does a hashmap work", "how do I deploy the bot"}


def _is_question(prompt):
    if prompt.startswith("Analyze if"):
        return any(q in prompt for q in QUESTIONS)
    # Relevance prompts: only the deploy answer is relevant
    return "Potential Answer: run the deploy script" in prompt


def _equivalence(prompt):
    new, existing = prompt.split("Question 2:", 1)
    if "hashmap" in new.lower() and "hashmap" in existing.lower():
        return 0.9
    return 0.1


@pytest.fixture
def judge(make_judge):
    return make_judge(boolean=_is_question, score=_equivalence)


@pytest.fixture
def clock():
    return Mock(return_value=NOW)


@pytest.fixture
def orchestrator(store, platform, judge, clock):
    return TriageOrchestrator(
        store=store,
        classifier=QuestionClassifier(judge=judge),
        matcher=SimilarityMatcher(JudgedStrategy(judge), similarity_threshold=0.45),
        correlator=AnswerCorrelator(judge=judge),
        platform=platform,
        options=TriageOptions(answer_window_hours=24),
        claims=FingerprintClaims(ttl_seconds=5),
        clock=clock,
    )


class TestScenarios:
    @pytest.mark.asyncio
    async def test_a_new_question_opens_thread(self, orchestrator, store, platform, make_message):
        outcome = await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        assert outcome.action == TriageAction.CREATED
        assert outcome.classification.is_question
        assert store.get_stats() == {"questions": 1, "threads": 1, "answers": 0}
        assert platform.created[0]["name"] == "FAQ: What is a hashmap?"
        assert "@alice" in platform.created[0]["initial_content"]
        assert platform.posts == [{"thread": "thread-1", "content": NEW_THREAD_NOTICE}]
        assert platform.replies == []

    @pytest.mark.asyncio
    async def test_b_duplicate_redirects(self, orchestrator, store, platform, make_message):
        await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        outcome = await orchestrator.process(make_message("how does a hashmap work", message_id="m2", author_id="carol"))

        assert outcome.action == TriageAction.MATCHED
        assert outcome.match.score == pytest.approx(0.9)
        assert outcome.match.tier.value == "HIGH"
        assert outcome.question.source_message_id == "m1"
        assert store.get_stats()["questions"] == 1
        assert platform.replies == [{
            "message": "m2",
            "content": "Similar question was already asked! Check this thread: https://chat.example/thread-1",
        }]

    @pytest.mark.asyncio
    async def test_c_reply_becomes_answer(self, orchestrator, store, platform, make_message):
        await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        outcome = await orchestrator.process(
            make_message("you use a `Map` in most languages", message_id="m3", author_id="dave", reply_to="m1")
        )

        assert outcome.action == TriageAction.ANSWERED
        assert [a.source_message_id for a in outcome.answers] == ["m3"]
        question = store.list_all_questions()[0]
        assert [a.author_id for a in store.list_answers(question.id)] == ["dave"]
        assert platform.posts[-1] == {
            "thread": "thread-1",
            "content": "Potential answer from @dave:\nyou use a `Map` in most languages",
        }

    @pytest.mark.asyncio
    async def test_unrelated_statement_dropped(self, orchestrator, store, platform, make_message):
        await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        outcome = await orchestrator.process(make_message("lunch was great today", message_id="m4"))

        assert outcome.action == TriageAction.DROPPED
        assert store.get_stats()["answers"] == 0
        assert len(platform.posts) == 1


class TestWindow:
    @pytest.mark.asyncio
    async def test_old_question_gets_no_answers(self, orchestrator, store, platform, add_question, make_message):
        add_question("how do I deploy the bot", "old", created_at=NOW - timedelta(hours=25))

        outcome = await orchestrator.process(
            make_message("run the deploy script", message_id="a1", reply_to="old")
        )

        assert outcome.action == TriageAction.DROPPED
        assert store.get_stats()["answers"] == 0

    @pytest.mark.asyncio
    async def test_judged_answer_within_window(self, orchestrator, store, add_question, make_message):
        add_question("how do I deploy the bot", "q1", created_at=NOW - timedelta(hours=2))

        outcome = await orchestrator.process(make_message("run the deploy script", message_id="a1"))

        assert outcome.action == TriageAction.ANSWERED


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_replayed_question(self, orchestrator, store, platform, make_message):
        message = make_message("What is a hashmap?", message_id="m1")

        first = await orchestrator.process(message)
        second = await orchestrator.process(message)

        assert first.action == TriageAction.CREATED
        assert second.action == TriageAction.ALREADY_PROCESSED
        assert store.get_stats()["questions"] == 1
        assert len(platform.created) == 1
        assert platform.replies == []

    @pytest.mark.asyncio
    async def test_replayed_answer(self, orchestrator, store, platform, make_message):
        await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))
        answer = make_message("you use a `Map` in most languages", message_id="m3", reply_to="m1")

        await orchestrator.process(answer)
        posts_before = len(platform.posts)
        second = await orchestrator.process(answer)

        assert second.action == TriageAction.ALREADY_PROCESSED
        assert store.get_stats()["answers"] == 1
        assert len(platform.posts) == posts_before

    @pytest.mark.asyncio
    async def test_replayed_answer_after_new_question_opens(self, orchestrator, store, platform, add_question,
                                                            make_message):
        add_question("how do I deploy the bot", "q1", created_at=NOW - timedelta(hours=2))
        answer = make_message("run the deploy script", message_id="a1")

        first = await orchestrator.process(answer)
        add_question("how do I deploy the bot to staging", "q2", created_at=NOW - timedelta(hours=1))
        posts_before = len(platform.posts)
        second = await orchestrator.process(answer)

        assert first.action == TriageAction.ANSWERED
        assert second.action == TriageAction.ALREADY_PROCESSED
        assert store.get_stats()["answers"] == 1
        assert len(platform.posts) == posts_before

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_of_same_question(self, orchestrator, store, platform, make_message):
        message = make_message("What is a hashmap?", message_id="m1")

        outcomes = await asyncio.gather(orchestrator.process(message), orchestrator.process(message))

        assert sorted(o.action.value for o in outcomes) == ["already_processed", "created"]
        assert store.get_stats()["questions"] == 1
        assert len(platform.created) == 1
        assert platform.replies == []

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_without_claims(self, store, platform, judge, clock, make_message):
        orchestrator = TriageOrchestrator(
            store=store,
            classifier=QuestionClassifier(judge=judge),
            matcher=SimilarityMatcher(JudgedStrategy(judge)),
            correlator=AnswerCorrelator(judge=judge),
            platform=platform,
            clock=clock,
        )
        message = make_message("What is a hashmap?", message_id="m1")

        outcomes = await asyncio.gather(orchestrator.process(message), orchestrator.process(message))

        assert sorted(o.action.value for o in outcomes) == ["already_processed", "created"]
        assert store.get_stats()["questions"] == 1
        assert platform.replies == []

    @pytest.mark.asyncio
    async def test_concurrent_identical_questions_create_once(self, orchestrator, store, platform, make_message):
        outcomes = await asyncio.gather(
            orchestrator.process(make_message("What is a hashmap?", message_id="m1")),
            orchestrator.process(make_message("what is a hashmap?", message_id="m2")),
        )

        actions = sorted(o.action.value for o in outcomes)
        assert actions == ["created", "matched"]
        assert store.get_stats()["questions"] == 1


class TestDegradedPaths:
    @pytest.mark.asyncio
    async def test_bot_and_empty_messages_ignored(self, orchestrator, judge, make_message):
        bot = await orchestrator.process(make_message("What is a hashmap?", is_bot=True))
        empty = await orchestrator.process(make_message("   ", message_id="m2"))

        assert bot.action == TriageAction.IGNORED
        assert empty.action == TriageAction.IGNORED
        assert judge.judge_boolean.await_count == 0

    @pytest.mark.asyncio
    async def test_dangling_thread_falls_back_to_create(self, orchestrator, store, platform, make_message):
        await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))
        store._threads.clear()

        outcome = await orchestrator.process(make_message("how does a hashmap work", message_id="m2"))

        assert outcome.action == TriageAction.CREATED
        assert store.get_stats()["questions"] == 2
        assert platform.replies == []

    @pytest.mark.asyncio
    async def test_platform_failure_apologizes(self, orchestrator, store, platform, make_message):
        platform.fail_create = True

        outcome = await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        assert outcome.action == TriageAction.FAILED
        assert store.get_stats()["questions"] == 0
        assert platform.replies == [{"message": "m1", "content": APOLOGY_NOTICE}]
        assert "refused" not in platform.replies[0]["content"]

    @pytest.mark.asyncio
    async def test_duplicate_record_logs_orphaned_thread(self, orchestrator, store, platform, add_question,
                                                         make_message, caplog):
        add_question("What is a hashmap?", "m1")
        store.question_exists_for_message = Mock(return_value=False)

        with caplog.at_level(logging.WARNING, logger="faqtriage.triage.orchestrator"):
            outcome = await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        assert outcome.action == TriageAction.ALREADY_PROCESSED
        assert platform.replies == []
        assert "Thread thread-1 left orphaned for message m1" in caplog.text

    @pytest.mark.asyncio
    async def test_apology_can_be_disabled(self, store, platform, judge, make_message):
        orchestrator = TriageOrchestrator(
            store=store,
            classifier=QuestionClassifier(judge=judge),
            matcher=SimilarityMatcher(JudgedStrategy(judge)),
            correlator=AnswerCorrelator(judge=judge),
            platform=platform,
            notify_on_failure=False,
        )
        platform.fail_create = True

        outcome = await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        assert outcome.action == TriageAction.FAILED
        assert platform.replies == []

    @pytest.mark.asyncio
    async def test_judge_outage_still_creates_question_mark_questions(self, store, platform, make_judge, make_message):
        down = make_judge(available=False)
        orchestrator = TriageOrchestrator(
            store=store,
            classifier=QuestionClassifier(judge=down),
            matcher=SimilarityMatcher(JudgedStrategy(down)),
            correlator=AnswerCorrelator(judge=down),
            platform=platform,
        )

        first = await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))
        statement = await orchestrator.process(make_message("thanks all", message_id="m2"))

        assert first.action == TriageAction.CREATED
        assert statement.action == TriageAction.DROPPED

    @pytest.mark.asyncio
    async def test_stats_count_outcomes(self, orchestrator, make_message):
        await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))
        await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))

        stats = orchestrator.get_stats()
        assert stats["created"] == 1
        assert stats["already_processed"] == 1


class TestEnrichment:
    @pytest.mark.asyncio
    async def test_enrichment_scheduled_after_create(self, store, platform, judge, make_message):
        enricher = Mock()
        enricher.enrich = AsyncMock(return_value=None)
        orchestrator = TriageOrchestrator(
            store=store,
            classifier=QuestionClassifier(judge=judge),
            matcher=SimilarityMatcher(JudgedStrategy(judge)),
            correlator=AnswerCorrelator(judge=judge),
            platform=platform,
            enricher=enricher,
        )

        outcome = await orchestrator.process(make_message("What is a hashmap?", message_id="m1"))
        await orchestrator.wait_for_background()

        enricher.enrich.assert_awaited_once()
        assert enricher.enrich.await_args.args[0].id == outcome.question.id

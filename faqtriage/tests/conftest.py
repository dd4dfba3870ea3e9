"""Shared fixtures: in-memory store, recording chat platform, scripted judge."""

from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from faqtriage.common.errors import JudgeError, PlatformError
from faqtriage.common.knowledge_store import InMemoryKnowledgeStore
from faqtriage.common.schemas import Thread
from faqtriage.triage.handlers.base import ChatPlatform, InboundMessage, PlatformThread


class RecordingPlatform(ChatPlatform):
    """ChatPlatform that records every outbound call."""

    def __init__(self):
        self.created: List[Dict] = []
        self.posts: List[Dict] = []
        self.replies: List[Dict] = []
        self.fail_create = False
        self._counter = 0

    async def create_thread(self, message: InboundMessage, name: str, initial_content: str) -> PlatformThread:
        if self.fail_create:
            raise PlatformError("thread creation refused")
        self._counter += 1
        external_id = f"thread-{self._counter}"
        self.created.append({"message": message, "name": name, "initial_content": initial_content})
        return PlatformThread(
            external_thread_id=external_id,
            container_id=message.container_id,
            parent_channel_id=message.channel_id,
            url=f"https://chat.example/{external_id}",
        )

    async def post_to_thread(self, thread: Thread, content: str) -> None:
        self.posts.append({"thread": thread.external_thread_id, "content": content})

    async def reply(self, message: InboundMessage, content: str) -> None:
        self.replies.append({"message": message.source_message_id, "content": content})

    def thread_link(self, thread: Thread) -> str:
        return thread.url or thread.external_thread_id

    def mention(self, author_id: str) -> str:
        return f"@{author_id}"


def scripted_judge(
    boolean: Optional[Callable[[str], bool]] = None,
    score: Optional[Callable[[str], float]] = None,
    available: bool = True,
) -> Mock:
    """A judge double whose verdicts are computed from the prompt text.

    Callables may raise JudgeError to simulate a failed call.
    """
    judge = Mock()
    judge.is_available = available

    async def _boolean(prompt):
        if boolean is None:
            raise JudgeError("no boolean verdict scripted")
        return boolean(prompt)

    async def _score(prompt):
        if score is None:
            raise JudgeError("no score scripted")
        return score(prompt)

    judge.judge_boolean = AsyncMock(side_effect=_boolean)
    judge.judge_score = AsyncMock(side_effect=_score)
    return judge


@pytest.fixture
def store():
    return InMemoryKnowledgeStore()


@pytest.fixture
def platform():
    return RecordingPlatform()


@pytest.fixture
def make_message():
    def _make(
        content: str,
        message_id: str = "m1",
        author_id: str = "alice",
        reply_to: Optional[str] = None,
        is_bot: bool = False,
    ) -> InboundMessage:
        return InboundMessage(
            content=content,
            author_id=author_id,
            source_message_id=message_id,
            container_id="guild-1",
            channel_id="general",
            source="test",
            reply_to_message_id=reply_to,
            is_bot=is_bot,
        )
    return _make


@pytest.fixture
def add_question(store):
    """Insert a question (and its thread) directly into the store."""
    def _add(content: str, message_id: str, embedding=None, created_at=None, author_id: str = "bob"):
        return store.create_question_with_thread(
            content=content,
            author_id=author_id,
            source_message_id=message_id,
            external_thread_id=f"ext-{message_id}",
            container_id="guild-1",
            parent_channel_id="general",
            thread_url=f"https://chat.example/ext-{message_id}",
            embedding=embedding,
            created_at=created_at,
        )
    return _add


@pytest.fixture
def make_judge():
    return scripted_judge

"""
Base Handler

Platform-neutral message shape plus the two seams a chat platform plugs
into: BaseHandler turns inbound events into InboundMessages, ChatPlatform
performs the outbound side effects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from ...common.schemas import Thread


@dataclass
class InboundMessage:
    """
    Common message format for all sources.

    ``source_message_id`` must be unique per platform; ``reply_to_message_id``
    uses the same id space so it can be compared with a question's
    source message id.
    """
    content: str
    author_id: str
    source_message_id: str
    container_id: str
    channel_id: str
    source: str  # "slack", ...
    timestamp: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    is_bot: bool = False
    attachments: list = field(default_factory=list)
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def datetime(self) -> Optional[datetime]:
        """Parse timestamp to datetime"""
        try:
            return datetime.fromtimestamp(float(self.timestamp), tz=timezone.utc)
        except (ValueError, TypeError):
            return None

    @property
    def is_valid(self) -> bool:
        """Check if message has minimum required fields"""
        return bool(self.content and self.content.strip() and self.source_message_id)


@dataclass
class PlatformThread:
    """A thread as created on the chat platform"""
    external_thread_id: str
    container_id: str
    parent_channel_id: str
    url: Optional[str] = None


class BaseHandler(ABC):
    """
    Abstract base class for inbound event handlers.

    Each handler must implement:
    - parse_event: Convert raw event to InboundMessage
    - verify_signature: Verify webhook signature (if applicable)
    """

    def __init__(self, source_name: str, min_length: int = 2):
        self.source_name = source_name
        self._min_length = min_length

    @abstractmethod
    async def parse_event(self, raw_data: Dict[str, Any]) -> Optional[InboundMessage]:
        """
        Parse raw event data into an InboundMessage.

        Returns:
            InboundMessage or None if the event should be ignored
        """
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """Verify the webhook signature."""
        pass

    def should_process(self, message: InboundMessage) -> bool:
        """
        Check if message should be triaged.

        Filters out bot messages, empty messages and one-character noise.
        """
        if not message.is_valid:
            return False

        if message.is_bot:
            return False

        if len(message.content.strip()) < self._min_length:
            return False

        return True


class ChatPlatform(ABC):
    """Outbound side of a chat platform."""

    @abstractmethod
    async def create_thread(
        self,
        message: InboundMessage,
        name: str,
        initial_content: str,
    ) -> PlatformThread:
        """Open a thread for a new question."""

    @abstractmethod
    async def post_to_thread(self, thread: Thread, content: str) -> None:
        """Post into an existing thread."""

    @abstractmethod
    async def reply(self, message: InboundMessage, content: str) -> None:
        """Reply to the given message."""

    @abstractmethod
    def thread_link(self, thread: Thread) -> str:
        """Link users can follow to reach the thread."""

    @abstractmethod
    def mention(self, author_id: str) -> str:
        """Render a reference to a user."""

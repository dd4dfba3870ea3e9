"""
Slack Handler

Converts Slack Events API webhooks into InboundMessages and posts triage
notifications back through the Slack Web API.

Message ids are "<channel>:<ts>", which makes them unique across channels.
A reply inside a thread refers to the thread's root message, so answering
in a question's thread is an explicit reply to that question.
"""

import hashlib
import hmac
import logging
import re
import time
from typing import Optional, Dict, Any, List

import httpx

from ...common.errors import PlatformError
from ...common.schemas import Thread
from .base import BaseHandler, ChatPlatform, InboundMessage, PlatformThread

logger = logging.getLogger("faqtriage.triage.slack")

SLACK_API_URL = "https://slack.com/api"

IGNORED_SUBTYPES = [
    "channel_join", "channel_leave", "channel_topic",
    "channel_purpose", "channel_name", "message_deleted",
    "message_changed", "bot_message",
]


def message_id(channel: str, ts: str) -> str:
    return f"{channel}:{ts}"


def split_message_id(value: str) -> tuple:
    channel, _, ts = value.rpartition(":")
    return channel, ts


def permalink(channel: str, ts: str) -> str:
    return f"https://slack.com/archives/{channel}/p{ts.replace('.', '')}"


class SlackHandler(BaseHandler):
    """
    Handler for Slack Events API webhooks.

    Processes new channel and thread messages. Ignores bot messages, edits,
    deletions and membership/topic events.
    """

    def __init__(self, signing_secret: str = ""):
        super().__init__("slack")
        self._signing_secret = signing_secret

    async def parse_event(self, raw_data: Dict[str, Any]) -> Optional[InboundMessage]:
        if raw_data.get("type") != "event_callback":
            return None

        event = raw_data.get("event", {})
        if event.get("type") != "message":
            return None

        if event.get("bot_id") or event.get("subtype") in IGNORED_SUBTYPES:
            return None

        channel = event.get("channel", "")
        ts = event.get("ts", "")
        if not channel or not ts:
            return None

        thread_ts = event.get("thread_ts")
        reply_to = None
        if thread_ts and thread_ts != ts:
            reply_to = message_id(channel, thread_ts)

        return InboundMessage(
            content=event.get("text", ""),
            author_id=event.get("user", ""),
            source_message_id=message_id(channel, ts),
            container_id=raw_data.get("team_id") or event.get("team", ""),
            channel_id=channel,
            source="slack",
            timestamp=ts,
            reply_to_message_id=reply_to,
            is_bot=False,
            attachments=self._extract_attachments(event),
            raw_data=event,
        )

    def _extract_attachments(self, event: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            {"name": f.get("name"), "mimetype": f.get("mimetype"), "url": f.get("url_private")}
            for f in event.get("files", [])
        ]

    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """
        Verify Slack request signature.

        Args:
            body: Raw request body
            signature: X-Slack-Signature header
            timestamp: X-Slack-Request-Timestamp header
        """
        if not self._signing_secret:
            # Skip verification if no secret configured
            return True

        if not signature or not timestamp:
            return False

        # Reject replays older than 5 minutes
        try:
            ts = int(timestamp)
            if abs(time.time() - ts) > 300:
                return False
        except ValueError:
            return False

        sig_basestring = f"v0:{timestamp}:{body.decode('utf-8')}"
        expected_sig = "v0=" + hmac.new(
            self._signing_secret.encode('utf-8'),
            sig_basestring.encode('utf-8'),
            hashlib.sha256
        ).hexdigest()

        return hmac.compare_digest(expected_sig, signature)

    def should_process(self, message: InboundMessage) -> bool:
        if not super().should_process(message):
            return False

        # Skip messages that are only mentions or links
        clean_text = re.sub(r'<@U[A-Z0-9]+>', '', message.content)
        clean_text = re.sub(r'<https?://[^>]+>', '', clean_text).strip()
        return len(clean_text) >= self._min_length

    def is_url_verification(self, raw_data: Dict[str, Any]) -> bool:
        return raw_data.get("type") == "url_verification"

    def get_challenge(self, raw_data: Dict[str, Any]) -> Optional[str]:
        if self.is_url_verification(raw_data):
            return raw_data.get("challenge")
        return None


class SlackPlatform(ChatPlatform):
    """
    Outbound Slack calls via chat.postMessage.

    With a forum channel configured, each new question gets a root post in
    that channel. Otherwise the question message itself becomes the thread
    root.
    """

    def __init__(
        self,
        bot_token: str,
        forum_channel_id: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._forum_channel_id = forum_channel_id
        self._client = client or httpx.AsyncClient(
            base_url=SLACK_API_URL,
            timeout=httpx.Timeout(timeout),
            headers={"Authorization": f"Bearer {bot_token}"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> Dict[str, Any]:
        payload = {"channel": channel, "text": text, "unfurl_links": False}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        try:
            response = await self._client.post("/chat.postMessage", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise PlatformError(f"Slack request failed: {e}") from e

        if not data.get("ok"):
            raise PlatformError(f"Slack API error: {data.get('error', 'unknown')}")
        return data

    async def create_thread(
        self,
        message: InboundMessage,
        name: str,
        initial_content: str,
    ) -> PlatformThread:
        if self._forum_channel_id:
            data = await self._post_message(self._forum_channel_id, f"*{name}*\n{initial_content}")
            channel, ts = self._forum_channel_id, data["ts"]
        else:
            channel, ts = split_message_id(message.source_message_id)

        return PlatformThread(
            external_thread_id=message_id(channel, ts),
            container_id=message.container_id,
            parent_channel_id=channel,
            url=permalink(channel, ts),
        )

    async def post_to_thread(self, thread: Thread, content: str) -> None:
        channel, ts = split_message_id(thread.external_thread_id)
        await self._post_message(channel, content, thread_ts=ts)

    async def reply(self, message: InboundMessage, content: str) -> None:
        channel, ts = split_message_id(message.source_message_id)
        root_ts = split_message_id(message.reply_to_message_id)[1] if message.reply_to_message_id else ts
        await self._post_message(channel, content, thread_ts=root_ts)

    def thread_link(self, thread: Thread) -> str:
        if thread.url:
            return thread.url
        channel, ts = split_message_id(thread.external_thread_id)
        return permalink(channel, ts)

    def mention(self, author_id: str) -> str:
        return f"<@{author_id}>"

"""
Chat Platform Handlers

Inbound handlers convert platform events to InboundMessage; platforms
perform outbound thread creation, posts and replies.

Available:
- SlackHandler / SlackPlatform: Slack Events API + Web API
"""

from .base import BaseHandler, ChatPlatform, InboundMessage, PlatformThread
from .slack import SlackHandler, SlackPlatform

__all__ = [
    "BaseHandler",
    "ChatPlatform",
    "InboundMessage",
    "PlatformThread",
    "SlackHandler",
    "SlackPlatform",
]

"""Messaging screen logic: conversation list, live feeds, optimistic sends."""
from .controller import ConversationViewController
from .conversations import Conversation, build_conversations
from .timefmt import format_display_time, parse_utc
from .view import ChatView

__all__ = [
    "ConversationViewController",
    "Conversation",
    "build_conversations",
    "format_display_time",
    "parse_utc",
    "ChatView",
]

"""
Conversation List Builder

Derives the sidebar's conversation list from the full set of messages the
current user has sent or received. Nothing is persisted; the list is rebuilt
on every load.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from volunteerhub.messaging.timefmt import parse_utc
from volunteerhub.models.message import Message
from volunteerhub.models.user import User

PLACEHOLDER_PREVIEW = "Start a conversation"
NEW_CONTACT_NAME = "New Contact"
UNKNOWN_USER_NAME = "Unknown User"


@dataclass
class Conversation:
    """One sidebar entry, keyed by the partner's user id."""
    partner_id: str
    name: str
    last_message: str
    timestamp: datetime
    unread: bool = False
    is_new: bool = False

    @property
    def initial(self) -> str:
        return (self.name or "U")[:1].upper()


def display_name(profile: Optional[User]) -> str:
    if profile is None:
        return UNKNOWN_USER_NAME
    return profile.full_name or profile.email or UNKNOWN_USER_NAME


def build_conversations(
    messages: Iterable[Message],
    current_user_id: str,
    profiles: Optional[Dict[str, User]] = None,
    target_id: Optional[str] = None,
    target_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Conversation]:
    """
    Build the ordered conversation list.

    Args:
        messages: Every message where the current user is sender or recipient, any order
        current_user_id: The session's user id
        profiles: Partner profiles by id, used for display names
        target_id: Partner requested by navigation ("message this user")
        target_name: Display name to use if a placeholder has to be synthesized
        now: Timestamp for a synthesized placeholder (defaults to the current time)

    Returns:
        One Conversation per partner, most recent first
    """
    profiles = profiles or {}
    latest: Dict[str, Message] = {}
    unread: Set[str] = set()

    for message in messages:
        partner_id = message.partner_of(current_user_id)

        current = latest.get(partner_id)
        if current is None or _recency(message) > _recency(current):
            latest[partner_id] = message

        if (
            message.recipient_id == current_user_id
            and message.sender_id == partner_id
            and not message.is_read
        ):
            unread.add(partner_id)

    conversations = [
        Conversation(
            partner_id=partner_id,
            name=display_name(profiles.get(partner_id)),
            last_message=message.body,
            timestamp=parse_utc(message.created_at),
            unread=partner_id in unread,
        )
        for partner_id, message in latest.items()
    ]

    if target_id and target_id not in latest:
        conversations.append(Conversation(
            partner_id=target_id,
            name=target_name or (
                display_name(profiles[target_id]) if target_id in profiles else NEW_CONTACT_NAME
            ),
            last_message=PLACEHOLDER_PREVIEW,
            timestamp=parse_utc(now),
            unread=False,
            is_new=True,
        ))

    conversations.sort(key=lambda c: c.timestamp, reverse=True)
    return conversations


def _recency(message: Message):
    return parse_utc(message.created_at), message.id or 0

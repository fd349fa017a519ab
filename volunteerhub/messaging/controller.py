"""
Conversation View Controller

Drives one messaging screen for one signed-in user:

- builds the conversation sidebar from the store
- keeps a standing inbox subscription for sidebar previews and toasts
- keeps at most one active-chat subscription for the open partner
- sends messages optimistically and reconciles with the store's answer

The inbox feed never renders bubbles and the active-chat feed only carries
the partner's own messages, while the current user's messages are rendered
by the send pipeline. Each message therefore reaches the open thread through
exactly one path.
"""

import asyncio
import itertools
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from volunteerhub.config import MESSAGES_PATH, TOAST_SECONDS
from volunteerhub.messaging.conversations import Conversation, build_conversations, display_name
from volunteerhub.messaging.timefmt import format_display_time
from volunteerhub.messaging.view import Bubble, ChatView, Toast
from volunteerhub.models.message import Message
from volunteerhub.models.user import User
from volunteerhub.realtime.feed import ChangeFeed, FeedEvent, INSERT, Subscription
from volunteerhub.realtime.filters import and_, eq, in_, or_
from volunteerhub.services.message_store import MESSAGES_TABLE, MessageStore, StoreError
from volunteerhub.utils.logger import messaging_logger
from volunteerhub.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)

SEND_FAILED_ALERT = "Failed to send message."
TOAST_EXCERPT_LENGTH = 60
FALLBACK_PARTNER_NAME = "User"


async def fetch_conversations(
    store: MessageStore,
    user_id: str,
    target_id: Optional[str] = None,
    target_name: Optional[str] = None,
) -> Tuple[List[Conversation], Dict[str, User]]:
    """
    Load everything the user sent or received and build the sidebar list.

    Raises:
        StoreError: If messages or profiles cannot be read
    """
    messages = await store.read_many(conversation_filter(user_id), order_by="created_at", descending=True)
    partner_ids = {m.partner_of(user_id) for m in messages}
    if target_id:
        partner_ids.add(target_id)
    profiles = await store.get_profiles(partner_ids)
    conversations = build_conversations(
        messages, user_id, profiles=profiles, target_id=target_id, target_name=target_name
    )
    return conversations, profiles


def conversation_filter(user_id: str):
    """Every message the user sent or received."""
    return or_(eq("sender_id", user_id), eq("recipient_id", user_id))


def thread_filter(user_id: str, partner_id: str):
    """Both directions of one two-party thread."""
    return or_(
        and_(eq("sender_id", user_id), eq("recipient_id", partner_id)),
        and_(eq("sender_id", partner_id), eq("recipient_id", user_id)),
    )


def excerpt(text: str, length: int = TOAST_EXCERPT_LENGTH) -> str:
    return text if len(text) <= length else text[:length] + "..."


class ConversationViewController:
    """Owns the open-chat state, both live subscriptions and the send pipeline."""

    def __init__(
        self,
        store: MessageStore,
        feed: ChangeFeed,
        user_id: str,
        view: Optional[ChatView] = None,
        toast_seconds: float = TOAST_SECONDS,
        timezone: Optional[str] = None,
    ):
        self.store = store
        self.feed = feed
        self.user_id = user_id
        self.view = view or ChatView()
        self.toast_seconds = toast_seconds
        self.timezone = timezone

        self.partner_id: Optional[str] = None
        self.partner_name: Optional[str] = None

        self._inbox_subscription: Optional[Subscription] = None
        self._chat_subscription: Optional[Subscription] = None
        self._profiles: Dict[str, User] = {}
        self._background: Set[asyncio.Task] = set()
        self._toast_timer: Optional[asyncio.TimerHandle] = None
        self._temp_ids = itertools.count(1)
        self._toast_ids = itertools.count(1)

    # -- lifecycle -----------------------------------------------------------

    async def start(self, target_id: Optional[str] = None, target_name: Optional[str] = None):
        """Load the sidebar (opening ``target_id`` if given) and start the inbox feed."""
        await self.load_conversations(target_id, target_name)
        self.subscribe_to_inbox()

    async def close(self):
        """Release both subscriptions and wait for outstanding read receipts."""
        self._unsubscribe_chat()
        if self._inbox_subscription is not None:
            self.feed.unsubscribe(self._inbox_subscription)
            self._inbox_subscription = None
        if self._toast_timer is not None:
            self._toast_timer.cancel()
            self._toast_timer = None
        await self.drain()

    async def drain(self):
        """Wait for fire-and-forget work (read receipts) to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def chat_subscription(self) -> Optional[Subscription]:
        return self._chat_subscription

    @property
    def inbox_subscription(self) -> Optional[Subscription]:
        return self._inbox_subscription

    # -- conversation list ---------------------------------------------------

    async def load_conversations(self, target_id: Optional[str] = None, target_name: Optional[str] = None):
        self.view.show_sidebar_loading()
        try:
            conversations, profiles = await fetch_conversations(
                self.store, self.user_id, target_id, target_name
            )
        except StoreError as e:
            logger.error(f"Error loading conversations for {self.user_id}: {e.message}")
            self.view.show_sidebar_error()
            return

        self._profiles.update(profiles)
        self.view.set_conversations(conversations, active_id=target_id or self.partner_id)

        if target_id:
            await self.open_chat(target_id, target_name)

    # -- active chat ---------------------------------------------------------

    async def open_chat(self, partner_id: Optional[str], partner_name: Optional[str] = None):
        if not partner_id:
            self.view.redirect(MESSAGES_PATH)
            return

        self._unsubscribe_chat()
        self.partner_id = partner_id
        self.partner_name = partner_name or self._name_for(partner_id)

        self.view.activate(partner_id)
        self.view.set_header(self.partner_name)
        self.view.enable_input()

        loaded = await self.load_messages(partner_id)
        if loaded and self.partner_id == partner_id:
            self._subscribe_to_chat(partner_id)

    async def load_messages(self, partner_id: str) -> bool:
        """Render the thread with ``partner_id``; returns False if it could not be shown."""
        self.view.show_thread_loading()
        try:
            messages = await self.store.read_many(
                thread_filter(self.user_id, partner_id), order_by="created_at"
            )
        except StoreError as e:
            logger.error(f"Error loading thread {self.user_id}/{partner_id}: {e.message}")
            if self.partner_id == partner_id:
                self.view.show_thread_error()
            return False

        # Another chat was opened while this one was loading
        if self.partner_id != partner_id:
            return False

        self.view.set_thread([self._bubble_for(m) for m in messages])

        unread_ids = [m.id for m in messages if m.recipient_id == self.user_id and not m.is_read]
        if unread_ids:
            self._spawn(self._mark_read(unread_ids))
        return True

    def _subscribe_to_chat(self, partner_id: str):
        self._unsubscribe_chat()

        def on_insert(event: FeedEvent):
            self._on_chat_insert(partner_id, event)

        self._chat_subscription = self.feed.subscribe(
            MESSAGES_TABLE,
            INSERT,
            eq("sender_id", partner_id),
            on_insert,
            channel=f"chat-{self.user_id}-{partner_id}",
        )

    def _unsubscribe_chat(self):
        if self._chat_subscription is not None:
            self.feed.unsubscribe(self._chat_subscription)
            self._chat_subscription = None

    def _on_chat_insert(self, partner_id: str, event: FeedEvent):
        if partner_id != self.partner_id:
            return

        message = Message.model_validate(event.new)
        in_pair = (
            (message.sender_id == partner_id and message.recipient_id == self.user_id)
            or (message.sender_id == self.user_id and message.recipient_id == partner_id)
        )
        if not in_pair or self.view.bubble(str(message.id)) is not None:
            return

        self.view.append_bubble(self._bubble_for(message))
        if message.recipient_id == self.user_id:
            self._spawn(self._mark_read([message.id]))

    # -- inbox ---------------------------------------------------------------

    def subscribe_to_inbox(self):
        if self._inbox_subscription is not None:
            return
        self._inbox_subscription = self.feed.subscribe(
            MESSAGES_TABLE,
            INSERT,
            eq("recipient_id", self.user_id),
            self._on_inbox_insert,
            channel=f"inbox-{self.user_id}",
        )

    async def _on_inbox_insert(self, event: FeedEvent):
        message = Message.model_validate(event.new)

        if message.sender_id == self.partner_id:
            # The active-chat feed renders the bubble
            await self._update_sidebar_preview(message.sender_id, message.body)
            return

        await self._update_sidebar_preview(message.sender_id, message.body, unread=True)
        self._show_toast(message)

    async def _update_sidebar_preview(self, partner_id: str, text: str, unread: bool = False):
        if not self.view.update_preview(partner_id, text, unread=unread):
            await self.load_conversations()

    def _show_toast(self, message: Message):
        toast = Toast(
            toast_id=f"toast-{next(self._toast_ids)}",
            sender_id=message.sender_id,
            sender_name=self._name_for(message.sender_id),
            excerpt=excerpt(message.body),
        )
        if self._toast_timer is not None:
            self._toast_timer.cancel()
        self.view.show_toast(toast)
        self._toast_timer = asyncio.get_running_loop().call_later(
            self.toast_seconds, self.view.dismiss_toast, toast.toast_id
        )

    async def toast_click(self, toast_id: str):
        toast = self.view.toast
        if toast is None or toast.toast_id != toast_id:
            return
        if self._toast_timer is not None:
            self._toast_timer.cancel()
            self._toast_timer = None
        self.view.dismiss_toast(toast_id)
        await self.open_chat(toast.sender_id, toast.sender_name)

    # -- send pipeline -------------------------------------------------------

    async def submit(self, text: Optional[str] = None) -> Optional[Message]:
        """
        Send the input's text to the open partner.

        Args:
            text: Current input value as typed by the user; defaults to the view's input

        Returns:
            The persisted message, or None when nothing was sent
        """
        if text is not None:
            self.view.input_value = text

        partner_id = self.partner_id
        if not partner_id:
            return None

        typed = self.view.input_value
        body = typed.strip()
        if not body:
            return None

        temp_id = f"temp-{next(self._temp_ids)}"
        self.view.append_bubble(Bubble(
            bubble_id=temp_id,
            body=body,
            time_label=format_display_time(datetime.utcnow(), self.timezone),
            mine=True,
            sending=True,
        ))
        self.view.set_input("")

        try:
            message = await self.store.create({
                "sender_id": self.user_id,
                "recipient_id": partner_id,
                "body": body,
                "is_read": False,
            })
        except StoreError as e:
            metrics_collector.message_send_failed()
            messaging_logger.error(
                "Send failed", user_id=self.user_id, partner_id=partner_id, code=e.code, error=e.message
            )
            self.view.remove_bubble(temp_id)
            if self.partner_id == partner_id:
                self.view.set_input(typed)
            self.view.alert(SEND_FAILED_ALERT)
            return None

        metrics_collector.message_sent()
        self.view.confirm_bubble(temp_id, str(message.id))
        await self._update_sidebar_preview(partner_id, body)
        return message

    # -- helpers -------------------------------------------------------------

    def _bubble_for(self, message: Message) -> Bubble:
        return Bubble(
            bubble_id=str(message.id),
            body=message.body,
            time_label=format_display_time(message.created_at, self.timezone),
            mine=message.sender_id == self.user_id,
        )

    def _name_for(self, partner_id: str) -> str:
        entry = self.view.entry(partner_id)
        if entry is not None:
            return entry.name
        if partner_id in self._profiles:
            return display_name(self._profiles[partner_id])
        return FALLBACK_PARTNER_NAME

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _mark_read(self, message_ids: Iterable[int]):
        ids: List[int] = list(message_ids)
        try:
            await self.store.update(
                and_(eq("recipient_id", self.user_id), in_("id", ids)),
                {"is_read": True},
            )
        except Exception as e:
            metrics_collector.read_receipt_failed()
            messaging_logger.warning(
                "Read receipt failed", user_id=self.user_id, message_ids=ids, error=str(e)
            )

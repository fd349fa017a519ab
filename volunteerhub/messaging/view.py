"""
Chat View

Render cache of the messaging screen. The controller mutates it; every
mutation is pushed to registered listeners as a patch carrying the rendered
HTML fragment, so a connected client can mirror the screen without
re-rendering it.

Interactive elements carry ``data-action`` attributes; the component that
renders an element is the one that handles its action.
"""

from dataclasses import dataclass
from html import escape
from typing import Any, Callable, Dict, List, Optional

from volunteerhub.messaging.conversations import Conversation

Patch = Dict[str, Any]
PatchListener = Callable[[Patch], None]

LOADING_CONVERSATIONS = "Loading conversations..."
NO_CONVERSATIONS = "No conversations yet."
CONVERSATIONS_ERROR = "Error loading chats."
LOADING_THREAD = "Loading..."
EMPTY_THREAD = "No messages yet. Say hello! \U0001f44b"
THREAD_ERROR = "Error loading messages"
SENDING_LABEL = "sending"


@dataclass
class SidebarEntry:
    partner_id: str
    name: str
    preview: str
    unread: bool = False
    active: bool = False


@dataclass
class Bubble:
    bubble_id: str
    body: str
    time_label: str
    mine: bool
    sending: bool = False


@dataclass
class Toast:
    toast_id: str
    sender_id: str
    sender_name: str
    excerpt: str


def render_sidebar_entry(entry: SidebarEntry) -> str:
    classes = "user-item active" if entry.active else "user-item"
    weight = "700" if entry.unread else "500"
    dot = '<div class="unread-dot"></div>' if entry.unread else ""
    return (
        f'<div class="{classes}" id="user-{escape(entry.partner_id)}" '
        f'data-action="open-chat" data-partner-id="{escape(entry.partner_id)}" '
        f'data-partner-name="{escape(entry.name)}">'
        f'<div class="user-avatar">{escape(entry.name[:1].upper() or "U")}</div>'
        f'<div class="user-details">'
        f'<h4 style="font-weight: {weight}">{escape(entry.name)}</h4>'
        f'<p>{escape(entry.preview)}</p>'
        f'</div>{dot}</div>'
    )


def render_bubble(bubble: Bubble) -> str:
    side = "msg-sent" if bubble.mine else "msg-received"
    state = " sending" if bubble.sending else ""
    label = f"{bubble.time_label} · {SENDING_LABEL}" if bubble.sending else bubble.time_label
    return (
        f'<div class="message-bubble {side}{state}" id="{escape(bubble.bubble_id)}">'
        f'{escape(bubble.body)}'
        f'<span class="msg-time">{escape(label)}</span>'
        f'</div>'
    )


def render_toast(toast: Toast) -> str:
    return (
        f'<div class="msg-toast" id="{escape(toast.toast_id)}" data-action="toast-click" '
        f'data-toast-id="{escape(toast.toast_id)}">'
        f'<div class="toast-title">New message from {escape(toast.sender_name)}</div>'
        f'<div class="toast-excerpt">{escape(toast.excerpt)}</div>'
        f'</div>'
    )


def render_status(text: str, error: bool = False, placeholder: bool = False) -> str:
    classes = "panel-status error" if error else "panel-status"
    marker = ' data-placeholder="true"' if placeholder else ""
    return f'<div class="{classes}"{marker}>{escape(text)}</div>'


class ChatView:
    """Screen state of one messaging page."""

    def __init__(self):
        self.sidebar: List[SidebarEntry] = []
        self.sidebar_status: Optional[str] = None
        self.bubbles: List[Bubble] = []
        self.thread_status: Optional[str] = None
        self.header_name: Optional[str] = None
        self.input_value: str = ""
        self.input_enabled: bool = False
        self.toast: Optional[Toast] = None
        self.alerts: List[str] = []
        self.redirect_location: Optional[str] = None
        self._listeners: List[PatchListener] = []

    # -- listeners -----------------------------------------------------------

    def add_listener(self, listener: PatchListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: PatchListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, patch: Patch):
        for listener in list(self._listeners):
            listener(patch)

    def _emit(self, op: str, **data):
        self._notify({"type": "patch", "op": op, **data})

    # -- sidebar -------------------------------------------------------------

    def entry(self, partner_id: str) -> Optional[SidebarEntry]:
        for entry in self.sidebar:
            if entry.partner_id == partner_id:
                return entry
        return None

    def has_conversation(self, partner_id: str) -> bool:
        return self.entry(partner_id) is not None

    def render_sidebar(self) -> str:
        if self.sidebar_status == "loading":
            return render_status(LOADING_CONVERSATIONS)
        if self.sidebar_status == "error":
            return render_status(CONVERSATIONS_ERROR, error=True)
        if not self.sidebar:
            return render_status(NO_CONVERSATIONS)
        return "".join(render_sidebar_entry(entry) for entry in self.sidebar)

    def _emit_sidebar(self):
        self._emit("sidebar", status=self.sidebar_status, html=self.render_sidebar())

    def _emit_entry(self, entry: SidebarEntry):
        self._emit("sidebar_item", partner_id=entry.partner_id, html=render_sidebar_entry(entry))

    def show_sidebar_loading(self):
        self.sidebar_status = "loading"
        self._emit_sidebar()

    def show_sidebar_error(self):
        self.sidebar = []
        self.sidebar_status = "error"
        self._emit_sidebar()

    def set_conversations(self, conversations: List[Conversation], active_id: Optional[str] = None):
        self.sidebar = [
            SidebarEntry(
                partner_id=c.partner_id,
                name=c.name,
                preview=c.last_message,
                unread=c.unread,
                active=c.partner_id == active_id,
            )
            for c in conversations
        ]
        self.sidebar_status = "ready" if self.sidebar else "empty"
        self._emit_sidebar()

    def update_preview(self, partner_id: str, text: str, unread: bool = False) -> bool:
        """Patch one entry's preview; returns False when the partner has no entry."""
        entry = self.entry(partner_id)
        if entry is None:
            return False
        entry.preview = text
        if unread:
            entry.unread = True
        self._emit_entry(entry)
        return True

    def activate(self, partner_id: str):
        """Highlight the open conversation and clear its unread mark."""
        for entry in self.sidebar:
            was = (entry.active, entry.unread)
            entry.active = entry.partner_id == partner_id
            if entry.active:
                entry.unread = False
            if (entry.active, entry.unread) != was:
                self._emit_entry(entry)

    # -- header / input ------------------------------------------------------

    def set_header(self, name: str):
        self.header_name = name
        self._emit("header", name=name, initial=(name or "U")[:1].upper())

    def enable_input(self):
        self.input_enabled = True
        self._emit("input", value=self.input_value, enabled=True)

    def set_input(self, value: str):
        self.input_value = value
        self._emit("input", value=value, enabled=self.input_enabled)

    # -- thread --------------------------------------------------------------

    def bubble(self, bubble_id: str) -> Optional[Bubble]:
        for bubble in self.bubbles:
            if bubble.bubble_id == bubble_id:
                return bubble
        return None

    def render_thread(self) -> str:
        if self.thread_status == "loading":
            return render_status(LOADING_THREAD)
        if self.thread_status == "error":
            return render_status(THREAD_ERROR, error=True)
        if not self.bubbles:
            return render_status(EMPTY_THREAD, placeholder=True)
        return "".join(render_bubble(bubble) for bubble in self.bubbles)

    def _emit_thread(self):
        self._emit("thread", status=self.thread_status, html=self.render_thread())

    def show_thread_loading(self):
        self.bubbles = []
        self.thread_status = "loading"
        self._emit_thread()

    def show_thread_error(self):
        self.bubbles = []
        self.thread_status = "error"
        self._emit_thread()

    def set_thread(self, bubbles: List[Bubble]):
        self.bubbles = list(bubbles)
        self.thread_status = "ready" if self.bubbles else "empty"
        self._emit_thread()

    def append_bubble(self, bubble: Bubble):
        # The first bubble replaces the empty-thread placeholder
        self.bubbles.append(bubble)
        self.thread_status = "ready"
        self._emit("bubble_append", bubble_id=bubble.bubble_id, html=render_bubble(bubble))

    def confirm_bubble(self, temp_id: str, bubble_id: str) -> bool:
        bubble = self.bubble(temp_id)
        if bubble is None:
            return False
        bubble.bubble_id = bubble_id
        bubble.sending = False
        self._emit("bubble_confirm", temp_id=temp_id, bubble_id=bubble_id, html=render_bubble(bubble))
        return True

    def remove_bubble(self, bubble_id: str) -> bool:
        bubble = self.bubble(bubble_id)
        if bubble is None:
            return False
        self.bubbles.remove(bubble)
        self._emit("bubble_remove", bubble_id=bubble_id)
        if not self.bubbles and self.thread_status == "ready":
            self.thread_status = "empty"
            self._emit_thread()
        return True

    # -- notifications -------------------------------------------------------

    def show_toast(self, toast: Toast):
        # Only one toast at a time
        if self.toast is not None:
            self.dismiss_toast(self.toast.toast_id)
        self.toast = toast
        self._emit("toast", toast_id=toast.toast_id, html=render_toast(toast))

    def dismiss_toast(self, toast_id: str) -> bool:
        if self.toast is None or self.toast.toast_id != toast_id:
            return False
        self.toast = None
        self._emit("toast_dismiss", toast_id=toast_id)
        return True

    def alert(self, message: str):
        self.alerts.append(message)
        self._emit("alert", message=message)

    def redirect(self, location: str):
        self.redirect_location = location
        self._notify({"type": "redirect", "location": location})


def render_page(view: ChatView) -> str:
    """Full messaging page for a first paint; live updates arrive as patches."""
    name = view.header_name or "Select a conversation"
    header = escape(name)
    initial = escape(name[:1].upper()) if view.header_name else ""
    disabled = "" if view.input_enabled else " disabled"
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="utf-8"><title>Messages - VolunteerHub</title></head>'
        '<body><div class="messages-layout">'
        f'<aside id="conversations-list">{view.render_sidebar()}</aside>'
        '<section class="chat-panel">'
        f'<header class="chat-header"><div id="chat-header-avatar">{initial}</div>'
        f'<h3 id="chat-header-name">{header}</h3></header>'
        f'<div id="messages-list">{view.render_thread() if view.thread_status else ""}</div>'
        '<form id="message-form" data-action="send">'
        f'<input id="message-input" name="body" autocomplete="off"{disabled}>'
        f'<button id="send-btn" type="submit"{disabled}>Send</button>'
        "</form></section></div></body></html>"
    )

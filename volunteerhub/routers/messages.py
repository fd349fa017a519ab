"""
Messages API Router

REST reads and writes over the message store, plus the server-rendered
messaging pages.
"""

from dataclasses import asdict
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from volunteerhub.config import LOGIN_PATH, MESSAGES_PATH
from volunteerhub.messaging.controller import (
    ConversationViewController,
    fetch_conversations,
    thread_filter,
)
from volunteerhub.messaging.timefmt import format_display_time
from volunteerhub.messaging.view import render_page
from volunteerhub.middleware.auth import CurrentUser, get_current_user, get_optional_user
from volunteerhub.models.message import Message
from volunteerhub.realtime.filters import and_, eq, in_
from volunteerhub.schemas.message import (
    ConversationItem,
    ConversationListResponse,
    MessageCreate,
    MessageResponse,
    ThreadResponse,
)
from volunteerhub.services.message_store import MessageStore, StoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])
pages_router = APIRouter(tags=["pages"])


def get_store(request: Request) -> MessageStore:
    """Dependency returning the application's message store."""
    return request.app.state.store


def to_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        body=message.body,
        created_at=message.created_at,
        is_read=message.is_read,
        display_time=format_display_time(message.created_at),
    )


@router.get("/messages/conversations", response_model=ConversationListResponse)
async def list_conversations(
    recipient_id: Optional[str] = None,
    name: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    store: MessageStore = Depends(get_store),
):
    """
    Conversation list of the current user, most recent first.

    Args:
        recipient_id: Partner requested by navigation; a placeholder is added if no thread exists
        name: Display name for that placeholder
    """
    try:
        conversations, _ = await fetch_conversations(store, current_user.user_id, recipient_id, name)
    except StoreError as e:
        logger.error(f"Error fetching conversations: {e.message}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading chats."
        )

    return ConversationListResponse(
        conversations=[ConversationItem(**asdict(c)) for c in conversations]
    )


@router.get("/messages/thread/{partner_id}", response_model=ThreadResponse)
async def get_thread(
    partner_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: MessageStore = Depends(get_store),
):
    """Both directions of the thread with ``partner_id``, oldest first. Marks delivered messages read."""
    user_id = current_user.user_id
    try:
        messages = await store.read_many(thread_filter(user_id, partner_id), order_by="created_at")
    except StoreError as e:
        logger.error(f"Error fetching thread: {e.message}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading messages"
        )

    unread_ids = [m.id for m in messages if m.recipient_id == user_id and not m.is_read]
    if unread_ids:
        try:
            await store.update(and_(eq("recipient_id", user_id), in_("id", unread_ids)), {"is_read": True})
        except StoreError as e:
            logger.warning(f"Read receipt failed for {len(unread_ids)} message(s): {e.message}")

    return ThreadResponse(partner_id=partner_id, messages=[to_response(m) for m in messages])


@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: MessageCreate,
    current_user: CurrentUser = Depends(get_current_user),
    store: MessageStore = Depends(get_store),
):
    """Send a message from the current user."""
    body = request.body.strip()
    if not body:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message body is empty"
        )

    try:
        message = await store.create({
            "sender_id": current_user.user_id,
            "recipient_id": request.recipient_id,
            "body": body,
            "is_read": False,
        })
    except StoreError as e:
        logger.error(f"Send error: {e.message}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send message."
        )

    logger.info(f"Message {message.id} sent from {current_user.user_id} to {request.recipient_id}")
    return to_response(message)


async def _render_messages_page(request: Request, recipient_id: Optional[str], name: Optional[str]):
    user = await get_optional_user(request)
    if user is None:
        return RedirectResponse(LOGIN_PATH, status_code=status.HTTP_303_SEE_OTHER)

    controller = ConversationViewController(
        request.app.state.store, request.app.state.feed, user.user_id
    )
    try:
        await controller.load_conversations(recipient_id, name)
    finally:
        await controller.close()
    return HTMLResponse(render_page(controller.view))


@pages_router.get(MESSAGES_PATH, response_class=HTMLResponse)
async def messages_page(request: Request):
    """Messaging page with the conversation sidebar."""
    return await _render_messages_page(request, None, None)


@pages_router.get(MESSAGES_PATH + "/chat", response_class=HTMLResponse)
async def chat_page(request: Request, recipient_id: Optional[str] = None, name: Optional[str] = None):
    """Messaging page with one conversation open; without a partner, fall back to the list."""
    if not recipient_id:
        return RedirectResponse(MESSAGES_PATH, status_code=status.HTTP_303_SEE_OTHER)
    return await _render_messages_page(request, recipient_id, name)

"""Message schemas for the REST and WebSocket surfaces."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    """Request body for sending a message."""
    recipient_id: str = Field(..., min_length=1, max_length=64)
    body: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    """A stored message."""
    id: int
    sender_id: str
    recipient_id: str
    body: str
    created_at: datetime
    is_read: bool
    display_time: str

    class Config:
        from_attributes = True


class ConversationItem(BaseModel):
    """One conversation in the sidebar list."""
    partner_id: str
    name: str
    last_message: str
    timestamp: datetime
    unread: bool
    is_new: bool = False


class ConversationListResponse(BaseModel):
    conversations: List[ConversationItem]


class ThreadResponse(BaseModel):
    partner_id: str
    messages: List[MessageResponse]


class WsInbound(BaseModel):
    """Client -> server frame on the messaging socket."""
    type: Literal["open_chat", "submit", "toast_click", "ping"]
    partner_id: Optional[str] = None
    partner_name: Optional[str] = None
    body: Optional[str] = None
    toast_id: Optional[str] = None


"""
Message Model

A direct message between two users. Messages are immutable once created
except for ``is_read``, which the recipient flips from false to true once.
"""

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import Text


class Message(SQLModel, table=True):
    """
    Direct message between a sender and a recipient.

    ``created_at`` is stored as UTC without a zone offset.
    """
    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    sender_id: str = Field(index=True, max_length=64)
    recipient_id: str = Field(index=True, max_length=64)
    body: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    is_read: bool = Field(default=False, index=True)

    def partner_of(self, user_id: str) -> str:
        """Return the other participant relative to ``user_id``."""
        return self.recipient_id if self.sender_id == user_id else self.sender_id

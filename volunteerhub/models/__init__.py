"""SQLModel tables owned by the messaging service."""
from .message import Message
from .user import User

__all__ = ["Message", "User"]

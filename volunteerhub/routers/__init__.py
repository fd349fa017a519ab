"""Routers package for the messaging service."""

from .messages import router as messages_router, pages_router
from .ws import router as ws_router

__all__ = ["messages_router", "pages_router", "ws_router"]

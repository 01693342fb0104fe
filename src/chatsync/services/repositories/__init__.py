"""Repository pattern for chat data access."""

from .chat_repository import ChatRepository

__all__ = ["ChatRepository"]

"""HTTP client for the message functions (send, edit, delete)."""

from .client import ChatApiClient

__all__ = ["ChatApiClient"]

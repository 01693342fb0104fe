"""
chatsync Entity Models

- Sessions: direct and group conversation containers
- Messages: chat messages with media and shared resources
- Resources: tagged pointers to notes, documents, recordings and posts
- Events: realtime change events, subscription topics and UI notices
"""

from .events import MESSAGES_TABLE, SESSIONS_TABLE, ChangeEvent, Notice, SubscriptionTopic
from .message import ChatMessage, DeliveryState, MediaRef, SendRequest, SenderInfo
from .resource import EnrichedResource, ResourceLink, ResourceRef, ResourceType
from .session import ChatSession, MessagePreview, Participant, SessionType

__all__ = [
    "MESSAGES_TABLE",
    "SESSIONS_TABLE",
    "ChangeEvent",
    "ChatMessage",
    "ChatSession",
    "DeliveryState",
    "EnrichedResource",
    "MediaRef",
    "MessagePreview",
    "Notice",
    "Participant",
    "ResourceLink",
    "ResourceRef",
    "ResourceType",
    "SendRequest",
    "SenderInfo",
    "SessionType",
    "SubscriptionTopic",
]

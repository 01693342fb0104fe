"""chatsync - client-side synchronization engine for direct and group chat."""

from .errors import (
    ChatSyncError,
    NoActiveSessionError,
    ResourceUnavailableError,
    SendFailedError,
    SigningError,
    SubscriptionDroppedError,
    TransientServiceError,
)
from .models.entities import (
    ChangeEvent,
    ChatMessage,
    ChatSession,
    DeliveryState,
    EnrichedResource,
    MediaRef,
    Notice,
    ResourceRef,
    ResourceType,
    SendRequest,
    SubscriptionTopic,
)
from .services.chat import (
    ChangeHandlers,
    ChatDataSource,
    ChatSyncEngine,
    MessageSender,
    RealtimeTransport,
    ResourceResolver,
    Subscription,
    UrlSigner,
    create_engine,
)
from .settings import Settings, settings

__version__ = "0.1.0"

__all__ = [
    "ChangeEvent",
    "ChangeHandlers",
    "ChatDataSource",
    "ChatMessage",
    "ChatSession",
    "ChatSyncEngine",
    "ChatSyncError",
    "DeliveryState",
    "EnrichedResource",
    "MediaRef",
    "MessageSender",
    "NoActiveSessionError",
    "Notice",
    "RealtimeTransport",
    "ResourceRef",
    "ResourceResolver",
    "ResourceType",
    "ResourceUnavailableError",
    "SendFailedError",
    "SendRequest",
    "Settings",
    "SigningError",
    "Subscription",
    "SubscriptionDroppedError",
    "SubscriptionTopic",
    "TransientServiceError",
    "UrlSigner",
    "create_engine",
    "settings",
]

"""
Chat synchronization core.

- ChatSyncEngine: facade owning the session directory and the active session
- MessageStore: ordered, deduplicated per-session timeline
- IngestionBatcher / MessageHydrator: batched realtime ingestion
- ResourceEnricher: resource previews and signed URLs
- ReadStateTracker: unread counters and read marks
- ManagedSubscription: realtime channel handle with resubscription
"""

from .directory import SessionDirectory
from .engine import ActiveSession, ChatSyncEngine
from .enricher import ResourceEnricher, can_display_as_text
from .factory import create_engine
from .ingestion import DebounceTimer, IngestionBatcher, MessageHydrator
from .protocols import (
    ChangeHandlers,
    ChatDataSource,
    MessageSender,
    RealtimeTransport,
    ResourceResolver,
    Subscription,
    UrlSigner,
)
from .read_state import ReadStateChange, ReadStateTracker
from .sender import OptimisticSendCoordinator
from .store import MessageStore
from .subscription import ManagedSubscription

__all__ = [
    "ActiveSession",
    "ChangeHandlers",
    "ChatDataSource",
    "ChatSyncEngine",
    "DebounceTimer",
    "IngestionBatcher",
    "ManagedSubscription",
    "MessageHydrator",
    "MessageSender",
    "MessageStore",
    "OptimisticSendCoordinator",
    "ReadStateChange",
    "ReadStateTracker",
    "RealtimeTransport",
    "ResourceEnricher",
    "ResourceResolver",
    "SessionDirectory",
    "Subscription",
    "UrlSigner",
    "can_display_as_text",
    "create_engine",
]

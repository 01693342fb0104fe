"""
Error taxonomy for the chat synchronization engine.

- Transient service failures (fetch/send/subscribe) surface to the UI as notices
- Missing or inaccessible referents degrade to a per-resource error marker
- Duplicate and out-of-order events are never errors
- Dropped subscriptions are retried with backoff
"""


class ChatSyncError(Exception):
    """Base class for chatsync errors."""


class TransientServiceError(ChatSyncError):
    """A collaborator call (database, API, storage, transport) failed."""


class SendFailedError(TransientServiceError):
    """The send operation was rejected or could not be completed."""


class SigningError(TransientServiceError):
    """A signed URL could not be generated."""


class SubscriptionDroppedError(TransientServiceError):
    """A realtime channel stopped delivering events."""


class ResourceUnavailableError(ChatSyncError):
    """A shared resource was deleted or the caller lacks access to it."""

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} {resource_id} not found or access denied")


class NoActiveSessionError(ChatSyncError):
    """A session-scoped operation was called with no active session."""

"""
Collaborator contracts consumed by the chat synchronization engine.

The engine never talks to a database, HTTP API, storage service or realtime
transport directly; it depends on these protocols. ChatRepository,
ChatApiClient and S3Provider implement the first four; the realtime
transport is provided by the embedding application.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from ...models.entities import (
    ChangeEvent,
    ChatMessage,
    ChatSession,
    MediaRef,
    ResourceLink,
    ResourceType,
    SendRequest,
    SubscriptionTopic,
)

EventCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
DropCallback = Callable[[Optional[BaseException]], Union[None, Awaitable[None]]]


class ChatDataSource(Protocol):
    async def fetch_sessions_for_user(self, user_id: str) -> list[ChatSession]: ...

    async def fetch_session_messages(self, session_id: str) -> list[ChatMessage]: ...

    async def fetch_messages_batch(self, ids: list[str]) -> list[ChatMessage]: ...

    async def fetch_media(self, message_ids: list[str]) -> list[MediaRef]: ...

    async def fetch_resource_links(self, message_ids: list[str]) -> list[ResourceLink]: ...

    async def mark_session_read(self, session_id: str, user_id: str) -> None: ...


class ResourceResolver(Protocol):
    async def resolve_resource(
        self, resource_type: ResourceType, resource_id: str
    ) -> Optional[dict[str, Any]]: ...


class UrlSigner(Protocol):
    async def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str: ...


class MessageSender(Protocol):
    async def send_message(self, request: SendRequest) -> ChatMessage: ...

    async def edit_message(self, message_id: str, content: str) -> ChatMessage: ...

    async def delete_message(self, message_id: str) -> None: ...


@dataclass
class ChangeHandlers:
    """Independent callbacks for row-level changes on one topic."""

    on_insert: EventCallback
    on_update: EventCallback
    on_delete: EventCallback
    # Invoked by the transport when the channel dies (network loss, server close)
    on_drop: Optional[DropCallback] = None


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class RealtimeTransport(Protocol):
    async def subscribe(
        self, topic: SubscriptionTopic, handlers: ChangeHandlers
    ) -> Subscription: ...

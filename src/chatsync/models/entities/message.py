"""
ChatMessage - a single message in a direct or group chat session.

Messages arrive from three sources: an optimistic local insert, the record
returned by the send operation, and realtime change events. All three
converge on one entry per logical message, identified by `id` and, for
messages sent from this client, by the `client_id` correlation id.

Lifecycle (delivery_state):
- optimistic -> confirmed (send succeeded)
- optimistic -> failed (send error, retryable)
- <absent> -> confirmed (arrived via realtime)
Edits set `is_edited`; deletes remove the entry.
"""

from enum import Enum
from typing import Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core import CoreModel
from .resource import EnrichedResource, ResourceRef


_ENRICHED_FIELDS = set(EnrichedResource.model_fields) - set(ResourceRef.model_fields)


class DeliveryState(str, Enum):
    OPTIMISTIC = "optimistic"
    FAILED = "failed"
    CONFIRMED = "confirmed"


class SenderInfo(BaseModel):
    """Public profile of the message author."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, UUID) else value


class MediaRef(BaseModel):
    """Uploaded media attached to a message."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[str] = None
    message_id: Optional[str] = None
    type: Literal["image", "video", "document"] = "document"
    url: str
    filename: str
    size_bytes: int = 0
    mime_type: Optional[str] = None

    @field_validator("id", "message_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, UUID) else value


class ChatMessage(CoreModel):
    """
    Chat message entity.

    Immutable: every state change produces a new instance through
    `model_copy(update=...)` so snapshots handed to the UI never change
    underneath it.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    session_id: str = Field(..., description="Owning chat session")
    sender_id: str = Field(..., description="Author user id")
    sender: Optional[SenderInfo] = Field(default=None, description="Author profile")
    content: Optional[str] = Field(
        default=None, description="Message text (None if only media/resources)"
    )
    is_edited: bool = Field(default=False, description="Content changed after sending")
    is_read: bool = Field(default=False, description="Read by the recipient(s)")
    media: list[MediaRef] = Field(default_factory=list, description="Attached media")
    resources: list[Union[EnrichedResource, ResourceRef]] = Field(
        default_factory=list, description="Shared resources (enriched when available)"
    )
    client_id: Optional[str] = Field(
        default=None, description="Client-generated correlation id for optimistic sends"
    )
    delivery_state: DeliveryState = Field(
        default=DeliveryState.CONFIRMED, description="Optimistic/failed/confirmed"
    )

    @field_validator("session_id", "sender_id", "client_id", mode="before")
    @classmethod
    def _stringify_refs(cls, value: Any) -> Any:
        return str(value) if isinstance(value, UUID) else value

    @field_validator("is_edited", "is_read", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("resources", mode="before")
    @classmethod
    def _tag_resources(cls, value: Any) -> Any:
        # Bare pointers must stay ResourceRef so they are picked up for enrichment
        if not isinstance(value, list):
            return value
        return [
            (EnrichedResource if _ENRICHED_FIELDS & item.keys() else ResourceRef).model_validate(item)
            if isinstance(item, dict)
            else item
            for item in value
        ]

    @property
    def sort_key(self) -> tuple:
        return (self.created_at, self.id)

    @property
    def is_provisional(self) -> bool:
        return self.delivery_state is not DeliveryState.CONFIRMED

    @property
    def has_unenriched_resources(self) -> bool:
        return any(not isinstance(r, EnrichedResource) for r in self.resources)


class SendRequest(BaseModel):
    """Payload handed to the send operation."""

    session_id: str
    content: Optional[str] = None
    media: list[MediaRef] = Field(default_factory=list)
    resources: list[ResourceRef] = Field(default_factory=list)
    client_id: str

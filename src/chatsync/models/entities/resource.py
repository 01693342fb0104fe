"""
Resource references shared inside chat messages.

A message can point at notes, documents, class recordings or posts. The
pointer (ResourceRef) is what gets stored with the message; the preview
(EnrichedResource) is computed on demand and never persisted.

Key Fields:
- resource_id / resource_type: the tagged pointer
- signed_url: time-limited link for private storage objects
- display_as_text: the UI can render the content inline instead of
  offering a download
- error: set when the referent is gone or not accessible
"""

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResourceType(str, Enum):
    """Kinds of resources that can be attached to a message."""

    NOTE = "note"
    DOCUMENT = "document"
    CLASS_RECORDING = "class_recording"
    POST = "post"

    @property
    def label(self) -> str:
        return {
            ResourceType.NOTE: "Note",
            ResourceType.DOCUMENT: "Document",
            ResourceType.CLASS_RECORDING: "Recording",
            ResourceType.POST: "Post",
        }[self]


class ResourceRef(BaseModel):
    """Unresolved pointer to a shared resource."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    resource_id: str = Field(..., description="Identifier of the referenced record")
    resource_type: ResourceType = Field(..., description="Kind of the referenced record")
    message_id: Optional[str] = Field(
        default=None, description="Message the pointer is attached to"
    )

    @field_validator("resource_id", "message_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        return value

    @property
    def key(self) -> tuple[str, str]:
        return (self.resource_type.value, self.resource_id)


class ResourceLink(ResourceRef):
    """Resource-link row as returned by the side fetch (always tied to a message)."""

    message_id: str


class EnrichedResource(ResourceRef):
    """
    Resource pointer plus hydrated preview.

    Either carries the preview payload or an error marker; never both
    a signed URL and an error.
    """

    title: Optional[str] = Field(default=None, description="Display title")
    preview_content: Optional[str] = Field(
        default=None, description="Extracted text or content preview"
    )
    file_url: Optional[str] = Field(
        default=None, description="Stored file location (may be private)"
    )
    file_type: Optional[str] = Field(default=None, description="MIME type of the file")
    signed_url: Optional[str] = Field(
        default=None, description="Time-limited link to the private storage object"
    )
    display_as_text: bool = Field(
        default=False, description="Content can be rendered inline as text"
    )
    associated_document: Optional[dict[str, Any]] = Field(
        default=None, description="Document wrapped by a note, if any"
    )
    details: dict[str, Any] = Field(
        default_factory=dict, description="Remaining type-specific fields"
    )
    error: Optional[str] = Field(
        default=None, description="Set when the referent could not be resolved"
    )

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def unavailable(cls, ref: ResourceRef) -> "EnrichedResource":
        """Error marker for a deleted or inaccessible referent."""
        return cls(
            resource_id=ref.resource_id,
            resource_type=ref.resource_type,
            message_id=ref.message_id,
            error=f"{ref.resource_type.label} not found or access denied",
        )

"""
ChatSession - a direct or group conversation container.

Direct sessions have exactly two user participants; group sessions have
exactly one group participant. Sessions are created externally (first
message between two users, group creation) and never deleted here.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core import CoreModel, as_utc


class SessionType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class Participant(BaseModel):
    """User or group taking part in a session."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["user", "group"]
    id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, UUID) else value


class MessagePreview(BaseModel):
    """Short view of the newest message in a session."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    message_id: str
    sender_id: str
    content: Optional[str] = None
    created_at: datetime

    @field_validator("message_id", "sender_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, UUID) else value

    @field_validator("created_at", mode="after")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class ChatSession(CoreModel):
    """Chat session with unread counter and last-message preview."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    session_type: SessionType = Field(..., description="direct or group")
    participants: list[Participant] = Field(
        default_factory=list, description="Two users (direct) or one group (group)"
    )
    last_message_preview: Optional[MessagePreview] = Field(
        default=None, description="Newest message in the session"
    )
    last_message_at: Optional[datetime] = Field(
        default=None, description="Timestamp of the newest message"
    )
    unread_count: int = Field(default=0, ge=0, description="Unread messages for the user")

    @field_validator("last_message_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else as_utc(value)

    @model_validator(mode="after")
    def _check_participants(self) -> "ChatSession":
        kinds = [p.kind for p in self.participants]
        if self.session_type is SessionType.DIRECT and kinds != ["user", "user"]:
            raise ValueError("direct sessions need exactly two user participants")
        if self.session_type is SessionType.GROUP and kinds != ["group"]:
            raise ValueError("group sessions need exactly one group participant")
        return self

    def counterpart(self, user_id: str) -> Optional[Participant]:
        """The other user of a direct session, or the group of a group session."""
        if self.session_type is SessionType.GROUP:
            return self.participants[0]
        for participant in self.participants:
            if participant.id != user_id:
                return participant
        return None

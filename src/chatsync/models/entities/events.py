"""
Realtime change events, subscription topics and UI notices.

ChangeEvent mirrors the row-level payload delivered by the realtime
transport (Postgres logical replication style): the event type, the table,
and the new/old row images.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

MESSAGES_TABLE = "social_chat_messages"
SESSIONS_TABLE = "social_chat_sessions"


class ChangeEvent(BaseModel):
    """Row-level change delivered by the realtime transport."""

    event_type: Literal["INSERT", "UPDATE", "DELETE"]
    table: str
    new: dict[str, Any] = Field(default_factory=dict)
    old: dict[str, Any] = Field(default_factory=dict)

    @property
    def record_id(self) -> Optional[str]:
        record_id = self.new.get("id") or self.old.get("id")
        return None if record_id is None else str(record_id)


class SubscriptionTopic(BaseModel):
    """Filter for a realtime subscription: rows of `table` where `column` = `value`."""

    table: str
    column: str
    value: str

    @property
    def name(self) -> str:
        return f"{self.table}:{self.column}={self.value}"

    @classmethod
    def for_session(cls, session_id: str) -> "SubscriptionTopic":
        return cls(table=MESSAGES_TABLE, column="session_id", value=session_id)

    @classmethod
    def for_user(cls, user_id: str) -> "SubscriptionTopic":
        return cls(table=SESSIONS_TABLE, column="participant_id", value=user_id)


class Notice(BaseModel):
    """Non-fatal notification surfaced to the UI (the toast layer)."""

    level: Literal["info", "warning", "error"] = "error"
    message: str
    session_id: Optional[str] = None
    client_id: Optional[str] = None

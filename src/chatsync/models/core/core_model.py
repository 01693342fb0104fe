"""
CoreModel - Base model for all chatsync entities.

All entities (sessions, messages, resources) inherit from CoreModel,
which provides:
- Identity (id - string, assigned by the backing store or the client)
- Temporal tracking (created_at, updated_at)
- Flexible metadata (metadata dict)

Timestamps are always timezone-aware UTC. Rows coming from stores that
return naive datetimes are interpreted as UTC so that ordering comparisons
never mix naive and aware values.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CoreModel(BaseModel):
    """
    Base model for all chatsync entities.

    Provides system-level fields for:
    - Identity management (id)
    - Temporal tracking (created_at, updated_at)
    - Flexible metadata storage (metadata)
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Unique identifier")
    created_at: datetime = Field(
        default_factory=utcnow, description="Entity creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=utcnow, description="Last update timestamp"
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Flexible metadata storage"
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        return value

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


def optional_str(value: Optional[Any]) -> Optional[str]:
    """Stringify UUIDs and other ids coming from database rows."""
    return None if value is None else str(value)

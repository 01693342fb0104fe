"""ChatRepository - sessions, messages, side rows and shared resources from Postgres."""

from typing import Any, Optional

from loguru import logger

from chatsync.models.core import optional_str
from chatsync.models.entities import (
    ChatMessage,
    ChatSession,
    MediaRef,
    MessagePreview,
    Participant,
    ResourceLink,
    ResourceType,
    SenderInfo,
    SessionType,
)
from chatsync.services.postgres import PostgresService

_MESSAGE_COLUMNS = """
    m.id, m.session_id, m.sender_id, m.content, m.created_at, m.updated_at,
    m.is_edited, m.is_read,
    u.username AS sender_username, u.display_name AS sender_display_name,
    u.avatar_url AS sender_avatar_url
"""

# Columns returned per resource type; the lookup is keyed on the tagged
# pointer so every ResourceType needs an entry.
_RESOURCE_QUERIES: dict[ResourceType, str] = {
    ResourceType.NOTE: """
        SELECT id, title, content, category, tags, created_at, updated_at,
               ai_summary, document_id
        FROM notes WHERE id = $1
    """,
    ResourceType.DOCUMENT: """
        SELECT id, title, file_name, file_type, file_size, file_url,
               content_extracted, processing_status
        FROM documents WHERE id = $1
    """,
    ResourceType.CLASS_RECORDING: """
        SELECT id, title, subject, audio_url, duration, date, summary, transcript
        FROM class_recordings WHERE id = $1
    """,
    ResourceType.POST: """
        SELECT p.id, p.content, p.privacy, p.created_at, p.author_id,
               u.display_name AS author_display_name, u.avatar_url AS author_avatar_url
        FROM social_posts p
        LEFT JOIN social_users u ON u.id = p.author_id
        WHERE p.id = $1
    """,
}


class ChatRepository:
    """
    Read side of the chat tables plus read marking.

    Implements the ChatDataSource and ResourceResolver protocols.
    """

    def __init__(self, db: PostgresService):
        self.db = db
        self.sessions_table = "social_chat_sessions"
        self.messages_table = "social_chat_messages"
        self.media_table = "social_chat_message_media"
        self.resources_table = "social_chat_message_resources"

    async def fetch_sessions_for_user(self, user_id: str) -> list[ChatSession]:
        """
        Get direct sessions involving the user and group sessions of the user's groups.

        Args:
            user_id: Current user

        Returns:
            Sessions ordered by newest activity first
        """
        query = f"""
            SELECT s.id, s.user_id1, s.user_id2, s.group_id,
                   s.last_message_at, s.created_at,
                   COALESCE(s.updated_at, s.created_at) AS updated_at,
                   u1.display_name AS user1_display_name, u1.avatar_url AS user1_avatar_url,
                   u2.display_name AS user2_display_name, u2.avatar_url AS user2_avatar_url,
                   g.name AS group_name, g.avatar_url AS group_avatar_url,
                   lm.id AS last_message_id, lm.sender_id AS last_message_sender_id,
                   lm.content AS last_message_content,
                   lm.created_at AS last_message_created_at,
                   (
                       SELECT count(*) FROM {self.messages_table} um
                       WHERE um.session_id = s.id
                         AND um.sender_id <> $1
                         AND NOT COALESCE(um.is_read, false)
                   ) AS unread_count
            FROM {self.sessions_table} s
            LEFT JOIN social_users u1 ON u1.id = s.user_id1
            LEFT JOIN social_users u2 ON u2.id = s.user_id2
            LEFT JOIN social_groups g ON g.id = s.group_id
            LEFT JOIN LATERAL (
                SELECT id, sender_id, content, created_at
                FROM {self.messages_table}
                WHERE session_id = s.id
                ORDER BY created_at DESC
                LIMIT 1
            ) lm ON true
            WHERE s.user_id1 = $1
               OR s.user_id2 = $1
               OR s.group_id IN (
                   SELECT group_id FROM social_group_members WHERE user_id = $1
               )
            ORDER BY s.last_message_at DESC NULLS LAST, s.created_at DESC
        """
        rows = await self.db.fetch(query, user_id)
        sessions = []
        for row in rows:
            try:
                sessions.append(self._session_from_row(row))
            except ValueError as e:
                logger.warning(f"Skipping malformed chat session {row.get('id')}: {e}")
        logger.debug(f"Fetched {len(sessions)} chat sessions for user {user_id}")
        return sessions

    async def fetch_session_messages(self, session_id: str) -> list[ChatMessage]:
        """Get all messages of a session in chronological order (no side rows)."""
        query = f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM {self.messages_table} m
            LEFT JOIN social_users u ON u.id = m.sender_id
            WHERE m.session_id = $1
            ORDER BY m.created_at ASC, m.id ASC
        """
        rows = await self.db.fetch(query, session_id)
        return [self._message_from_row(row) for row in rows]

    async def fetch_messages_batch(self, ids: list[str]) -> list[ChatMessage]:
        """Get message rows with sender info for a batch of ids, in one query."""
        if not ids:
            return []
        query = f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM {self.messages_table} m
            LEFT JOIN social_users u ON u.id = m.sender_id
            WHERE m.id = ANY($1::uuid[])
            ORDER BY m.created_at ASC, m.id ASC
        """
        rows = await self.db.fetch(query, ids)
        return [self._message_from_row(row) for row in rows]

    async def fetch_media(self, message_ids: list[str]) -> list[MediaRef]:
        """Get media rows for a batch of messages."""
        if not message_ids:
            return []
        query = f"""
            SELECT id, message_id, type, url, filename, size_bytes, mime_type
            FROM {self.media_table}
            WHERE message_id = ANY($1::uuid[])
            ORDER BY created_at ASC
        """
        rows = await self.db.fetch(query, message_ids)
        return [MediaRef.model_validate(row) for row in rows]

    async def fetch_resource_links(self, message_ids: list[str]) -> list[ResourceLink]:
        """Get resource-link rows for a batch of messages."""
        if not message_ids:
            return []
        query = f"""
            SELECT message_id, resource_id, resource_type
            FROM {self.resources_table}
            WHERE message_id = ANY($1::uuid[])
            ORDER BY created_at ASC
        """
        rows = await self.db.fetch(query, message_ids)
        links = []
        for row in rows:
            try:
                links.append(ResourceLink.model_validate(row))
            except ValueError as e:
                logger.warning(f"Skipping unknown resource link on message {row.get('message_id')}: {e}")
        return links

    async def resolve_resource(
        self, resource_type: ResourceType, resource_id: str
    ) -> Optional[dict[str, Any]]:
        """
        Look up the record behind a resource pointer.

        Returns:
            Row dict, or None when the record is gone or hidden by row-level security
        """
        row = await self.db.fetchrow(_RESOURCE_QUERIES[resource_type], resource_id)
        if row is None:
            return None
        return {key: optional_str(value) if key.endswith("id") else value for key, value in row.items()}

    async def mark_session_read(self, session_id: str, user_id: str) -> None:
        """Mark every message from other senders in the session as read."""
        await self.db.execute(
            "SELECT mark_session_messages_read($1::uuid, $2::uuid)", session_id, user_id
        )

    @staticmethod
    def _message_from_row(row: dict[str, Any]) -> ChatMessage:
        sender = None
        if row.get("sender_id") is not None:
            sender = SenderInfo(
                id=row["sender_id"],
                username=row.get("sender_username"),
                display_name=row.get("sender_display_name"),
                avatar_url=row.get("sender_avatar_url"),
            )
        return ChatMessage.model_validate(
            {
                **row,
                "updated_at": row.get("updated_at") or row["created_at"],
                "sender": sender,
            }
        )

    @staticmethod
    def _session_from_row(row: dict[str, Any]) -> ChatSession:
        if row.get("group_id") is not None:
            session_type = SessionType.GROUP
            participants = [
                Participant(
                    kind="group",
                    id=row["group_id"],
                    display_name=row.get("group_name"),
                    avatar_url=row.get("group_avatar_url"),
                )
            ]
        else:
            session_type = SessionType.DIRECT
            participants = [
                Participant(
                    kind="user",
                    id=row[f"user_id{n}"],
                    display_name=row.get(f"user{n}_display_name"),
                    avatar_url=row.get(f"user{n}_avatar_url"),
                )
                for n in (1, 2)
            ]

        preview = None
        if row.get("last_message_id") is not None:
            preview = MessagePreview(
                message_id=row["last_message_id"],
                sender_id=row["last_message_sender_id"],
                content=row.get("last_message_content"),
                created_at=row["last_message_created_at"],
            )

        return ChatSession(
            id=row["id"],
            session_type=session_type,
            participants=participants,
            last_message_preview=preview,
            last_message_at=row.get("last_message_at") or (preview.created_at if preview else None),
            unread_count=row.get("unread_count") or 0,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

"""
ReadStateTracker - single source of truth for read state.

`mark_read` zeroes the local unread counter before the server round-trip
starts and notifies observers (SessionDirectory, the active MessageStore).
A failed server call is logged and remembered for an opportunistic retry;
the local zeroing is never rolled back.
"""

from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from pydantic import BaseModel

from ...models.core import utcnow
from ...models.entities import ChatSession
from .protocols import ChatDataSource


class ReadStateChange(BaseModel):
    """Published to observers whenever a session's unread count changes."""

    session_id: str
    reader_id: str
    unread_count: int
    read_at: Optional[datetime] = None


ReadStateObserver = Callable[[ReadStateChange], None]


class ReadStateTracker:
    """Owns unread counters and read marks for the current user."""

    def __init__(self, data_source: ChatDataSource, user_id: str):
        self.data_source = data_source
        self.user_id = user_id
        self._unread: dict[str, int] = {}
        self._read_at: dict[str, datetime] = {}
        self._observers: list[ReadStateObserver] = []
        self.failed_sessions: set[str] = set()

    def add_observer(self, observer: ReadStateObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: ReadStateObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def unread_count(self, session_id: str) -> int:
        return self._unread.get(session_id, 0)

    def _publish(self, change: ReadStateChange) -> None:
        for observer in list(self._observers):
            observer(change)

    async def mark_read(self, session_id: str) -> bool:
        """
        Mark a session read for the current user.

        The local counter is zeroed synchronously; the server call follows.

        Returns:
            True if the server accepted the read mark
        """
        read_at = utcnow()
        self._unread[session_id] = 0
        self._read_at[session_id] = read_at
        self._publish(
            ReadStateChange(
                session_id=session_id, reader_id=self.user_id, unread_count=0, read_at=read_at
            )
        )

        try:
            await self.data_source.mark_session_read(session_id, self.user_id)
        except Exception as e:
            logger.warning(f"Failed to mark session {session_id} read (will retry later): {e}")
            self.failed_sessions.add(session_id)
            return False

        self.failed_sessions.discard(session_id)
        logger.debug(f"Marked session {session_id} read")
        return True

    async def retry_failed(self) -> int:
        """Re-issue read marks that failed earlier; returns how many succeeded."""
        succeeded = 0
        for session_id in list(self.failed_sessions):
            try:
                await self.data_source.mark_session_read(session_id, self.user_id)
            except Exception as e:
                logger.warning(f"Retry of read mark for session {session_id} failed: {e}")
                continue
            self.failed_sessions.discard(session_id)
            succeeded += 1
        return succeeded

    def reconcile(self, session: ChatSession) -> int:
        """
        Effective unread count for a freshly fetched session.

        The server count wins, except when every message it could be counting
        predates a local read mark whose server call has not landed yet.
        """
        count = max(0, session.unread_count)
        read_at = self._read_at.get(session.id)
        if read_at is not None and count:
            last = session.last_message_at
            if last is not None and last <= read_at:
                count = 0
        self._unread[session.id] = count
        return count

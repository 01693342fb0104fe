"""
SessionDirectory - the current user's chat sessions.

The list is always replaced wholesale by `refresh()` rather than patched
incrementally: session-table change events only trigger a (debounced)
refresh. A refresh that completes after a newer one started is dropped so
the directory never goes backwards. Fetch failures keep the last-known-good
list.
"""

from typing import Callable, Optional

from loguru import logger

from ...models.entities import ChangeEvent, ChatSession, MessagePreview, Notice, SubscriptionTopic
from ...settings import SyncSettings, settings
from .ingestion import DebounceTimer
from .protocols import ChangeHandlers, ChatDataSource, RealtimeTransport
from .read_state import ReadStateChange, ReadStateTracker
from .subscription import ManagedSubscription


class SessionDirectory:
    """Session list with unread counts and last-message previews."""

    def __init__(
        self,
        user_id: str,
        data_source: ChatDataSource,
        transport: RealtimeTransport,
        read_state: ReadStateTracker,
        sync_settings: Optional[SyncSettings] = None,
        on_notice: Optional[Callable[[Notice], None]] = None,
    ):
        self.user_id = user_id
        self.data_source = data_source
        self.transport = transport
        self.read_state = read_state
        self.settings = sync_settings or settings.sync
        self.on_notice = on_notice
        self._sessions: list[ChatSession] = []
        self._generation = 0
        self._applied_generation = 0
        self._subscription: Optional[ManagedSubscription] = None
        self._timer = DebounceTimer(
            self.settings.session_refresh_debounce, self.refresh, name=f"sessions:{user_id}"
        )
        self.read_state.add_observer(self._on_read_state)

    def sessions(self) -> tuple[ChatSession, ...]:
        return tuple(self._sessions)

    def get(self, session_id: str) -> Optional[ChatSession]:
        return next((s for s in self._sessions if s.id == session_id), None)

    def unread_count(self, session_id: str) -> int:
        session = self.get(session_id)
        return session.unread_count if session else 0

    def last_message_preview(self, session_id: str) -> Optional[MessagePreview]:
        session = self.get(session_id)
        return session.last_message_preview if session else None

    @property
    def total_unread(self) -> int:
        return sum(s.unread_count for s in self._sessions)

    async def start(self) -> None:
        """Subscribe to session changes for the user and load the list."""
        self.read_state.add_observer(self._on_read_state)
        if self._subscription is None:
            self._subscription = ManagedSubscription(
                self.transport,
                SubscriptionTopic.for_user(self.user_id),
                ChangeHandlers(
                    on_insert=self._on_change,
                    on_update=self._on_change,
                    on_delete=self._on_change,
                ),
                sync_settings=self.settings,
                on_reconnect=self._refresh_after_reconnect,
            )
            await self._subscription.open()
        await self.refresh()

    async def close(self) -> None:
        self._timer.cancel()
        self.read_state.remove_observer(self._on_read_state)
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    def request_refresh(self) -> None:
        """Schedule a refresh after the debounce window."""
        self._timer.restart()

    async def _refresh_after_reconnect(self) -> None:
        await self.refresh()

    async def refresh(self) -> bool:
        """
        Re-fetch the session list and replace local state.

        Returns:
            True if the list was replaced
        """
        self._generation += 1
        generation = self._generation
        if self.read_state.failed_sessions:
            # Land pending read marks first so the server counts reflect them
            await self.read_state.retry_failed()
        try:
            sessions = await self.data_source.fetch_sessions_for_user(self.user_id)
        except Exception as e:
            logger.error(f"Failed to load chat sessions for user {self.user_id}: {e}")
            if self.on_notice is not None:
                self.on_notice(Notice(message="Failed to load chat sessions"))
            return False

        if generation < self._applied_generation:
            logger.debug(f"Dropping stale session refresh #{generation}")
            return False
        self._applied_generation = generation

        self._sessions = [self._prepare(session) for session in sessions]
        logger.debug(f"Session directory now holds {len(self._sessions)} sessions")
        return True

    def _prepare(self, session: ChatSession) -> ChatSession:
        update: dict = {"unread_count": self.read_state.reconcile(session)}
        preview = session.last_message_preview
        limit = self.settings.preview_length
        if preview is not None and preview.content and len(preview.content) > limit:
            update["last_message_preview"] = preview.model_copy(
                update={"content": preview.content[: limit - 1].rstrip() + "…"}
            )
        return session.model_copy(update=update)

    def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(f"Session change {event.event_type} on {event.record_id}, refreshing")
        self.request_refresh()

    def _on_read_state(self, change: ReadStateChange) -> None:
        self._sessions = [
            s.model_copy(update={"unread_count": max(0, change.unread_count)}) if s.id == change.session_id else s
            for s in self._sessions
        ]

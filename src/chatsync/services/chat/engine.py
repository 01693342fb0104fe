"""
ChatSyncEngine - the client-side chat synchronization engine.

Keeps the session list and the active session's timeline consistent across
optimistic local inserts, confirmed send results and realtime change events.

Ownership:
- SessionDirectory owns the session list (one user-scoped subscription)
- ActiveSession owns the timeline of the active session: its MessageStore,
  IngestionBatcher and message subscription. Exactly one ActiveSession is
  live at a time; the previous one is closed before the next opens.
- ReadStateTracker owns read state; directory and store observe it

Example:
    ```python
    engine = ChatSyncEngine(
        user_id,
        data_source=repo,
        resolver=repo,
        signer=S3Provider(),
        sender=ChatApiClient(),
        transport=realtime,
    )
    async with engine:
        await engine.set_active_session(session_id)
        await engine.send("See my notes", resources=[ResourceRef(...)])
        render(engine.messages)
    ```
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from ...errors import NoActiveSessionError
from ...models.entities import (
    ChangeEvent,
    ChatMessage,
    ChatSession,
    DeliveryState,
    MediaRef,
    Notice,
    ResourceRef,
    SubscriptionTopic,
)
from ...settings import Settings, settings as global_settings
from .directory import SessionDirectory
from .enricher import ResourceEnricher
from .ingestion import IngestionBatcher, MessageHydrator
from .protocols import ChangeHandlers, ChatDataSource, MessageSender, RealtimeTransport, ResourceResolver, UrlSigner
from .read_state import ReadStateChange, ReadStateTracker
from .sender import OptimisticSendCoordinator
from .store import MessageStore
from .subscription import ManagedSubscription


class ActiveSession:
    """
    Resource handle for the active session.

    Owns the message store, the ingestion batcher and the realtime
    subscription. Must be closed before another session is activated.
    """

    def __init__(self, engine: "ChatSyncEngine", session_id: str):
        self.engine = engine
        self.session_id = session_id
        self.store = MessageStore(session_id)
        self.batcher = IngestionBatcher(
            session_id,
            engine.hydrator,
            on_batch=self._on_batch,
            debounce=engine.settings.sync.ingest_debounce,
            on_error=lambda e: engine._notify(
                Notice(level="warning", message="Failed to load new messages", session_id=session_id)
            ),
        )
        self.coordinator = OptimisticSendCoordinator(
            session_id,
            engine.user_id,
            self.store,
            engine.sender,
            hydrator=engine.hydrator,
            on_notice=engine._notify,
        )
        self.subscription = ManagedSubscription(
            engine.transport,
            SubscriptionTopic.for_session(session_id),
            ChangeHandlers(
                on_insert=self._on_insert,
                on_update=self._on_update,
                on_delete=self._on_delete,
            ),
            sync_settings=engine.settings.sync,
            on_reconnect=self._catch_up,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Subscribe first, then load the timeline so nothing falls in between."""
        self.engine.read_state.add_observer(self._on_read_state)
        await self.subscription.open()
        if await self._load_timeline():
            logger.info(f"Loaded {len(self.store)} messages for session {self.session_id}")

    async def _catch_up(self) -> None:
        # Messages inserted or edited while the channel was down
        if await self._load_timeline():
            logger.info(f"Caught up session {self.session_id} after resubscribing")

    async def _load_timeline(self) -> bool:
        try:
            messages = await self.engine.hydrator.fetch_session(self.session_id)
        except Exception as e:
            logger.error(f"Failed to load messages for session {self.session_id}: {e}")
            self.engine._notify(Notice(message="Failed to load messages", session_id=self.session_id))
            return False
        if self._closed:
            return False
        self.store.merge(messages)
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.engine.read_state.remove_observer(self._on_read_state)
        await self.batcher.close()
        await self.subscription.close()
        logger.debug(f"Closed active session {self.session_id}")

    def _on_insert(self, event: ChangeEvent) -> None:
        if not self._closed and event.record_id:
            self.batcher.notify(event.record_id)

    def _on_update(self, event: ChangeEvent) -> None:
        if self._closed or not event.record_id:
            return
        existing = self.store.get(event.record_id)
        if existing is None:
            return
        payload = existing.model_dump(exclude={"media", "resources", "sender"})
        payload.update({k: v for k, v in event.new.items() if v is not None})
        try:
            updated = ChatMessage.model_validate(payload)
        except ValueError as e:
            logger.warning(f"Ignoring malformed update for message {event.record_id}: {e}")
            return
        self.store.apply_update(updated)

    def _on_delete(self, event: ChangeEvent) -> None:
        if not self._closed and event.record_id:
            self.store.apply_delete(event.record_id)

    def _on_batch(self, messages: list[ChatMessage]) -> None:
        if self._closed:
            return
        self.store.merge(messages)
        if any(m.sender_id != self.engine.user_id and not m.is_read for m in messages):
            self.engine._schedule(self.engine.read_state.mark_read(self.session_id))

    def _on_read_state(self, change: ReadStateChange) -> None:
        if change.session_id == self.session_id:
            self.store.mark_read(change.reader_id)


class ChatSyncEngine:
    """Entry point for the UI layer."""

    def __init__(
        self,
        user_id: str,
        *,
        data_source: ChatDataSource,
        resolver: ResourceResolver,
        signer: UrlSigner,
        sender: MessageSender,
        transport: RealtimeTransport,
        settings: Optional[Settings] = None,
        on_notice: Optional[Callable[[Notice], None]] = None,
    ):
        self.user_id = user_id
        self.data_source = data_source
        self.sender = sender
        self.transport = transport
        self.settings = settings or global_settings
        self.on_notice = on_notice
        self.enricher = ResourceEnricher(resolver, signer, self.settings.storage)
        self.hydrator = MessageHydrator(data_source, self.enricher)
        self.read_state = ReadStateTracker(data_source, user_id)
        self.directory = SessionDirectory(
            user_id,
            data_source,
            transport,
            self.read_state,
            sync_settings=self.settings.sync,
            on_notice=self._notify,
        )
        self._active: Optional[ActiveSession] = None
        self._switch_lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()
        self._started = False
        self._closers: list[Callable[[], Awaitable[None]]] = []

    async def __aenter__(self) -> "ChatSyncEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- read-only state -------------------------------------------------------------

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active.session_id if self._active else None

    @property
    def active_session(self) -> Optional[ActiveSession]:
        return self._active

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._active.store.snapshot() if self._active else ()

    @property
    def sessions(self) -> tuple[ChatSession, ...]:
        return self.directory.sessions()

    # -- lifecycle -------------------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info(f"Starting chat sync engine for user {self.user_id}")
        await self.directory.start()

    async def close(self) -> None:
        """Unsubscribe every channel and cancel background work."""
        async with self._switch_lock:
            if self._active is not None:
                await self._active.close()
                self._active = None
        await self.directory.close()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
        self._started = False
        for closer in reversed(self._closers):
            try:
                await closer()
            except Exception as e:
                logger.warning(f"Error releasing engine resource: {e}")
        self._closers.clear()
        logger.info(f"Chat sync engine for user {self.user_id} closed")

    def add_closer(self, closer: Callable[[], Awaitable[None]]) -> None:
        """Register a coroutine function to run on close (pools, HTTP clients)."""
        self._closers.append(closer)

    async def set_active_session(self, session_id: Optional[str]) -> Optional[ActiveSession]:
        """
        Switch the active session.

        The previous session's subscription and batcher are torn down before
        the new subscription is established.
        """
        async with self._switch_lock:
            if self._active is not None:
                if self._active.session_id == session_id:
                    return self._active
                previous, self._active = self._active, None
                await previous.close()

            if session_id is None:
                return None

            logger.info(f"Activating chat session {session_id}")
            active = ActiveSession(self, session_id)
            self._active = active
            await active.open()

        if not active.closed:
            await self.read_state.mark_read(session_id)
        return active

    # -- commands --------------------------------------------------------------------

    def _require_active(self) -> ActiveSession:
        if self._active is None:
            raise NoActiveSessionError("No active chat session")
        return self._active

    async def send(
        self,
        content: Optional[str],
        media: Optional[list[MediaRef]] = None,
        resources: Optional[list[ResourceRef]] = None,
    ) -> ChatMessage:
        """Send a message in the active session (optimistic)."""
        return await self._require_active().coordinator.send(content, media, resources)

    async def retry(self, client_id: str) -> Optional[ChatMessage]:
        """Resend a failed message."""
        return await self._require_active().coordinator.retry(client_id)

    async def edit(self, message_id: str, content: str) -> Optional[ChatMessage]:
        """
        Edit a confirmed message; applied locally first, rolled back on failure.

        Returns:
            The edited message, or None if the message is unknown or the edit failed
        """
        active = self._require_active()
        previous = active.store.get(message_id)
        if previous is None or previous.is_provisional:
            return None

        local = previous.model_copy(update={"content": content, "is_edited": True})
        active.store.replace(local)
        try:
            confirmed = await self.sender.edit_message(message_id, content)
        except Exception as e:
            logger.error(f"Failed to edit message {message_id}: {e}")
            if active.store.get(message_id) == local:
                active.store.replace(previous)
            self._notify(Notice(message="Failed to edit message", session_id=active.session_id))
            return None

        active.store.apply_update(confirmed.model_copy(update={"is_edited": True}))
        return active.store.get(message_id)

    async def delete(self, message_id: str) -> bool:
        """Delete a message; removed locally first, restored on failure."""
        active = self._require_active()
        removed = active.store.apply_delete(message_id)
        if removed is None:
            return False
        if removed.delivery_state is DeliveryState.FAILED:
            # Never reached the server
            return True
        if removed.is_provisional:
            active.coordinator.discard_on_confirm(removed.client_id)
            return True
        try:
            await self.sender.delete_message(message_id)
        except Exception as e:
            logger.error(f"Failed to delete message {message_id}: {e}")
            active.store.restore(removed)
            self._notify(Notice(message="Failed to delete message", session_id=active.session_id))
            return False
        return True

    async def mark_read(self, session_id: Optional[str] = None) -> bool:
        """Mark a session (default: the active one) read."""
        target = session_id or self._require_active().session_id
        return await self.read_state.mark_read(target)

    async def refresh_sessions(self) -> bool:
        return await self.directory.refresh()

    # -- internals -------------------------------------------------------------------

    def _notify(self, notice: Notice) -> None:
        if self.on_notice is not None:
            try:
                self.on_notice(notice)
            except Exception as e:
                logger.warning(f"Notice handler failed: {e}")

    def _schedule(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

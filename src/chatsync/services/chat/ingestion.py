"""
Batched ingestion of realtime message notifications.

Design:
- Realtime INSERT callbacks only hand over message ids (`notify`)
- Ids accumulate in a pending set; every notify restarts a debounce timer
- When the timer fires the whole set is drained and hydrated in one cycle:
  1. message rows with sender info (one call)
  2. media rows and resource-link rows for the batch (two calls)
  3. group side rows by message id, then enrich resources
- Closing the batcher (session switch, teardown) cancels the timer and any
  in-flight flush; results of a cancelled flush are discarded

Bursts (e.g. a bulk resource share) therefore cost three queries plus
enrichment instead of three queries per event.
"""

import asyncio
from collections import defaultdict
from typing import Awaitable, Callable, Iterable, Optional

from loguru import logger

from ...models.entities import ChatMessage, EnrichedResource, ResourceRef
from .enricher import ResourceEnricher
from .protocols import ChatDataSource


class DebounceTimer:
    """
    Restartable, cancellable delayed call.

    Owns a single asyncio task; `restart()` cancels the pending one and
    schedules a new one, so the callback runs `delay` seconds after the
    last restart.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]], name: str = "debounce"):
        self.delay = delay
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def restart(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        # Detach before running so a restart from inside the callback schedules anew
        self._task = None
        await self.callback()


class MessageHydrator:
    """Attach media and enriched resources to bare message rows."""

    def __init__(self, data_source: ChatDataSource, enricher: ResourceEnricher):
        self.data_source = data_source
        self.enricher = enricher

    async def fetch_batch(self, ids: Iterable[str]) -> list[ChatMessage]:
        """Fetch and hydrate messages by id."""
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []
        rows = await self.data_source.fetch_messages_batch(ids)
        return await self.hydrate(rows)

    async def fetch_session(self, session_id: str) -> list[ChatMessage]:
        """Fetch and hydrate the whole timeline of a session."""
        rows = await self.data_source.fetch_session_messages(session_id)
        return await self.hydrate(rows)

    async def hydrate(self, rows: list[ChatMessage]) -> list[ChatMessage]:
        if not rows:
            return []
        message_ids = [row.id for row in rows]
        media_rows, link_rows = await asyncio.gather(
            self.data_source.fetch_media(message_ids),
            self.data_source.fetch_resource_links(message_ids),
        )

        media_by_message = defaultdict(list)
        for media in media_rows:
            media_by_message[media.message_id].append(media)

        links_by_message = defaultdict(list)
        for link in link_rows:
            links_by_message[link.message_id].append(link)

        enriched = await asyncio.gather(
            *(self.enricher.enrich_many(links_by_message[row.id]) for row in rows)
        )

        return [
            row.model_copy(
                update={
                    "media": media_by_message[row.id] or row.media,
                    "resources": resources or row.resources,
                }
            )
            for row, resources in zip(rows, enriched)
        ]

    async def enrich_message(self, message: ChatMessage) -> ChatMessage:
        """Enrich the resource pointers a message already carries."""
        if not message.has_unenriched_resources:
            return message
        pending = [r for r in message.resources if not isinstance(r, EnrichedResource)]
        hydrated = iter(
            await self.enricher.enrich_many(
                ResourceRef(
                    resource_id=r.resource_id,
                    resource_type=r.resource_type,
                    message_id=message.id,
                )
                for r in pending
            )
        )
        resources = [r if isinstance(r, EnrichedResource) else next(hydrated) for r in message.resources]
        return message.model_copy(update={"resources": resources})


class IngestionBatcher:
    """
    Coalesce realtime message ids for the active session into batched fetches.

    The pending set, the debounce timer and the flush task belong to this
    instance only; one instance exists per active session.
    """

    def __init__(
        self,
        session_id: str,
        hydrator: MessageHydrator,
        on_batch: Callable[[list[ChatMessage]], None],
        debounce: float = 0.3,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.session_id = session_id
        self.hydrator = hydrator
        self.on_batch = on_batch
        self.on_error = on_error
        self.pending: set[str] = set()
        self.timer = DebounceTimer(debounce, self._flush, name=f"ingest:{session_id}")
        self._flushes: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def notify(self, message_id: str) -> None:
        """Queue a message id and restart the debounce window."""
        if self._closed:
            logger.debug(f"Ignoring message {message_id} for closed session {self.session_id}")
            return
        self.pending.add(message_id)
        self.timer.restart()
        logger.debug(f"Queued message {message_id} ({len(self.pending)} pending)")

    async def flush(self) -> None:
        """Drain the pending set immediately (skips the debounce window)."""
        self.timer.cancel()
        await self._flush()

    async def _flush(self) -> None:
        if self._closed or not self.pending:
            return
        ids = list(self.pending)
        self.pending.clear()

        task = asyncio.current_task()
        if task is not None:
            self._flushes.add(task)
        try:
            logger.info(f"Flushing {len(ids)} realtime messages for session {self.session_id}")
            messages = await self.hydrator.fetch_batch(ids)
        except asyncio.CancelledError:
            logger.debug(f"Discarded in-flight batch for session {self.session_id}")
            raise
        except Exception as e:
            logger.error(f"Failed to ingest {len(ids)} messages for session {self.session_id}: {e}")
            if self.on_error is not None and not self._closed:
                self.on_error(e)
            return
        finally:
            if task is not None:
                self._flushes.discard(task)

        if self._closed:
            logger.debug(f"Session {self.session_id} closed during fetch, batch discarded")
            return
        self.on_batch(messages)

    async def close(self) -> None:
        """Cancel the timer and in-flight flushes, drop pending ids."""
        if self._closed:
            return
        self._closed = True
        self.timer.cancel()
        self.pending.clear()
        current = asyncio.current_task()
        flushes = [t for t in self._flushes if t is not current]
        for task in flushes:
            task.cancel()
        if flushes:
            await asyncio.gather(*flushes, return_exceptions=True)
        self._flushes.clear()

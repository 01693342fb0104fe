"""
ManagedSubscription - an owned realtime channel with automatic resubscription.

A ManagedSubscription is the explicit handle for one live subscription:
it is opened once, closed once, and never shared. When the transport
reports a dropped channel while the handle is still open, resubscription
is retried with exponential backoff until it succeeds or the handle is
closed. After a resubscribe the owner's on_reconnect callback runs so it
can refetch whatever changed while the channel was down.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from ...errors import SubscriptionDroppedError
from ...models.entities import SubscriptionTopic
from ...settings import SyncSettings, settings
from .protocols import ChangeHandlers, RealtimeTransport, Subscription


class ManagedSubscription:
    """Owned subscription handle for one topic."""

    def __init__(
        self,
        transport: RealtimeTransport,
        topic: SubscriptionTopic,
        handlers: ChangeHandlers,
        sync_settings: Optional[SyncSettings] = None,
        on_reconnect: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.transport = transport
        self.topic = topic
        self.settings = sync_settings or settings.sync
        # Awaited after every successful resubscribe to catch up on missed changes
        self.on_reconnect = on_reconnect
        # Wrap the caller's handlers so drops are routed through this handle
        self.handlers = ChangeHandlers(
            on_insert=handlers.on_insert,
            on_update=handlers.on_update,
            on_delete=handlers.on_delete,
            on_drop=self._on_drop,
        )
        self._subscription: Optional[Subscription] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = False
        self.reconnects = 0

    @property
    def is_live(self) -> bool:
        return self._subscription is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Establish the subscription; failures fall back to background retries."""
        if self._closed:
            raise RuntimeError(f"Subscription {self.topic.name} already closed")
        if self._subscription is not None:
            return
        try:
            self._subscription = await self.transport.subscribe(self.topic, self.handlers)
            logger.debug(f"Subscribed to {self.topic.name}")
        except Exception as e:
            logger.warning(f"Subscribe to {self.topic.name} failed: {e}")
            self._schedule_reconnect()

    async def close(self) -> None:
        """Tear down the subscription and stop any pending retry."""
        if self._closed:
            return
        self._closed = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            await asyncio.gather(self._reconnect_task, return_exceptions=True)
            self._reconnect_task = None
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            try:
                await subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"Unsubscribe from {self.topic.name} failed: {e}")
            logger.debug(f"Unsubscribed from {self.topic.name}")

    def _on_drop(self, error: Optional[BaseException] = None) -> None:
        if self._closed:
            return
        dropped = SubscriptionDroppedError(f"{self.topic.name} dropped: {error}")
        logger.warning(str(dropped))
        self._subscription = None
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closed or (self._reconnect_task is not None and not self._reconnect_task.done()):
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect(), name=f"resubscribe:{self.topic.name}"
        )

    async def _reconnect(self) -> None:
        delay = self.settings.resubscribe_initial_delay
        attempt = 0
        while not self._closed:
            await asyncio.sleep(delay)
            if self._closed:
                return
            attempt += 1
            try:
                subscription = await self.transport.subscribe(self.topic, self.handlers)
            except Exception as e:
                delay = min(delay * self.settings.resubscribe_backoff, self.settings.resubscribe_max_delay)
                logger.warning(
                    f"Resubscribe to {self.topic.name} failed (attempt {attempt}): {e}; "
                    f"retrying in {delay:.1f}s"
                )
                continue
            if self._closed:
                await subscription.unsubscribe()
                return
            self._subscription = subscription
            self.reconnects += 1
            logger.info(f"Resubscribed to {self.topic.name} after {attempt} attempt(s)")
            if self.on_reconnect is not None:
                try:
                    await self.on_reconnect()
                except Exception as e:
                    logger.error(f"Catch-up after resubscribing to {self.topic.name} failed: {e}")
            return

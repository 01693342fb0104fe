"""
OptimisticSendCoordinator - show a message before the server confirms it.

Flow:
1. Build a provisional message with a client-generated id and a client_id
   correlation id, insert it into the MessageStore
2. Call the send operation with the same client_id
3. Success: merge the authoritative record; the store swaps the
   provisional entry for it (matched on client_id)
4. Failure: keep the provisional entry, flagged failed, so the composed
   content survives and the UI can offer a retry

A pending send deleted by the user is deleted on the server as soon as it
is confirmed, and dropped quietly if it fails.
"""

from typing import Callable, Optional
from uuid import uuid4

from loguru import logger

from ...models.core import utcnow
from ...models.entities import ChatMessage, DeliveryState, MediaRef, Notice, ResourceRef, SendRequest
from .ingestion import MessageHydrator
from .protocols import MessageSender
from .store import MessageStore

LOCAL_ID_PREFIX = "local-"


class OptimisticSendCoordinator:
    """Sequences the optimistic insert around the send operation for one session."""

    def __init__(
        self,
        session_id: str,
        user_id: str,
        store: MessageStore,
        sender: MessageSender,
        hydrator: Optional[MessageHydrator] = None,
        on_notice: Optional[Callable[[Notice], None]] = None,
    ):
        self.session_id = session_id
        self.user_id = user_id
        self.store = store
        self.sender = sender
        self.hydrator = hydrator
        self.on_notice = on_notice
        self._discarded: set[str] = set()

    async def send(
        self,
        content: Optional[str],
        media: Optional[list[MediaRef]] = None,
        resources: Optional[list[ResourceRef]] = None,
    ) -> ChatMessage:
        """
        Send a message optimistically.

        Args:
            content: Message text (may be empty when media/resources are attached)
            media: Already uploaded media
            resources: Shared resource pointers

        Returns:
            The confirmed message, or the provisional one flagged failed
        """
        text = content.strip() if content else ""
        media = list(media or [])
        resources = list(resources or [])
        if not text and not media and not resources:
            raise ValueError("A message needs content, media or resources")

        client_id = str(uuid4())
        now = utcnow()
        provisional = ChatMessage(
            id=f"{LOCAL_ID_PREFIX}{client_id}",
            session_id=self.session_id,
            sender_id=self.user_id,
            content=text or None,
            media=media,
            resources=resources,
            client_id=client_id,
            delivery_state=DeliveryState.OPTIMISTIC,
            created_at=now,
            updated_at=now,
        )
        self.store.insert_optimistic(provisional)
        return await self._deliver(provisional)

    async def retry(self, client_id: str) -> Optional[ChatMessage]:
        """Resend a failed message with its original correlation id."""
        message = self.store.find_by_client_id(client_id)
        if message is None or message.delivery_state is not DeliveryState.FAILED:
            return None
        message = self.store.set_delivery_state(message.id, DeliveryState.OPTIMISTIC)
        return await self._deliver(message)

    def discard_on_confirm(self, client_id: str) -> None:
        """Delete a still-pending send once the server has confirmed it."""
        self._discarded.add(client_id)

    async def _deliver(self, provisional: ChatMessage) -> ChatMessage:
        request = SendRequest(
            session_id=self.session_id,
            content=provisional.content,
            media=provisional.media,
            resources=[
                ResourceRef(resource_id=r.resource_id, resource_type=r.resource_type)
                for r in provisional.resources
            ],
            client_id=provisional.client_id,
        )
        try:
            confirmed = await self.sender.send_message(request)
        except Exception as e:
            if provisional.client_id in self._discarded:
                self._discarded.discard(provisional.client_id)
                logger.info(f"Send of deleted message {provisional.client_id} failed: {e}")
                return provisional.model_copy(update={"delivery_state": DeliveryState.FAILED})
            logger.error(f"Failed to send message {provisional.client_id} in session {self.session_id}: {e}")
            failed = self.store.set_delivery_state(provisional.id, DeliveryState.FAILED)
            self._notify(
                Notice(
                    message="Failed to send message",
                    session_id=self.session_id,
                    client_id=provisional.client_id,
                )
            )
            return failed or provisional.model_copy(update={"delivery_state": DeliveryState.FAILED})

        confirmed = confirmed.model_copy(
            update={"client_id": provisional.client_id, "delivery_state": DeliveryState.CONFIRMED}
        )
        if provisional.client_id in self._discarded:
            self._discarded.discard(provisional.client_id)
            return await self._delete_confirmed(confirmed)
        if self.hydrator is not None:
            confirmed = await self.hydrator.enrich_message(confirmed)
        self.store.merge([confirmed])
        logger.debug(f"Confirmed message {confirmed.id} (client {provisional.client_id})")
        return self.store.get(confirmed.id) or confirmed

    async def _delete_confirmed(self, confirmed: ChatMessage) -> ChatMessage:
        # Tombstone first so a realtime INSERT for the row cannot bring it back
        self.store.apply_delete(confirmed.id)
        try:
            await self.sender.delete_message(confirmed.id)
        except Exception as e:
            logger.error(f"Failed to delete message {confirmed.id} after confirmation: {e}")
            self.store.restore(confirmed)
            self._notify(Notice(message="Failed to delete message", session_id=self.session_id))
            return confirmed
        logger.debug(f"Deleted message {confirmed.id} once its send was confirmed")
        return confirmed

    def _notify(self, notice: Notice) -> None:
        if self.on_notice is not None:
            self.on_notice(notice)

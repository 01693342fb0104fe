"""
MessageStore - ordered, deduplicated message cache for one chat session.

Invariants:
- At most one entry per message id
- Entries sorted by (created_at, id)
- An optimistic entry and its confirmed record converge to one entry,
  matched by client_id, or by sender + content when the confirmed record
  carries no correlation id
- Deleted ids are remembered so a late insert cannot resurrect them

None of the operations raise on unknown ids; they are no-ops.
"""

import bisect
from typing import Iterable, Optional

from loguru import logger

from ...models.entities import ChatMessage, DeliveryState, EnrichedResource


class MessageStore:
    """Per-session message timeline."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._messages: list[ChatMessage] = []
        self._keys: list[tuple] = []
        self._by_id: dict[str, ChatMessage] = {}
        self._tombstones: set[str] = set()

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._by_id

    def get(self, message_id: str) -> Optional[ChatMessage]:
        return self._by_id.get(message_id)

    def snapshot(self) -> tuple[ChatMessage, ...]:
        """Read-only ordered view for the UI."""
        return tuple(self._messages)

    def find_by_client_id(self, client_id: str) -> Optional[ChatMessage]:
        for message in self._messages:
            if message.client_id == client_id:
                return message
        return None

    # -- ordered list maintenance -------------------------------------------------

    def _insert(self, message: ChatMessage) -> None:
        key = message.sort_key
        index = bisect.bisect_right(self._keys, key)
        self._keys.insert(index, key)
        self._messages.insert(index, message)
        self._by_id[message.id] = message

    def _remove(self, message_id: str) -> Optional[ChatMessage]:
        message = self._by_id.pop(message_id, None)
        if message is None:
            return None
        index = bisect.bisect_left(self._keys, message.sort_key)
        while self._messages[index].id != message_id:
            index += 1
        del self._keys[index]
        del self._messages[index]
        return message

    def _replace(self, message: ChatMessage) -> None:
        current = self._by_id[message.id]
        if current.sort_key == message.sort_key:
            index = bisect.bisect_left(self._keys, current.sort_key)
            self._messages[index] = message
            self._by_id[message.id] = message
        else:
            self._remove(message.id)
            self._insert(message)

    # -- public operations -----------------------------------------------------------

    def insert_optimistic(self, message: ChatMessage) -> None:
        """Show a provisional message immediately (normally lands at the end)."""
        if message.id in self._by_id:
            return
        self._insert(message)
        logger.debug(f"Inserted optimistic message {message.id} in session {self.session_id}")

    def merge(self, messages: Iterable[ChatMessage]) -> int:
        """
        Merge confirmed messages; idempotent.

        Returns:
            Number of entries that were inserted or changed
        """
        changed = 0
        for message in messages:
            if message.session_id != self.session_id:
                continue
            if self._merge_one(message):
                changed += 1
        if changed:
            logger.debug(f"Merged {changed} messages into session {self.session_id}")
        return changed

    def _merge_one(self, message: ChatMessage) -> bool:
        existing = self._by_id.get(message.id)
        known = existing is not None or message.id in self._tombstones
        # Content matching only applies to ids seen for the first time
        reconciled = self._take_provisional(message, by_content=not known)

        if message.id in self._tombstones:
            return reconciled is not None

        if existing is not None:
            if existing.updated_at > message.updated_at:
                return reconciled is not None
            merged = _carry_enrichment(message, existing)
            if merged == existing:
                return reconciled is not None
            self._replace(merged)
            return True

        if reconciled is not None:
            message = _carry_enrichment(message, reconciled)
        self._insert(message)
        return True

    def _take_provisional(self, confirmed: ChatMessage, by_content: bool = True) -> Optional[ChatMessage]:
        """Remove the optimistic/failed entry this confirmed record stands for."""
        if confirmed.client_id:
            match = next(
                (
                    m
                    for m in self._messages
                    if m.is_provisional
                    and m.client_id == confirmed.client_id
                    and m.id != confirmed.id
                ),
                None,
            )
        elif by_content:
            # No correlation id: newest pending send from the same author with the same content
            match = next(
                (
                    m
                    for m in reversed(self._messages)
                    if m.delivery_state is DeliveryState.OPTIMISTIC
                    and m.sender_id == confirmed.sender_id
                    and m.content == confirmed.content
                ),
                None,
            )
        else:
            match = None
        if match is None:
            return None
        self._remove(match.id)
        logger.debug(f"Reconciled provisional {match.id} with confirmed {confirmed.id}")
        return match

    def apply_update(self, message: ChatMessage) -> bool:
        """
        Apply an edit to a known message.

        Media and resources are kept from the local copy when the update
        carries none (realtime UPDATE payloads contain only the row).
        """
        existing = self._by_id.get(message.id)
        if existing is None or existing.updated_at > message.updated_at:
            return False
        update = message
        if not message.media and not message.resources:
            update = message.model_copy(
                update={"media": existing.media, "resources": existing.resources}
            )
        if update.sender is None and existing.sender is not None:
            update = update.model_copy(update={"sender": existing.sender})
        if update.client_id is None and existing.client_id is not None:
            update = update.model_copy(update={"client_id": existing.client_id})
        self._replace(update)
        return True

    def apply_delete(self, message_id: str) -> Optional[ChatMessage]:
        """Remove a message by id; remembers the id even if it never arrived."""
        self._tombstones.add(message_id)
        removed = self._remove(message_id)
        if removed is not None:
            logger.debug(f"Deleted message {message_id} from session {self.session_id}")
        return removed

    def restore(self, message: ChatMessage) -> None:
        """Put back a message whose deletion was rolled back."""
        self._tombstones.discard(message.id)
        if message.id in self._by_id:
            self._replace(message)
        else:
            self._insert(message)

    def replace(self, message: ChatMessage) -> None:
        """Overwrite a known entry unconditionally (local edits and rollbacks)."""
        if message.id in self._by_id:
            self._replace(message)

    def set_delivery_state(self, message_id: str, state: DeliveryState) -> Optional[ChatMessage]:
        existing = self._by_id.get(message_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={"delivery_state": state})
        self._replace(updated)
        return updated

    def mark_read(self, reader_id: str) -> int:
        """Flag messages from other senders as read."""
        count = 0
        for message in list(self._messages):
            if not message.is_read and message.sender_id != reader_id and not message.is_provisional:
                self._replace(message.model_copy(update={"is_read": True}))
                count += 1
        return count


def _carry_enrichment(incoming: ChatMessage, existing: ChatMessage) -> ChatMessage:
    """Keep already hydrated side data when the incoming copy has less."""
    update = {}
    if not incoming.media and existing.media:
        update["media"] = existing.media
    if existing.resources:
        enriched = {r.key: r for r in existing.resources if isinstance(r, EnrichedResource)}
        if not incoming.resources:
            update["resources"] = existing.resources
        elif enriched and incoming.has_unenriched_resources:
            update["resources"] = [
                r if isinstance(r, EnrichedResource) else enriched.get(r.key, r)
                for r in incoming.resources
            ]
    if incoming.sender is None and existing.sender is not None:
        update["sender"] = existing.sender
    if incoming.client_id is None and existing.client_id is not None:
        update["client_id"] = existing.client_id
    return incoming.model_copy(update=update) if update else incoming

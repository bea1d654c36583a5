"""In-memory ordered message store for one open conversation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime, timezone
from typing import Any

from src.schemas.message import ChatMessage

logger = logging.getLogger(__name__)

ChangeListener = Callable[[list[ChatMessage]], None]


class MessageStore:
    """Ordered, duplicate-free list of a conversation's messages.

    Mutations are synchronous and run on the event loop thread, so each one
    is atomic with respect to the others. Ordering is creation time for
    loaded history and insertion order after that. An id appears at most
    once, and a message's read_at is never cleared once set.
    """

    def __init__(self, conversation_id: str) -> None:
        """Initialize an empty store.

        Args:
            conversation_id: Conversation whose messages this store holds.
        """
        self.conversation_id = conversation_id
        self._messages: list[ChatMessage] = []
        self._listeners: list[ChangeListener] = []

    # Queries

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._messages))

    def __contains__(self, message_id: object) -> bool:
        return self._index_of(message_id) is not None

    def get(self, message_id: str) -> ChatMessage | None:
        """Return the entry with ``message_id`` if present."""
        index = self._index_of(message_id)
        return self._messages[index] if index is not None else None

    def ids(self) -> list[str]:
        """Ids in store order."""
        return [message.id for message in self._messages]

    def snapshot(self) -> list[ChatMessage]:
        """Copy of the current contents in order."""
        return list(self._messages)

    def _index_of(self, message_id: object) -> int | None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    # Listeners

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback invoked with a snapshot after each change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        """Unregister a change callback."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Message store listener failed")

    # Mutations

    def load(self, messages: Iterable[ChatMessage]) -> None:
        """Replace the contents with a fetched history.

        Entries are sorted by creation time (stable, so equal timestamps keep
        their fetched order) and duplicate ids are dropped.
        """
        seen: set[str] = set()
        loaded: list[ChatMessage] = []
        for message in sorted(messages, key=lambda m: _sort_key(m.created_at)):
            if message.id in seen:
                continue
            seen.add(message.id)
            loaded.append(message)
        self._messages = loaded
        self._changed()

    def append(self, message: ChatMessage) -> bool:
        """Append ``message`` unless its id is already present.

        Returns:
            bool: True if the message was added.
        """
        if message.id in self:
            return False
        self._messages.append(message)
        self._changed()
        return True

    def replace(self, temp_id: str, confirmed: ChatMessage) -> bool:
        """Swap a temporary entry for its confirmed row, keeping its position.

        If the confirmed id is already in the store (its realtime echo got
        there first) the temporary entry is dropped instead, so exactly one
        copy remains.

        Returns:
            bool: True if the temporary entry was found.
        """
        index = self._index_of(temp_id)
        if index is None:
            return False

        existing_index = self._index_of(confirmed.id)
        if existing_index is not None and existing_index != index:
            existing = self._messages[existing_index]
            self._messages[existing_index] = _keep_read(existing, confirmed)
            del self._messages[index]
        else:
            self._messages[index] = confirmed.model_copy(update={"optimistic": False})
        self._changed()
        return True

    def remove(self, temp_id: str) -> bool:
        """Delete an entry (used to roll back a failed send).

        Returns:
            bool: True if the entry was present.
        """
        index = self._index_of(temp_id)
        if index is None:
            return False
        del self._messages[index]
        self._changed()
        return True

    def mark_read(self, message_ids: Iterable[str], read_at: datetime | None = None) -> list[str]:
        """Set read_at on the given entries; entries already read are left alone.

        Returns:
            list[str]: Ids whose read state flipped.
        """
        wanted = set(message_ids)
        stamp = read_at or datetime.now(timezone.utc)
        flipped: list[str] = []
        for index, message in enumerate(self._messages):
            if message.id in wanted and message.read_at is None:
                self._messages[index] = message.model_copy(update={"read_at": stamp})
                flipped.append(message.id)
        if flipped:
            self._changed()
        return flipped

    def apply_update(self, updated: ChatMessage) -> bool:
        """Merge a server-side update into the matching entry.

        Only fields carried by the update are taken; read_at is never cleared.

        Returns:
            bool: True if a matching entry changed.
        """
        index = self._index_of(updated.id)
        if index is None:
            return False
        current = self._messages[index]
        merged = _keep_read(current, updated).model_copy(update={"optimistic": current.optimistic})
        if merged == current:
            return False
        self._messages[index] = merged
        self._changed()
        return True


def _keep_read(current: ChatMessage, incoming: ChatMessage) -> ChatMessage:
    """Return ``incoming`` without regressing ``current``'s read state."""
    merged = incoming.model_copy(update={"optimistic": False})
    if merged.read_at is None and current.read_at is not None:
        merged = merged.model_copy(update={"read_at": current.read_at})
    return merged


def _sort_key(value: datetime) -> Any:
    # Naive timestamps compare as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

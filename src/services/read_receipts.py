"""Read-receipt reconciliation for the open conversation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from src.schemas.message import ChatMessage
from src.services.chat_backend import ChatBackend
from src.services.chat_errors import ChatError
from src.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class ReadReceiptReconciler:
    """Marks the other party's messages read while the conversation is open.

    Only messages written by the other party are ever marked from here. The
    viewer's own messages flip to read through realtime update events, once
    the server has recorded the other party's read.
    """

    def __init__(self, store: MessageStore, backend: ChatBackend, reader_id: str) -> None:
        """Initialize the reconciler.

        Args:
            store: Store of the open conversation.
            backend: Backend gateway for read updates.
            reader_id: Profile ID of the viewer.
        """
        self.store = store
        self.backend = backend
        self.reader_id = reader_id
        self._requested: set[str] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    async def mark_existing_read(self) -> list[str]:
        """Mark every loaded, unread message from the other party in one write.

        Returns:
            list[str]: Ids flipped to read locally.
        """
        unread = [
            message.id
            for message in self.store
            if message.sender_id != self.reader_id and not message.is_read and not message.optimistic
        ]
        if not unread:
            return []

        self._requested.update(unread)
        try:
            await self.backend.mark_conversation_read(self.store.conversation_id, self.reader_id)
        except ChatError as e:
            logger.warning("Could not mark conversation %s read: %s", self.store.conversation_id, e)
            return []
        return self.store.mark_read(unread)

    def mark_incoming_read(self, message: ChatMessage) -> bool:
        """Schedule a fire-and-forget read write for a newly received message.

        Each id is written at most once per session.

        Returns:
            bool: True if a write was scheduled.
        """
        if message.sender_id == self.reader_id or message.is_read or message.id in self._requested:
            return False
        self._requested.add(message.id)
        self._spawn(self._mark_one(message.id))
        return True

    async def _mark_one(self, message_id: str) -> None:
        try:
            await self.backend.mark_read([message_id])
        except ChatError as e:
            logger.warning("Could not mark message %s read: %s", message_id, e)
            return
        self.store.mark_read([message_id])

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for scheduled read writes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel read writes still in flight."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

"""Bridges realtime message events into the conversation's store."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from src.schemas.message import ChatMessage
from src.services.chat_backend import ChatBackend
from src.services.chat_errors import ChatError
from src.services.message_store import MessageStore
from src.services.optimistic_sender import OptimisticSender
from src.services.read_receipts import ReadReceiptReconciler

if TYPE_CHECKING:
    from realtime import AsyncRealtimeChannel

logger = logging.getLogger(__name__)

# Subscription states after which no more events will arrive
DEGRADED_STATES = {"CHANNEL_ERROR", "TIMED_OUT", "CLOSED"}


class RealtimeSubscriber:
    """Applies INSERT/UPDATE events of one conversation to its store.

    Each subscription gets a generation number; events delivered for an
    older generation (after unsubscribe or resubscribe) are dropped.
    A failed or dropped channel is logged and otherwise ignored: the view
    simply has no live updates until it is opened again.
    """

    def __init__(
        self,
        store: MessageStore,
        backend: ChatBackend,
        current_user_id: str,
        sender: OptimisticSender,
        reconciler: ReadReceiptReconciler,
    ) -> None:
        self.store = store
        self.backend = backend
        self.current_user_id = current_user_id
        self.sender = sender
        self.reconciler = reconciler
        self._channel: AsyncRealtimeChannel | None = None
        self._generation = 0

    @property
    def is_subscribed(self) -> bool:
        return self._channel is not None

    async def subscribe(self) -> bool:
        """Open the conversation channel, closing any previous one first.

        Returns:
            bool: True if the channel was joined.
        """
        if self._channel is not None:
            await self.unsubscribe()

        self._generation += 1
        generation = self._generation
        try:
            self._channel = await self.backend.subscribe(
                self.store.conversation_id,
                on_insert=partial(self._handle_insert, generation),
                on_update=partial(self._handle_update, generation),
                on_status=self._handle_status,
            )
        except ChatError as e:
            logger.warning(
                "Realtime unavailable for conversation %s: %s", self.store.conversation_id, e
            )
            self._channel = None
            return False
        return True

    async def unsubscribe(self) -> None:
        """Close the channel; safe to call more than once."""
        self._generation += 1
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await self.backend.unsubscribe(channel)
        except ChatError as e:
            logger.warning("Failed to remove channel for %s: %s", self.store.conversation_id, e)

    def _accepts(self, generation: int, row: dict[str, Any]) -> ChatMessage | None:
        if generation != self._generation:
            logger.debug("Dropping event from stale subscription")
            return None
        if str(row.get("conversation_id")) != self.store.conversation_id:
            return None
        try:
            return ChatMessage.from_row(row)
        except ValidationError as e:
            logger.warning("Ignoring malformed realtime row: %s", e)
            return None

    def _handle_insert(self, generation: int, row: dict[str, Any]) -> None:
        message = self._accepts(generation, row)
        if message is None:
            return

        if message.sender_id == self.current_user_id:
            # Echo of our own send: the pending send will confirm it
            if not self.sender.claim_echo(message):
                self.store.append(message)
            return

        if self.store.append(message):
            self.reconciler.mark_incoming_read(message)

    def _handle_update(self, generation: int, row: dict[str, Any]) -> None:
        message = self._accepts(generation, row)
        if message is None:
            return
        self.store.apply_update(message)

    def _handle_status(self, state: str, error: Exception | None) -> None:
        if state in DEGRADED_STATES:
            logger.warning(
                "Realtime channel for %s is %s: %s", self.store.conversation_id, state, error
            )
        else:
            logger.debug("Realtime channel for %s is %s", self.store.conversation_id, state)

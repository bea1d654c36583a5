"""Optimistic message sending with rollback on failure."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from src.models.message import MessageInsert, MessageKind
from src.schemas.message import TEMP_ID_PREFIX, ChatMessage, ChatNotice
from src.services.chat_backend import ChatBackend
from src.services.chat_errors import OperationTimeoutError
from src.services.message_store import MessageStore

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[ChatNotice], None]

SEND_FAILED_NOTICE = "Erreur lors de l'envoi."
SEND_TIMEOUT_NOTICE = "L'envoi a expiré. Vérifiez votre connexion."


def new_temp_id() -> str:
    """Generate a placeholder id that can never collide with a server id."""
    return f"{TEMP_ID_PREFIX}{uuid4().hex}"


@dataclass
class PendingSend:
    """A send whose row has not been confirmed yet.

    ``remote_url`` is only known for attachments once the upload is done;
    ``echo`` holds the realtime copy of the row if it arrived before the
    insert call returned.
    """

    temp_id: str
    kind: MessageKind
    content: str
    remote_url: str | None = None
    echo: ChatMessage | None = None

    def matches(self, message: ChatMessage) -> bool:
        """Whether ``message`` could be the server copy of this send."""
        if self.echo is not None or message.message_type != self.kind:
            return False
        if self.kind.is_attachment:
            return self.remote_url is not None and message.file_url == self.remote_url
        return message.content == self.content


class OptimisticSender:
    """Shows sends immediately and converges the store once they resolve."""

    def __init__(
        self,
        store: MessageStore,
        backend: ChatBackend,
        sender_id: str,
        notify: NoticeCallback | None = None,
    ) -> None:
        """Initialize the sender.

        Args:
            store: Store of the open conversation.
            backend: Backend gateway used to persist rows.
            sender_id: Profile ID of the current user.
            notify: Callback receiving transient notices.
        """
        self.store = store
        self.backend = backend
        self.sender_id = sender_id
        self.notify = notify
        self._pending: dict[str, PendingSend] = {}

    @property
    def pending_ids(self) -> list[str]:
        """Temp ids of in-flight sends, oldest first."""
        return list(self._pending)

    async def send_text(self, content: str) -> ChatMessage | None:
        """Send a text message optimistically.

        Blank content is ignored. Failures roll the placeholder back and
        emit a notice; nothing is raised.

        Returns:
            ChatMessage | None: The confirmed message, or None.
        """
        text = content.strip()
        if not text:
            return None

        provisional = self.begin(MessageKind.TEXT, text)
        payload: MessageInsert = {
            "conversation_id": self.store.conversation_id,
            "sender_id": self.sender_id,
            "content": text,
            "message_type": MessageKind.TEXT.value,
        }
        try:
            row = await self.backend.insert_message(payload)
        except Exception as e:
            self.rollback(provisional.id, e)
            return None
        return self.confirm(provisional.id, row)

    def begin(
        self,
        kind: MessageKind,
        content: str,
        preview_url: str | None = None,
    ) -> ChatMessage:
        """Append a provisional entry and register it as pending."""
        provisional = ChatMessage(
            id=new_temp_id(),
            conversation_id=self.store.conversation_id,
            sender_id=self.sender_id,
            content=content,
            message_type=kind,
            file_url=preview_url,
            created_at=datetime.now(timezone.utc),
            optimistic=True,
        )
        self._pending[provisional.id] = PendingSend(provisional.id, kind, content)
        self.store.append(provisional)
        return provisional

    def set_remote_url(self, temp_id: str, url: str) -> None:
        """Record the uploaded URL of a pending attachment send."""
        pending = self._pending.get(temp_id)
        if pending is not None:
            pending.remote_url = url

    def has_echo(self, temp_id: str) -> bool:
        """Whether the realtime copy of a pending send has already arrived."""
        pending = self._pending.get(temp_id)
        return pending is not None and pending.echo is not None

    def confirm(self, temp_id: str, row: dict[str, Any]) -> ChatMessage:
        """Replace the placeholder with the authoritative row."""
        pending = self._pending.pop(temp_id, None)
        confirmed = ChatMessage.from_row(row)
        if not self.store.replace(temp_id, confirmed):
            self.store.append(confirmed)
        if pending is not None and pending.echo is not None and pending.echo.id != confirmed.id:
            self._redeliver(pending.echo)
        return confirmed

    def rollback(self, temp_id: str, error: Exception, message: str = SEND_FAILED_NOTICE) -> bool:
        """Remove the placeholder of a failed send and notify the user.

        Returns:
            bool: True if the row landed anyway (its realtime echo had been
            parked), in which case the echo replaces the placeholder and no
            notice is sent.
        """
        pending = self._pending.pop(temp_id, None)
        self.store.remove(temp_id)
        logger.warning("Send failed in conversation %s: %s", self.store.conversation_id, error)

        if pending is not None and pending.echo is not None:
            # The row was written even though the call failed (e.g. timeout)
            self._redeliver(pending.echo)
            return True

        if isinstance(error, OperationTimeoutError):
            message = SEND_TIMEOUT_NOTICE
        self.notify_error(message)
        return False

    def claim_echo(self, message: ChatMessage) -> bool:
        """Park a realtime copy of one of our own in-flight sends.

        Returns:
            bool: True if a pending send took the message, in which case the
            caller must not append it.
        """
        if message.sender_id != self.sender_id or message.id in self.store:
            return False
        for pending in self._pending.values():
            if pending.matches(message):
                pending.echo = message
                return True
        return False

    def _redeliver(self, message: ChatMessage) -> None:
        if not self.claim_echo(message):
            self.store.append(message)

    def notify_error(self, message: str) -> None:
        """Emit a transient error notice."""
        if self.notify is not None:
            self.notify(ChatNotice(level="error", message=message))

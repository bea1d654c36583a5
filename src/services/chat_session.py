"""One open conversation: store, realtime channel, senders and receipts."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from src.core.config import Settings, get_settings
from src.core.supabase import create_realtime_client
from src.schemas.message import ChatMessage
from src.services.attachment_pipeline import AttachmentPipeline
from src.services.chat_backend import ChatBackend
from src.services.chat_errors import ChatError, FetchError
from src.services.message_store import ChangeListener, MessageStore
from src.services.optimistic_sender import NoticeCallback, OptimisticSender
from src.services.read_receipts import ReadReceiptReconciler
from src.services.realtime_subscriber import RealtimeSubscriber

logger = logging.getLogger(__name__)


class ChatSession:
    """Chat state for a single viewer of a single conversation.

    The session exclusively owns its MessageStore. It is built when the
    conversation is opened and discarded on close; reopening starts again
    from a fresh fetch and a fresh subscription.
    """

    def __init__(
        self,
        backend: ChatBackend,
        conversation_id: str,
        user_id: str,
        on_change: ChangeListener | None = None,
        on_notice: NoticeCallback | None = None,
        settings: Settings | None = None,
        owns_backend: bool = False,
    ) -> None:
        """Initialize the session.

        Args:
            backend: Backend gateway (injected so tests can pass a fake).
            conversation_id: Conversation being viewed.
            user_id: Profile ID of the viewer.
            on_change: Called with a store snapshot after every change.
            on_notice: Called with transient notices.
            settings: Optional settings override.
            owns_backend: Whether close() should tear the backend down.
        """
        self.backend = backend
        self.conversation_id = conversation_id
        self.user_id = user_id
        self.settings = settings or get_settings()
        self._owns_backend = owns_backend
        self._on_change = on_change
        self._closed = False

        self.store = MessageStore(conversation_id)
        if on_change is not None:
            self.store.add_listener(on_change)
        self.sender = OptimisticSender(self.store, backend, user_id, notify=on_notice)
        self.reconciler = ReadReceiptReconciler(self.store, backend, user_id)
        self.subscriber = RealtimeSubscriber(
            self.store, backend, user_id, self.sender, self.reconciler
        )
        self.attachments = AttachmentPipeline(self.sender, backend, self.settings)

    @classmethod
    async def connect(
        cls,
        conversation_id: str,
        user_id: str,
        on_change: ChangeListener | None = None,
        on_notice: NoticeCallback | None = None,
        client_factory: Callable[[], Awaitable[object]] | None = None,
    ) -> "ChatSession":
        """Create a session with its own async Supabase client."""
        client = await (client_factory or create_realtime_client)()
        return cls(
            ChatBackend(client),  # type: ignore[arg-type]
            conversation_id,
            user_id,
            on_change=on_change,
            on_notice=on_notice,
            owns_backend=True,
        )

    async def __aenter__(self) -> "ChatSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def messages(self) -> list[ChatMessage]:
        """Current store contents."""
        return self.store.snapshot()

    async def open(self) -> None:
        """Subscribe, load the history and mark the other party's messages read.

        The channel is joined before the fetch so nothing written in between
        is missed; events received meanwhile are merged into the history.

        Raises:
            FetchError: If the history could not be loaded.
        """
        await self.subscriber.subscribe()
        await self.load()
        await self.reconciler.mark_existing_read()

    async def load(self) -> None:
        """Replace the store with the conversation's history.

        Raises:
            FetchError: If the history could not be loaded.
        """
        try:
            rows = await self.backend.fetch_messages(self.conversation_id)
        except FetchError:
            raise
        except ChatError as e:
            raise FetchError(f"Could not load conversation {self.conversation_id}: {e}") from e

        history = []
        for row in rows:
            try:
                history.append(ChatMessage.from_row(row))
            except ValidationError as e:
                logger.warning("Skipping malformed message row %s: %s", row.get("id"), e)
        known = {message.id for message in history}
        received = [message for message in self.store if message.id not in known]
        self.store.load(history + received)
        logger.info("Loaded %d messages for conversation %s", len(history), self.conversation_id)

    async def send_text(self, content: str) -> ChatMessage | None:
        """Send a text message."""
        return await self.sender.send_text(content)

    async def send_image(self, data: bytes, filename: str = "image") -> ChatMessage | None:
        """Send an image attachment."""
        return await self.attachments.send_image(data, filename)

    async def send_audio(
        self, data: bytes, filename: str = "audio.mp3", mime_type: str = "audio/mpeg"
    ) -> ChatMessage | None:
        """Send an audio clip."""
        return await self.attachments.send_audio(data, filename, mime_type)

    async def send_file(
        self, data: bytes, filename: str, mime_type: str = "application/octet-stream"
    ) -> ChatMessage | None:
        """Send a generic file."""
        return await self.attachments.send_file(data, filename, mime_type)

    async def close(self) -> None:
        """Release the channel and background work. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self.subscriber.unsubscribe()
        await self.reconciler.aclose()
        if self._on_change is not None:
            self.store.remove_listener(self._on_change)
        if self._owns_backend:
            await self.backend.close()
        logger.info("Closed chat session for conversation %s", self.conversation_id)

"""Gateway to the managed backend used by the chat pipeline.

Wraps one async Supabase client: message rows (PostgREST), realtime
channels and object storage. Every network call runs under a deadline and
is translated into a chat error, so callers never see transport exceptions.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import unquote, urlparse

from src.core.config import Settings, get_settings
from src.models.message import MessageInsert, MessageRow
from src.services.chat_errors import (
    ChatError,
    FetchError,
    OperationTimeoutError,
    SendError,
    SubscriptionError,
    UploadError,
)

if TYPE_CHECKING:
    from realtime import AsyncRealtimeChannel
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

MESSAGES_TABLE = "messages"
CONVERSATIONS_TABLE = "conversations"

# Public object URLs look like <origin>/storage/v1/object/public/<bucket>/<path>
PUBLIC_OBJECT_MARKER = "/object/public/"

RowCallback = Callable[[dict[str, Any]], None]
StatusCallback = Callable[[str, Exception | None], None]


def record_from_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Extract the changed row from a postgres_changes payload."""
    data = payload.get("data") or payload
    return data.get("record") or data.get("new") or {}


def split_public_url(url: str) -> tuple[str, str] | None:
    """Split a public storage URL into (bucket, object path).

    Args:
        url: Public URL returned by get_public_url.

    Returns:
        tuple | None: Bucket and path, or None if the URL is not a public
        object URL.
    """
    if not url:
        return None
    path = unquote(urlparse(url).path)
    if PUBLIC_OBJECT_MARKER not in path:
        return None
    parts = path.split(PUBLIC_OBJECT_MARKER, 1)[1].split("/")
    if len(parts) < 2 or not parts[0] or not parts[-1]:
        return None
    return parts[0], "/".join(parts[1:])


class ChatBackend:
    """Message, realtime and storage operations for one chat session."""

    def __init__(self, client: AsyncClient, settings: Settings | None = None) -> None:
        """Initialize the backend gateway.

        Args:
            client: Async Supabase client owned by the session.
            settings: Optional settings override (defaults to get_settings()).
        """
        self.client = client
        self.settings = settings or get_settings()
        self.timeout = self.settings.operation_timeout_seconds

    async def _call(
        self,
        operation: str,
        awaitable: Awaitable[T],
        error_cls: type[ChatError],
    ) -> T:
        """Await a backend call under the configured deadline.

        Raises:
            OperationTimeoutError: If the deadline expires.
            ChatError: ``error_cls`` wrapping any other failure.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(operation, self.timeout) from e
        except ChatError:
            raise
        except Exception as e:
            raise error_cls(f"{operation} failed: {e}") from e

    # Message rows

    async def fetch_messages(self, conversation_id: str) -> list[MessageRow]:
        """Fetch all messages of a conversation, oldest first.

        Raises:
            FetchError: If the query fails.
        """
        query = (
            self.client.table(MESSAGES_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=False)
        )
        response = await self._call("fetch_messages", query.execute(), FetchError)
        return response.data or []

    async def insert_message(self, payload: MessageInsert) -> MessageRow:
        """Insert a message row and return the authoritative row.

        Also bumps the conversation's last_message_at so conversation lists
        stay ordered; a failure there is logged, not raised.

        Raises:
            SendError: If the insert fails or returns no row.
        """
        query = self.client.table(MESSAGES_TABLE).insert(dict(payload))
        response = await self._call("insert_message", query.execute(), SendError)
        if not response.data:
            raise SendError("insert_message returned no row")
        row = response.data[0]

        try:
            await self._call(
                "touch_conversation",
                self.client.table(CONVERSATIONS_TABLE)
                .update({"last_message_at": row.get("created_at")})
                .eq("id", payload["conversation_id"])
                .execute(),
                SendError,
            )
        except ChatError as e:
            logger.warning("Could not bump last_message_at for %s: %s", payload["conversation_id"], e)

        return row

    async def find_message_by_file_url(self, conversation_id: str, file_url: str) -> MessageRow | None:
        """Look up the message row referencing an uploaded object, if any.

        Raises:
            FetchError: If the query fails.
        """
        query = (
            self.client.table(MESSAGES_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .eq("file_url", file_url)
            .limit(1)
        )
        response = await self._call("find_message_by_file_url", query.execute(), FetchError)
        return response.data[0] if response.data else None

    async def mark_conversation_read(
        self, conversation_id: str, reader_id: str
    ) -> list[dict[str, Any]]:
        """Mark every unread message not sent by ``reader_id`` as read.

        Returns:
            list[dict]: Rows that were updated.
        """
        query = (
            self.client.table(MESSAGES_TABLE)
            .update(self._read_values())
            .eq("conversation_id", conversation_id)
            .neq("sender_id", reader_id)
            .eq("is_read", False)
        )
        response = await self._call("mark_conversation_read", query.execute(), SendError)
        return response.data or []

    async def mark_read(self, message_ids: list[str]) -> list[dict[str, Any]]:
        """Mark specific messages as read.

        Returns:
            list[dict]: Rows that were updated.
        """
        if not message_ids:
            return []
        query = (
            self.client.table(MESSAGES_TABLE)
            .update(self._read_values())
            .in_("id", message_ids)
            .eq("is_read", False)
        )
        response = await self._call("mark_read", query.execute(), SendError)
        return response.data or []

    @staticmethod
    def _read_values() -> dict[str, Any]:
        return {"is_read": True, "read_at": datetime.now(timezone.utc).isoformat()}

    # Realtime

    async def subscribe(
        self,
        conversation_id: str,
        on_insert: RowCallback,
        on_update: RowCallback,
        on_status: StatusCallback | None = None,
    ) -> AsyncRealtimeChannel:
        """Open the conversation's channel for message INSERT and UPDATE events.

        Args:
            conversation_id: Conversation to listen to.
            on_insert: Called with the inserted row.
            on_update: Called with the updated row.
            on_status: Called with the subscription state name and error.

        Returns:
            AsyncRealtimeChannel: Handle to pass to unsubscribe().

        Raises:
            SubscriptionError: If the channel cannot be joined.
        """
        row_filter = f"conversation_id=eq.{conversation_id}"
        channel = self.client.channel(f"room:{conversation_id}")
        channel.on_postgres_changes(
            "INSERT",
            callback=lambda payload: on_insert(record_from_payload(payload)),
            table=MESSAGES_TABLE,
            schema="public",
            filter=row_filter,
        )
        channel.on_postgres_changes(
            "UPDATE",
            callback=lambda payload: on_update(record_from_payload(payload)),
            table=MESSAGES_TABLE,
            schema="public",
            filter=row_filter,
        )

        def _status(state: Any, error: Exception | None = None) -> None:
            if on_status is not None:
                on_status(str(getattr(state, "value", state)), error)

        await self._call("subscribe", channel.subscribe(_status), SubscriptionError)
        return channel

    async def unsubscribe(self, channel: AsyncRealtimeChannel) -> None:
        """Remove a channel from the realtime socket."""
        await self._call("unsubscribe", self.client.remove_channel(channel), SubscriptionError)

    # Storage

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Upload an object to the chat bucket and return its public URL.

        Raises:
            UploadError: If the upload fails.
        """
        bucket = self.client.storage.from_(self.settings.chat_storage_bucket)
        await self._call(
            "upload",
            bucket.upload(path=path, file=data, file_options={"content-type": content_type}),
            UploadError,
        )
        url = bucket.get_public_url(path)
        if inspect.isawaitable(url):
            url = await url
        return url

    async def delete_by_url(self, url: str) -> bool:
        """Delete an uploaded object given its public URL.

        Returns:
            bool: False if the URL does not point at a storage object.

        Raises:
            UploadError: If the storage call fails.
        """
        location = split_public_url(url)
        if location is None:
            logger.warning("Not a public storage URL, nothing to delete: %s", url)
            return False
        bucket, path = location
        logger.info("Deleting %s from bucket %s", path, bucket)
        await self._call(
            "delete_object",
            self.client.storage.from_(bucket).remove([path]),
            UploadError,
        )
        return True

    async def close(self) -> None:
        """Drop every channel left on the client's realtime socket."""
        try:
            await self._call("close", self.client.remove_all_channels(), SubscriptionError)
        except ChatError as e:
            logger.warning("Realtime teardown failed: %s", e)

"""Image, audio and file sends: preview, compress, upload, persist."""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from pathlib import PurePosixPath
from uuid import uuid4

from src.core.config import Settings, get_settings
from src.models.message import MessageInsert, MessageKind
from src.schemas.message import ChatMessage
from src.services.chat_backend import ChatBackend
from src.services.chat_errors import OperationTimeoutError, OrphanWriteError, UploadError
from src.services.image_compression import compress_image
from src.services.optimistic_sender import OptimisticSender

logger = logging.getLogger(__name__)

UPLOAD_FAILED_NOTICE = "Erreur lors de l'envoi du fichier."
TOO_LARGE_NOTICE = "Fichier trop volumineux."

# Kinds whose local bytes are shown inline while the send is pending
PREVIEWABLE_KINDS = {MessageKind.IMAGE, MessageKind.AUDIO}

DEFAULT_EXTENSIONS: dict[MessageKind, str] = {
    MessageKind.IMAGE: "webp",
    MessageKind.AUDIO: "mp3",
    MessageKind.FILE: "bin",
}


def to_data_url(data: bytes, mime_type: str) -> str:
    """Encode bytes as a data: URL usable as a local preview."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def file_extension(filename: str, mime_type: str, kind: MessageKind) -> str:
    """Pick the storage extension for an uncompressed attachment."""
    suffix = PurePosixPath(filename).suffix.lstrip(".").lower()
    if suffix:
        return suffix
    guessed = mimetypes.guess_extension(mime_type or "")
    if guessed:
        return guessed.lstrip(".")
    return DEFAULT_EXTENSIONS[kind]


class AttachmentPipeline:
    """Sends non-text messages through object storage."""

    def __init__(
        self,
        sender: OptimisticSender,
        backend: ChatBackend,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            sender: Optimistic sender owning placeholders and notices.
            backend: Backend gateway for storage and rows.
            settings: Optional settings override.
        """
        self.sender = sender
        self.backend = backend
        self.settings = settings or get_settings()

    async def send_image(self, data: bytes, filename: str = "image") -> ChatMessage | None:
        """Compress and send an image."""
        return await self._send(MessageKind.IMAGE, data, filename, _guess_mime(filename, "image/jpeg"))

    async def send_audio(
        self, data: bytes, filename: str = "audio.mp3", mime_type: str = "audio/mpeg"
    ) -> ChatMessage | None:
        """Send a recorded audio clip (already encoded by the recorder)."""
        return await self._send(MessageKind.AUDIO, data, filename, mime_type)

    async def send_file(
        self, data: bytes, filename: str, mime_type: str = "application/octet-stream"
    ) -> ChatMessage | None:
        """Send a generic file."""
        return await self._send(MessageKind.FILE, data, filename, mime_type)

    def storage_path(self, extension: str) -> str:
        """Randomized object path for a new attachment."""
        return (
            f"{self.settings.chat_attachment_prefix}/"
            f"{self.sender.store.conversation_id}/{uuid4().hex}.{extension}"
        )

    async def _send(
        self,
        kind: MessageKind,
        data: bytes,
        filename: str,
        mime_type: str,
    ) -> ChatMessage | None:
        if not data:
            return None
        if len(data) > self.settings.max_attachment_bytes:
            logger.info("Rejected %s attachment of %d bytes", kind.value, len(data))
            self.sender.notify_error(TOO_LARGE_NOTICE)
            return None

        preview = to_data_url(data, mime_type) if kind in PREVIEWABLE_KINDS else None
        provisional = self.sender.begin(kind, filename, preview_url=preview)

        try:
            url = await self._upload(kind, data, filename, mime_type)
        except Exception as e:
            self.sender.rollback(provisional.id, e, UPLOAD_FAILED_NOTICE)
            return None

        self.sender.set_remote_url(provisional.id, url)
        payload: MessageInsert = {
            "conversation_id": self.sender.store.conversation_id,
            "sender_id": self.sender.sender_id,
            "content": filename,
            "message_type": kind.value,
            "file_url": url,
        }
        try:
            row = await self.backend.insert_message(payload)
        except OperationTimeoutError as e:
            return await self._settle_timed_out_write(provisional.id, url, e)
        except Exception as e:
            orphan = OrphanWriteError(f"Message row write failed after upload: {e}", url)
            if not self.sender.rollback(provisional.id, orphan, UPLOAD_FAILED_NOTICE):
                await self._cleanup(orphan)
            return None

        return self.sender.confirm(provisional.id, row)

    async def _settle_timed_out_write(
        self, temp_id: str, url: str, error: OperationTimeoutError
    ) -> ChatMessage | None:
        """Resolve an insert whose deadline expired after a successful upload.

        The row may have been written anyway. The uploaded object is deleted
        only once a lookup shows that no message references it; if the
        lookup itself fails the object is kept.
        """
        if not self.sender.has_echo(temp_id):
            try:
                row = await self.backend.find_message_by_file_url(self.sender.store.conversation_id, url)
            except Exception as lookup_error:
                logger.warning("Could not check whether %s was persisted, keeping it: %s", url, lookup_error)
                self.sender.rollback(temp_id, error, UPLOAD_FAILED_NOTICE)
                return None
            if row is not None:
                logger.info("Timed out write of %s landed, confirming", url)
                return self.sender.confirm(temp_id, row)

        orphan = OrphanWriteError(f"Message row write timed out after upload: {error}", url)
        if not self.sender.rollback(temp_id, orphan, UPLOAD_FAILED_NOTICE):
            await self._cleanup(orphan)
        return None

    async def _upload(self, kind: MessageKind, data: bytes, filename: str, mime_type: str) -> str:
        if kind is MessageKind.IMAGE:
            try:
                compressed = await asyncio.to_thread(compress_image, data, self.settings)
            except Exception as e:
                raise UploadError(f"Image compression failed: {e}") from e
            body, content_type, extension = compressed.data, compressed.content_type, compressed.extension
        else:
            body, content_type, extension = data, mime_type, file_extension(filename, mime_type, kind)

        return await self.backend.upload(self.storage_path(extension), body, content_type)

    async def _cleanup(self, error: OrphanWriteError) -> None:
        """Delete an uploaded object that no message row references."""
        try:
            await self.backend.delete_by_url(error.file_url)
        except Exception as e:
            logger.error("Failed to delete orphaned upload %s: %s", error.file_url, e)


def _guess_mime(filename: str, default: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or default

"""WebSocket endpoint hosting a live chat session."""

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError

from src.api.deps import Conversations, authenticate_token
from src.api.middleware.error_handler import APIError
from src.models.message import MessageKind
from src.schemas.message import (
    ChatNotice,
    ErrorFrame,
    MessagesFrame,
    SendAttachmentFrame,
    SendTextFrame,
    client_frame_adapter,
)
from src.services.chat_errors import FetchError
from src.services.chat_session import ChatSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["chat"])

INVALID_FRAME_NOTICE = "Message invalide."
FETCH_FAILED_MESSAGE = "Impossible de charger les messages."

SessionFactory = Callable[..., Awaitable[ChatSession]]

# Exhaustive over attachment kinds; text goes through send_text
ATTACHMENT_SENDERS: dict[MessageKind, Callable[[ChatSession, SendAttachmentFrame, bytes], Awaitable[Any]]] = {
    MessageKind.IMAGE: lambda session, frame, data: session.send_image(data, frame.filename),
    MessageKind.AUDIO: lambda session, frame, data: session.send_audio(data, frame.filename, frame.mime_type),
    MessageKind.FILE: lambda session, frame, data: session.send_file(data, frame.filename, frame.mime_type),
}


def get_session_factory() -> SessionFactory:
    """Provide the chat session factory (overridable in tests)."""
    return ChatSession.connect


async def _pump(websocket: WebSocket, outbox: "asyncio.Queue[BaseModel]") -> None:
    """Forward queued frames to the socket, one at a time."""
    while True:
        frame = await outbox.get()
        try:
            await websocket.send_json(frame.model_dump(mode="json"))
        finally:
            outbox.task_done()


async def _handle_frame(session: ChatSession, raw: Any, outbox: "asyncio.Queue[BaseModel]") -> None:
    try:
        frame = client_frame_adapter.validate_python(raw)
    except ValidationError as e:
        logger.info("Rejected chat frame: %s", e.errors()[:1])
        outbox.put_nowait(ChatNotice(message=INVALID_FRAME_NOTICE))
        return

    if isinstance(frame, SendTextFrame):
        await session.send_text(frame.content)
        return

    try:
        data = base64.b64decode(frame.data, validate=True)
    except (binascii.Error, ValueError):
        outbox.put_nowait(ChatNotice(message=INVALID_FRAME_NOTICE))
        return
    await ATTACHMENT_SENDERS[frame.kind](session, frame, data)


@router.websocket("/{conversation_id}/ws")
async def chat_socket(
    websocket: WebSocket,
    conversation_id: str,
    service: Conversations,
    connect: Annotated[SessionFactory, Depends(get_session_factory)],
    token: Annotated[str, Query()] = "",
) -> None:
    """Live chat for one conversation.

    Pushes a ``messages`` frame with the full store after every change and
    ``notice`` frames for transient errors. Accepts ``send_text`` and
    ``send_attachment`` frames; sends run concurrently.
    """
    try:
        user = authenticate_token(token)
        await service.get_for_participant(conversation_id, user.user_id)
    except (HTTPException, APIError) as e:
        logger.info("Chat socket refused for %s: %s", conversation_id, e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    outbox: asyncio.Queue[BaseModel] = asyncio.Queue()
    session = await connect(
        conversation_id,
        user.user_id,
        on_change=lambda messages: outbox.put_nowait(MessagesFrame(messages=messages)),
        on_notice=outbox.put_nowait,
    )
    writer = asyncio.create_task(_pump(websocket, outbox))
    sends: set[asyncio.Task[None]] = set()

    try:
        try:
            await session.open()
        except FetchError as e:
            logger.warning("History load failed for %s: %s", conversation_id, e)
            outbox.put_nowait(ErrorFrame(error="fetch_error", message=FETCH_FAILED_MESSAGE))
            await outbox.join()
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return

        outbox.put_nowait(MessagesFrame(messages=session.messages))
        while True:
            text = await websocket.receive_text()
            try:
                raw = json.loads(text)
            except (TypeError, ValueError):
                logger.info("Rejected non-JSON chat frame for %s", conversation_id)
                outbox.put_nowait(ChatNotice(message=INVALID_FRAME_NOTICE))
                continue
            task = asyncio.create_task(_handle_frame(session, raw, outbox))
            sends.add(task)
            task.add_done_callback(sends.discard)

    except WebSocketDisconnect:
        logger.debug("Chat socket closed for %s", conversation_id)

    finally:
        for task in [*sends, writer]:
            task.cancel()
        await asyncio.gather(*sends, writer, return_exceptions=True)
        await session.close()

"""Message Pydantic schemas for store entries and chat socket frames."""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from src.models.message import MessageKind

# Temporary ids are never produced by the database (which issues UUIDs).
TEMP_ID_PREFIX = "temp-"


class ChatMessage(BaseModel):
    """One entry of a conversation's message store.

    Mirrors a messages row, plus the transient ``optimistic`` flag which is
    only ever set on entries created locally and awaiting confirmation.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Server id, or a temp- id while optimistic")
    conversation_id: str = Field(description="Parent conversation ID")
    sender_id: str = Field(description="Author profile ID")
    content: str = Field(default="", description="Text body, or a caption for attachments")
    message_type: MessageKind = Field(default=MessageKind.TEXT, description="Content kind")
    file_url: str | None = Field(default=None, description="Attachment URL (local preview while optimistic)")
    created_at: datetime = Field(description="Creation timestamp, the ordering key")
    read_at: datetime | None = Field(default=None, description="When the recipient read the message")
    optimistic: bool = Field(default=False, description="Pending local entry, never persisted")

    @field_validator("id", "conversation_id", "sender_id", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("message_type", mode="before")
    @classmethod
    def _default_kind(cls, value: Any) -> Any:
        # Rows written before attachments existed have no message_type
        return value or MessageKind.TEXT

    @property
    def is_read(self) -> bool:
        """Whether the recipient has read the message."""
        return self.read_at is not None

    @property
    def is_temporary(self) -> bool:
        """Whether the id is a locally generated placeholder id."""
        return self.id.startswith(TEMP_ID_PREFIX)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ChatMessage":
        """Build a store entry from a messages table row.

        Rows carry both an ``is_read`` flag and a ``read_at`` timestamp;
        a row flagged read without a timestamp is treated as read at its
        creation time so the value is stable across fetches.

        Args:
            row: Row as returned by PostgREST or a realtime payload.

        Returns:
            ChatMessage: Confirmed (non-optimistic) entry.
        """
        data = {key: value for key, value in row.items() if key in cls.model_fields}
        if data.get("read_at") is None and row.get("is_read"):
            data["read_at"] = row.get("created_at")
        data["optimistic"] = False
        return cls.model_validate(data)


class MessageHistoryResponse(BaseModel):
    """Schema for a conversation's full message history."""

    model_config = ConfigDict(from_attributes=True)

    conversation_id: str = Field(description="Conversation ID")
    messages: list[ChatMessage] = Field(default_factory=list, description="Messages, oldest first")


class MarkReadResponse(BaseModel):
    """Schema for a batch mark-read result."""

    model_config = ConfigDict(from_attributes=True)

    conversation_id: str = Field(description="Conversation ID")
    marked_ids: list[str] = Field(default_factory=list, description="IDs flipped to read")


# Chat socket frames


class SendTextFrame(BaseModel):
    """Client frame: send a text message."""

    type: Literal["send_text"]
    content: str = Field(default="", max_length=10000)


class SendAttachmentFrame(BaseModel):
    """Client frame: send an image, audio clip or file (base64 payload)."""

    type: Literal["send_attachment"]
    kind: MessageKind
    filename: str = Field(default="attachment", max_length=255)
    mime_type: str = Field(default="application/octet-stream")
    data: str = Field(description="Base64 encoded file content")

    @field_validator("kind")
    @classmethod
    def _attachment_kind(cls, value: MessageKind) -> MessageKind:
        if not value.is_attachment:
            raise ValueError("text messages are sent with send_text")
        return value


ClientFrame = Annotated[SendTextFrame | SendAttachmentFrame, Field(discriminator="type")]
client_frame_adapter: TypeAdapter[SendTextFrame | SendAttachmentFrame] = TypeAdapter(ClientFrame)


class MessagesFrame(BaseModel):
    """Server frame: current store contents."""

    type: Literal["messages"] = "messages"
    messages: list[ChatMessage] = Field(default_factory=list)


class ChatNotice(BaseModel):
    """Server frame: transient, toast-style notification."""

    type: Literal["notice"] = "notice"
    level: Literal["info", "error"] = "error"
    message: str


class ErrorFrame(BaseModel):
    """Server frame: the session cannot continue (sent before closing)."""

    type: Literal["error"] = "error"
    error: str
    message: str

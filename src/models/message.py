"""Message model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class MessageKind(str, Enum):
    """Message content kinds matching the message_type column."""

    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"
    FILE = "file"

    @property
    def is_attachment(self) -> bool:
        """Whether messages of this kind reference an uploaded object."""
        return self is not MessageKind.TEXT


class MessageRow(TypedDict, total=False):
    """Message table row representation.

    Represents a message stored in the messages table.
    """

    id: str
    conversation_id: str
    sender_id: str
    content: str
    message_type: MessageKind
    file_url: str | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime


class MessageInsert(TypedDict, total=False):
    """Data required to create a new message."""

    conversation_id: str
    sender_id: str
    content: str
    message_type: str
    file_url: str | None

"""Database model type definitions."""

from src.models.conversation import ConversationRow
from src.models.message import MessageInsert, MessageKind, MessageRow

__all__ = [
    "ConversationRow",
    "MessageInsert",
    "MessageKind",
    "MessageRow",
]

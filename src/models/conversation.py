"""Conversation model type definitions for database operations."""

from datetime import datetime
from typing import Any, TypedDict


class ConversationRow(TypedDict, total=False):
    """Conversation table row representation.

    A conversation is a thread between the buyer and the seller of one ad.
    Rows are created when a buyer first contacts a seller; the chat
    pipeline only reads them and bumps last_message_at.
    """

    id: str
    ad_id: str | None
    buyer_id: str
    seller_id: str
    last_message_at: datetime
    created_at: datetime
    ad: dict[str, Any] | None
    buyer: dict[str, Any] | None
    seller: dict[str, Any] | None

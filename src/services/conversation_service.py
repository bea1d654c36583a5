"""Conversation business logic service."""

from collections.abc import Callable
from datetime import datetime, timezone

from supabase import Client

from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.core.supabase import get_supabase_client
from src.models.conversation import ConversationRow
from src.models.message import MessageKind
from src.schemas.conversation import AdSnapshot, ConversationResponse, OtherParty
from src.schemas.message import ChatMessage
from src.services.smart_replies import suggest_replies

# One preview per kind; every MessageKind must have an entry
KIND_PREVIEWS: dict[MessageKind, Callable[[ChatMessage], str]] = {
    MessageKind.TEXT: lambda message: message.content,
    MessageKind.AUDIO: lambda message: "🎤 Message vocal",
    MessageKind.IMAGE: lambda message: "📷 Photo",
    MessageKind.FILE: lambda message: f"📎 {message.content or 'Fichier'}",
}


def message_preview(message: ChatMessage) -> str:
    """Short text shown for a message in the conversation list."""
    return KIND_PREVIEWS[message.message_type](message)


class ConversationService:
    """Service for reading conversations and their messages."""

    CONVERSATION_SELECT = (
        "*, ad:ads(title, image_urls), "
        "buyer:profiles!buyer_id(id, full_name, avatar_url), "
        "seller:profiles!seller_id(id, full_name, avatar_url)"
    )

    def __init__(self, client: Client | None = None) -> None:
        """Initialize conversation service.

        Args:
            client: Optional Supabase client (defaults to the shared client).
        """
        self.client = client or get_supabase_client()

    async def get_conversation(self, conversation_id: str) -> ConversationRow | None:
        """Get a conversation by ID.

        Args:
            conversation_id: The conversation's ID.

        Returns:
            dict | None: The conversation data or None if not found.
        """
        response = (
            self.client.table("conversations")
            .select("*")
            .eq("id", conversation_id)
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def get_for_participant(self, conversation_id: str, user_id: str) -> ConversationRow:
        """Get a conversation the user takes part in.

        Raises:
            NotFoundError: If the conversation does not exist.
            AuthorizationError: If the user is neither buyer nor seller.
        """
        conversation = await self.get_conversation(conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        if user_id not in (str(conversation.get("buyer_id")), str(conversation.get("seller_id"))):
            raise AuthorizationError("You do not have access to this conversation")
        return conversation

    async def list_conversations(self, user_id: str) -> list[ConversationResponse]:
        """List the user's conversations, most recently active first.

        Args:
            user_id: The viewer's profile ID.

        Returns:
            list[ConversationResponse]: Conversations with other-party snapshot.
        """
        response = (
            self.client.table("conversations")
            .select(self.CONVERSATION_SELECT)
            .or_(f"buyer_id.eq.{user_id},seller_id.eq.{user_id}")
            .order("last_message_at", desc=True)
            .execute()
        )
        rows = response.data or []

        conversations = []
        for row in rows:
            is_buyer = str(row["buyer_id"]) == user_id
            other = row.get("seller") if is_buyer else row.get("buyer")
            last_message = await self._get_last_message(row["id"])

            conversations.append(
                ConversationResponse(
                    id=row["id"],
                    ad_id=row.get("ad_id"),
                    buyer_id=row["buyer_id"],
                    seller_id=row["seller_id"],
                    last_message_at=row.get("last_message_at"),
                    created_at=row["created_at"],
                    ad=AdSnapshot(**row["ad"]) if row.get("ad") else None,
                    other_party=OtherParty(**other) if other else None,
                    unread_count=await self._count_unread(row["id"], user_id),
                    last_message_preview=message_preview(last_message) if last_message else None,
                )
            )

        return conversations

    async def _get_last_message(self, conversation_id: str) -> ChatMessage | None:
        """Get the most recent message of a conversation."""
        response = (
            self.client.table("messages")
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )

        if response.data:
            return ChatMessage.from_row(response.data[0])
        return None

    async def _count_unread(self, conversation_id: str, user_id: str) -> int:
        """Count messages from the other party the user has not read."""
        response = (
            self.client.table("messages")
            .select("id", count="exact")
            .eq("conversation_id", conversation_id)
            .neq("sender_id", user_id)
            .eq("is_read", False)
            .execute()
        )
        return response.count or 0

    # Message operations

    async def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        """Get every message of a conversation, oldest first.

        Args:
            conversation_id: The conversation's ID.

        Returns:
            list[ChatMessage]: Messages in display order.
        """
        response = (
            self.client.table("messages")
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=False)
            .execute()
        )

        return [ChatMessage.from_row(row) for row in response.data or []]

    async def mark_read(self, conversation_id: str, reader_id: str) -> list[str]:
        """Mark the other party's unread messages as read in one update.

        Args:
            conversation_id: The conversation's ID.
            reader_id: Profile ID of the reader.

        Returns:
            list[str]: IDs of messages that were updated.
        """
        response = (
            self.client.table("messages")
            .update({"is_read": True, "read_at": datetime.now(timezone.utc).isoformat()})
            .eq("conversation_id", conversation_id)
            .neq("sender_id", reader_id)
            .eq("is_read", False)
            .execute()
        )

        return [str(row["id"]) for row in response.data or []]

    async def get_suggestions(self, conversation: ConversationRow, viewer_id: str) -> list[str]:
        """Reply suggestions for the viewer of a conversation."""
        last_message = await self._get_last_message(str(conversation["id"]))
        return suggest_replies(
            viewer_id=viewer_id,
            seller_id=str(conversation["seller_id"]),
            last_message_text=(
                last_message.content
                if last_message and last_message.message_type is MessageKind.TEXT
                else None
            ),
            last_message_sender_id=last_message.sender_id if last_message else None,
        )

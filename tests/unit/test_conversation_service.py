"""Unit tests for ConversationService."""

from unittest.mock import MagicMock, patch

import pytest

from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.models.message import MessageKind
from src.schemas.message import ChatMessage
from src.services.conversation_service import KIND_PREVIEWS, ConversationService, message_preview

CONVERSATION = {
    "id": "770e8400-e29b-41d4-a716-446655440000",
    "ad_id": "880e8400-e29b-41d4-a716-446655440000",
    "buyer_id": "buyer-1",
    "seller_id": "seller-1",
    "last_message_at": "2024-01-02T00:00:00Z",
    "created_at": "2024-01-01T00:00:00Z",
}


def response(data: object = None, count: int | None = None) -> MagicMock:
    """Build a PostgREST-style response."""
    mock_response = MagicMock()
    mock_response.data = data
    mock_response.count = count
    return mock_response


def message(kind: str, content: str = "", sender_id: str = "buyer-1") -> ChatMessage:
    """Build a message of the given kind."""
    return ChatMessage(
        id="m1",
        conversation_id=CONVERSATION["id"],
        sender_id=sender_id,
        content=content,
        message_type=kind,
        created_at="2024-01-02T00:00:00Z",
    )


@pytest.fixture
def mock_supabase() -> MagicMock:
    """Create a mock Supabase client."""
    return MagicMock()


@pytest.fixture
def conversation_service(mock_supabase: MagicMock) -> ConversationService:
    """Create ConversationService with mocked client."""
    with patch("src.services.conversation_service.get_supabase_client", return_value=mock_supabase):
        return ConversationService()


def set_last_message(mock_supabase: MagicMock, rows: list[dict]) -> None:
    select = mock_supabase.table.return_value.select.return_value
    select.eq.return_value.order.return_value.limit.return_value.execute.return_value = response(rows)


def set_unread_count(mock_supabase: MagicMock, count: int) -> None:
    select = mock_supabase.table.return_value.select.return_value
    select.eq.return_value.neq.return_value.eq.return_value.execute.return_value = response([], count)


class TestMessagePreview:
    """Tests for message_preview."""

    def test_every_kind_has_a_preview(self) -> None:
        """Test that the preview table covers all message kinds."""
        assert set(KIND_PREVIEWS) == set(MessageKind)

    @pytest.mark.parametrize(
        ("kind", "content", "expected"),
        [
            ("text", "Salam", "Salam"),
            ("audio", "voice.mp3", "🎤 Message vocal"),
            ("image", "photo.png", "📷 Photo"),
            ("file", "contrat.pdf", "📎 contrat.pdf"),
            ("file", "", "📎 Fichier"),
        ],
    )
    def test_preview_per_kind(self, kind: str, content: str, expected: str) -> None:
        """Test the preview shown for each kind."""
        assert message_preview(message(kind, content)) == expected


class TestGetForParticipant:
    """Tests for get_for_participant method."""

    @pytest.mark.asyncio
    async def test_returns_conversation_for_buyer(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that a participant gets the conversation."""
        query = mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value
        query.execute.return_value = response(CONVERSATION)

        result = await conversation_service.get_for_participant(CONVERSATION["id"], "buyer-1")

        assert result == CONVERSATION

    @pytest.mark.asyncio
    async def test_raises_not_found(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that a missing conversation raises NotFoundError."""
        query = mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value
        query.execute.return_value = None

        with pytest.raises(NotFoundError):
            await conversation_service.get_for_participant("missing", "buyer-1")

    @pytest.mark.asyncio
    async def test_raises_for_outsider(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that a non-participant is refused."""
        query = mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value
        query.execute.return_value = response(CONVERSATION)

        with pytest.raises(AuthorizationError):
            await conversation_service.get_for_participant(CONVERSATION["id"], "stranger")


class TestListConversations:
    """Tests for list_conversations method."""

    @pytest.mark.asyncio
    async def test_maps_other_party_for_buyer(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that the buyer sees the seller as the other party."""
        row = {
            **CONVERSATION,
            "ad": {"title": "Golf 7", "image_urls": None},
            "buyer": {"id": "buyer-1", "full_name": "Amine", "avatar_url": None},
            "seller": {"id": "seller-1", "full_name": "Youssef", "avatar_url": "https://cdn/y.png"},
        }
        select = mock_supabase.table.return_value.select.return_value
        select.or_.return_value.order.return_value.execute.return_value = response([row])
        set_last_message(mock_supabase, [{**message("image", "photo.png").model_dump(), "is_read": False}])
        set_unread_count(mock_supabase, 3)

        result = await conversation_service.list_conversations("buyer-1")

        assert len(result) == 1
        conversation = result[0]
        assert conversation.other_party.full_name == "Youssef"
        assert conversation.ad.title == "Golf 7"
        assert conversation.ad.image_urls == []
        assert conversation.unread_count == 3
        assert conversation.last_message_preview == "📷 Photo"
        select.or_.assert_called_with("buyer_id.eq.buyer-1,seller_id.eq.buyer-1")

    @pytest.mark.asyncio
    async def test_maps_other_party_for_seller(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that the seller sees the buyer as the other party."""
        row = {
            **CONVERSATION,
            "buyer": {"id": "buyer-1", "full_name": "Amine", "avatar_url": None},
            "seller": {"id": "seller-1", "full_name": "Youssef", "avatar_url": None},
        }
        select = mock_supabase.table.return_value.select.return_value
        select.or_.return_value.order.return_value.execute.return_value = response([row])
        set_last_message(mock_supabase, [])
        set_unread_count(mock_supabase, 0)

        result = await conversation_service.list_conversations("seller-1")

        assert result[0].other_party.full_name == "Amine"
        assert result[0].last_message_preview is None
        assert result[0].unread_count == 0


class TestMessages:
    """Tests for message reads and writes."""

    @pytest.mark.asyncio
    async def test_get_messages(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that rows are returned as chat messages, oldest first."""
        rows = [
            {**message("text", "Salam").model_dump(), "id": "m1"},
            {**message("text", "Labas").model_dump(), "id": "m2", "is_read": True},
        ]
        select = mock_supabase.table.return_value.select.return_value
        select.eq.return_value.order.return_value.execute.return_value = response(rows)

        result = await conversation_service.get_messages(CONVERSATION["id"])

        assert [m.id for m in result] == ["m1", "m2"]
        assert result[1].is_read
        select.eq.return_value.order.assert_called_with("created_at", desc=False)

    @pytest.mark.asyncio
    async def test_mark_read_only_other_party(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that only the other party's unread messages are updated."""
        update = mock_supabase.table.return_value.update
        chain = update.return_value.eq.return_value.neq.return_value.eq.return_value
        chain.execute.return_value = response([{"id": "m1"}, {"id": "m2"}])

        marked = await conversation_service.mark_read(CONVERSATION["id"], "seller-1")

        assert marked == ["m1", "m2"]
        assert update.call_args.args[0]["is_read"] is True
        update.return_value.eq.return_value.neq.assert_called_with("sender_id", "seller-1")


class TestGetSuggestions:
    """Tests for get_suggestions method."""

    @pytest.mark.asyncio
    async def test_seller_gets_smart_replies(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that a buyer's question produces seller suggestions."""
        set_last_message(mock_supabase, [message("text", "Chhal akhir thaman?").model_dump()])

        suggestions = await conversation_service.get_suggestions(CONVERSATION, "seller-1")

        assert "Akhir thaman howa hada." in suggestions

    @pytest.mark.asyncio
    async def test_attachment_gives_no_smart_replies(
        self, conversation_service: ConversationService, mock_supabase: MagicMock
    ) -> None:
        """Test that attachment captions are not matched against keywords."""
        set_last_message(mock_supabase, [message("file", "prix.pdf").model_dump()])

        assert await conversation_service.get_suggestions(CONVERSATION, "seller-1") == []

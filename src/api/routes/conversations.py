"""Conversation API routes."""

import logging

from fastapi import APIRouter

from src.api.deps import Conversations, CurrentUser
from src.schemas.conversation import ConversationListResponse, SuggestionsResponse
from src.schemas.message import MarkReadResponse, MessageHistoryResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get(
    "",
    response_model=ConversationListResponse,
    summary="List conversations",
    description="Lists the conversations the user takes part in, most recently active first.",
)
async def list_conversations(
    user: CurrentUser,
    service: Conversations,
) -> ConversationListResponse:
    """List the current user's conversations.

    Args:
        user: Authenticated user.
        service: Conversation service.

    Returns:
        ConversationListResponse: Conversations with the other party's profile.
    """
    conversations = await service.list_conversations(user.user_id)
    return ConversationListResponse(conversations=conversations)


@router.get(
    "/{conversation_id}/messages",
    response_model=MessageHistoryResponse,
    summary="Get message history",
    description="Returns every message of a conversation, oldest first.",
)
async def get_messages(
    conversation_id: str,
    user: CurrentUser,
    service: Conversations,
) -> MessageHistoryResponse:
    """Get the full history of a conversation the user takes part in."""
    await service.get_for_participant(conversation_id, user.user_id)
    messages = await service.get_messages(conversation_id)
    return MessageHistoryResponse(conversation_id=conversation_id, messages=messages)


@router.post(
    "/{conversation_id}/read",
    response_model=MarkReadResponse,
    summary="Mark conversation read",
    description="Marks every unread message from the other party as read.",
)
async def mark_read(
    conversation_id: str,
    user: CurrentUser,
    service: Conversations,
) -> MarkReadResponse:
    """Mark the other party's messages as read."""
    await service.get_for_participant(conversation_id, user.user_id)
    marked = await service.mark_read(conversation_id, user.user_id)
    logger.info("Marked %d messages read in %s", len(marked), conversation_id)
    return MarkReadResponse(conversation_id=conversation_id, marked_ids=marked)


@router.get(
    "/{conversation_id}/suggestions",
    response_model=SuggestionsResponse,
    summary="Reply suggestions",
    description="Quick replies for buyers, smart replies for sellers answering the buyer.",
)
async def get_suggestions(
    conversation_id: str,
    user: CurrentUser,
    service: Conversations,
) -> SuggestionsResponse:
    """Suggest replies for the current user."""
    conversation = await service.get_for_participant(conversation_id, user.user_id)
    role = "seller" if str(conversation["seller_id"]) == user.user_id else "buyer"
    suggestions = await service.get_suggestions(conversation, user.user_id)
    return SuggestionsResponse(conversation_id=conversation_id, role=role, suggestions=suggestions)

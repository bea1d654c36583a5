"""Conversation Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OtherParty(BaseModel):
    """Snapshot of the participant on the other side of the conversation."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Profile ID")
    full_name: str | None = Field(default=None, description="Display name")
    avatar_url: str | None = Field(default=None, description="Avatar URL")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if value is not None else value


class AdSnapshot(BaseModel):
    """Snapshot of the ad the conversation is about."""

    model_config = ConfigDict(from_attributes=True)

    title: str | None = Field(default=None, description="Ad title")
    image_urls: list[str] = Field(default_factory=list, description="Ad image URLs")

    @field_validator("image_urls", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []


class ConversationResponse(BaseModel):
    """Schema for conversation API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Conversation unique identifier")
    ad_id: str | None = Field(default=None, description="Ad the conversation is about")
    buyer_id: str = Field(description="Buyer profile ID")
    seller_id: str = Field(description="Seller profile ID")
    last_message_at: datetime | None = Field(default=None, description="Timestamp of last message")
    created_at: datetime = Field(description="Creation timestamp")
    ad: AdSnapshot | None = Field(default=None, description="Ad snapshot")
    other_party: OtherParty | None = Field(default=None, description="The other participant")
    unread_count: int = Field(default=0, description="Messages from the other party not yet read")
    last_message_preview: str | None = Field(default=None, description="Preview of the last message")

    @field_validator("id", "ad_id", "buyer_id", "seller_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else value


class ConversationListResponse(BaseModel):
    """Schema for the viewer's conversation list."""

    model_config = ConfigDict(from_attributes=True)

    conversations: list[ConversationResponse] = Field(description="Conversations, most recent first")


class SuggestionsResponse(BaseModel):
    """Schema for reply suggestions."""

    model_config = ConfigDict(from_attributes=True)

    conversation_id: str = Field(description="Conversation ID")
    role: str = Field(description="Viewer role in the conversation (buyer/seller)")
    suggestions: list[str] = Field(default_factory=list, description="Suggested replies")

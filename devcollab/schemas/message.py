"""Pydantic schemas for chat messages.

Inbound WebSocket payloads use the camelCase keys of the wire protocol
(``projectId``, ``messageId``, ``isTyping``); snake_case is accepted too.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..config import settings
from .user import UserProfile


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _clean_text(value: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError("Message text is required")
    if len(text) > settings.chat_message_max_length:
        raise ValueError(
            f"Message cannot exceed {settings.chat_message_max_length} characters"
        )
    return text


class MessageCreate(CamelModel):
    """Payload for ``send-message`` and ``POST /api/chat/{project_id}/messages``."""

    text: str
    mentions: List[UUID] = Field(default_factory=list)

    @field_validator("text")
    @classmethod
    def validate_text(cls, value: str) -> str:
        return _clean_text(value)


class SendMessagePayload(MessageCreate):
    """WebSocket ``send-message`` payload."""

    project_id: UUID


class MessageUpdate(CamelModel):
    """Payload for editing a message."""

    text: str

    @field_validator("text")
    @classmethod
    def validate_text(cls, value: str) -> str:
        return _clean_text(value)


class EditMessagePayload(MessageUpdate):
    """WebSocket ``edit-message`` payload."""

    message_id: UUID


class DeleteMessagePayload(CamelModel):
    """WebSocket ``delete-message`` payload."""

    message_id: UUID


class TypingPayload(CamelModel):
    """WebSocket ``typing`` payload."""

    project_id: UUID
    is_typing: bool = False


class MessageResponse(CamelModel):
    """Fully resolved chat message as broadcast to the room."""

    id: UUID
    project_id: UUID
    sender: Optional[UserProfile] = None
    text: str
    mentions: List[UserProfile] = Field(default_factory=list)
    edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime


class MessageListResponse(CamelModel):
    """Paginated chat history."""

    count: int
    total: int
    total_pages: int
    current_page: int
    data: List[MessageResponse]

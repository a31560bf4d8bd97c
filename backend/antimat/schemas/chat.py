"""Pydantic schemas for group chat."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, Field

from antimat.schemas.base import BaseSchema, Pagination


class ChatMessageRequest(BaseSchema):
    """Request to send a chat message."""

    text: str = Field(..., max_length=10000)


class SenderRead(BaseSchema):
    id: UUID
    name: str
    avatar: str | None = None


class ChatMessageRead(BaseSchema):
    """
    One chat row. id is the sequence number clients pass back as
    lastMessageId when polling.
    """

    id: int
    group_id: UUID
    sender: SenderRead | None = None
    type: str
    text: str
    meta: dict[str, Any] | None = Field(
        None, validation_alias=AliasChoices("meta", "metadata"), serialization_alias="metadata"
    )
    created_at: datetime


class ChatMessagePayload(BaseSchema):
    message: ChatMessageRead


class ChatHistory(BaseSchema):
    messages: list[ChatMessageRead]
    pagination: Pagination


class ChatPoll(BaseSchema):
    messages: list[ChatMessageRead]
    has_new_messages: bool

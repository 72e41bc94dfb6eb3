"""Conversation and message domain models."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]


class ChatMessage(BaseModel):
    """Single message within a conversation."""

    message_id: UUID
    conversation_id: UUID
    role: Role
    content: str
    confidence_score: float | None = Field(None, ge=0, le=100)
    created_at: datetime


class ConversationSummary(BaseModel):
    """Conversation without its messages."""

    conversation_id: UUID
    user_id: UUID
    title: str
    document_ids: list[UUID]
    created_at: datetime


class ConversationDetail(BaseModel):
    """Conversation with its ordered messages."""

    conversation: ConversationSummary
    messages: list[ChatMessage]

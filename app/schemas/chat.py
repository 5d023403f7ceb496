from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base import APIModel, SuccessResponse


class ParticipantSummary(APIModel):
    id: UUID
    name: Optional[str] = None
    profile_picture: Optional[str] = None


class StartChatRequest(APIModel):
    target_user_id: str  # validated by the service so a bad id is a 400


class PostMessageRequest(APIModel):
    content: str = ""


class MessageResponse(APIModel):
    id: UUID
    sequence: int
    sender: ParticipantSummary
    content: str
    created_at: datetime
    read_by: list[UUID] = Field(default_factory=list)


class ChatResponse(APIModel):
    id: UUID
    participants: list[ParticipantSummary]
    last_message_at: datetime
    created_at: datetime


class ChatSummary(ChatResponse):
    unread_count: int
    last_message: Optional[MessageResponse] = None


class ChatEnvelope(SuccessResponse):
    chat: ChatResponse


class ChatListResponse(SuccessResponse):
    chats: list[ChatSummary]


class MessageEnvelope(APIModel):
    success: bool = True
    message: MessageResponse


class MessageListResponse(SuccessResponse):
    messages: list[MessageResponse]


class MarkReadResponse(SuccessResponse):
    marked: int

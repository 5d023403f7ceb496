"""
Kindred — Chat API

Poll-based chat between two users, mounted under ``/chat``.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.schemas.chat import (
    ChatEnvelope,
    ChatListResponse,
    ChatResponse,
    MarkReadResponse,
    MessageEnvelope,
    MessageListResponse,
    PostMessageRequest,
    StartChatRequest,
)
from app.services.chat_service import ChatService
from app.utils.security import AuthenticatedUser

router = APIRouter()

_chat_service: ChatService | None = None


def _get_chat_service() -> ChatService:
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service


@router.get("/", response_model=ChatListResponse, summary="List my chats")
async def list_chats(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ChatListResponse:
    chats = await _get_chat_service().list_chats(current_user.user_id, db)
    return ChatListResponse(chats=chats)


@router.get(
    "/messages/{chat_id}",
    response_model=MessageListResponse,
    summary="Messages of a chat in order",
)
async def list_messages(
    chat_id: uuid.UUID,
    offset: int = Query(0, description="Messages to skip"),
    limit: Optional[int] = Query(None, description="Maximum messages to return"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    messages = await _get_chat_service().list_messages(
        chat_id, current_user.user_id, db, offset=offset, limit=limit
    )
    return MessageListResponse(messages=messages)


@router.post("/start", response_model=ChatEnvelope, summary="Start or resume a chat")
async def start_chat(
    payload: StartChatRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ChatEnvelope:
    chat = await _get_chat_service().start_or_get_chat(
        current_user.user_id, payload.target_user_id, db
    )
    return ChatEnvelope(chat=ChatResponse.model_validate(chat))


@router.post(
    "/{chat_id}/message",
    response_model=MessageEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message",
)
async def post_message(
    chat_id: uuid.UUID,
    payload: PostMessageRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageEnvelope:
    message = await _get_chat_service().post_message(
        chat_id, current_user.user_id, payload.content, db
    )
    return MessageEnvelope(message=message)


@router.post("/{chat_id}/read", response_model=MarkReadResponse, summary="Mark a chat as read")
async def mark_read(
    chat_id: uuid.UUID,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MarkReadResponse:
    marked = await _get_chat_service().mark_read(chat_id, current_user.user_id, db)
    return MarkReadResponse(marked=marked)

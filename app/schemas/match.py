from datetime import datetime
from typing import Optional
from uuid import UUID

from app.schemas.base import APIModel, SuccessResponse


class SwipeRequest(APIModel):
    target_user_id: UUID
    direction: str  # left / right, checked by the service


class SwipeResponse(SuccessResponse):
    matched: bool
    swipe_limit: Optional[int] = None
    spin_limit: Optional[int] = None


class SpinWinRequest(APIModel):
    target_user_id: UUID
    is_spinner_winner: bool = False
    direction: Optional[str] = None


class ConnectUserRequest(APIModel):
    winner_id: UUID


class PinRequest(APIModel):
    target_user_id: UUID


class PinResponse(SuccessResponse):
    pinned: bool
    pinned_matches: list[UUID]


class LastMessage(APIModel):
    content: str
    sender_id: UUID
    created_at: datetime


class MatchListItem(APIModel):
    id: UUID
    name: Optional[str] = None
    profile_picture: Optional[str] = None
    is_pinned: bool
    matched_at: datetime
    last_message: Optional[LastMessage] = None


class MatchListResponse(SuccessResponse):
    matches: list[MatchListItem]

"""
Kindred — Account, discovery and matching API

Mounted under ``/auth``.  Registration and login are public; every other
route requires a bearer token.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.errors import ValidationError
from app.schemas.auth import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from app.schemas.match import (
    ConnectUserRequest,
    MatchListResponse,
    PinRequest,
    PinResponse,
    SpinWinRequest,
    SwipeRequest,
    SwipeResponse,
)
from app.schemas.user import (
    FeedResponse,
    LikedByResponse,
    ProfileImageResponse,
    ProfileUpdate,
    SpinnerResponse,
    UserEnvelope,
    UserResponse,
)
from app.services.auth_service import AuthService
from app.services.feed_service import FeedService
from app.services.match_list_service import MatchListService
from app.services.matching_service import MatchingService
from app.services.user_service import UserService
from app.utils.security import AuthenticatedUser

logger = structlog.get_logger("kindred.api.auth")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_auth_service: AuthService | None = None
_feed_service: FeedService | None = None
_matching_service: MatchingService | None = None
_match_list_service: MatchListService | None = None
_user_service: UserService | None = None


def _get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


def _get_feed_service() -> FeedService:
    global _feed_service
    if _feed_service is None:
        _feed_service = FeedService()
    return _feed_service


def _get_matching_service() -> MatchingService:
    global _matching_service
    if _matching_service is None:
        _matching_service = MatchingService()
    return _matching_service


def _get_match_list_service() -> MatchListService:
    global _match_list_service
    if _match_list_service is None:
        _match_list_service = MatchListService()
    return _match_list_service


def _get_user_service() -> UserService:
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service


# ──────────────────────────────────────────────────────────────────────────────
# POST /register, POST /login
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> RegisterResponse:
    result = await _get_auth_service().register(
        email=payload.email,
        password=payload.password,
        confirm_password=payload.confirm_password,
        username=payload.username,
        db_session=db,
    )
    return RegisterResponse(message="User registered successfully", **result)


@router.post("/login", response_model=LoginResponse, summary="Log in")
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    result = await _get_auth_service().login(payload.email, payload.password, db)
    return LoginResponse(message="Login successful", **result)


# ──────────────────────────────────────────────────────────────────────────────
# Profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/user", response_model=UserEnvelope, summary="Current user's profile")
async def get_user(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserEnvelope:
    user = await _get_user_service().get_user(current_user.user_id, db)
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.put("/update-profile", response_model=UserEnvelope, summary="Update profile fields")
async def update_profile(
    payload: ProfileUpdate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserEnvelope:
    """Only allow-listed fields are accepted; unknown fields are a 400."""
    user = await _get_user_service().update_profile(
        current_user.user_id, payload.model_dump(exclude_unset=True), db
    )
    return UserEnvelope(
        message="Profile updated successfully",
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/upload-profile-image",
    response_model=ProfileImageResponse,
    summary="Upload a new profile picture",
)
async def upload_profile_image(
    profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProfileImageResponse:
    if profile_image is None:
        raise ValidationError("No file uploaded")

    service = _get_user_service()
    # One byte past the limit is enough for the service to reject it
    file_bytes = await profile_image.read(service.settings.MAX_PROFILE_IMAGE_BYTES + 1)
    url = await service.upload_profile_image(
        current_user.user_id,
        file_bytes,
        profile_image.content_type,
        profile_image.filename,
        db,
    )
    return ProfileImageResponse(message="Profile image uploaded successfully", profile_image=url)


# ──────────────────────────────────────────────────────────────────────────────
# Discovery
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/all-users", response_model=FeedResponse, summary="Candidate feed")
async def all_users(
    page: int = Query(1, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Candidates per group"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FeedResponse:
    """Pictured candidates first, then candidates without a picture; each
    group is shuffled independently."""
    service = _get_feed_service()
    users = await service.get_feed(current_user.user_id, db, page=page, limit=limit)
    return FeedResponse(
        page=page,
        limit=min(limit or service.settings.FEED_DEFAULT_LIMIT, service.settings.FEED_MAX_LIMIT),
        users=users,
    )


@router.get("/spinner-users", response_model=SpinnerResponse, summary="Spinner candidates")
async def spinner_users(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SpinnerResponse:
    users = await _get_feed_service().get_spinner_candidates(current_user.user_id, db)
    return SpinnerResponse(users=users)


# ──────────────────────────────────────────────────────────────────────────────
# Swipes and matches
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/swipe", response_model=SwipeResponse, summary="Swipe left or right")
async def swipe(
    payload: SwipeRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SwipeResponse:
    result = await _get_matching_service().swipe(
        current_user.user_id, payload.target_user_id, payload.direction, db
    )
    message = "Matched! Connection created." if result["matched"] else f"Swiped {payload.direction}"
    return SwipeResponse(message=message, **result)


@router.post("/spinwin", response_model=SwipeResponse, summary="Resolve a spinner round")
async def spin_win(
    payload: SpinWinRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SwipeResponse:
    result = await _get_matching_service().spin_resolve(
        current_user.user_id,
        payload.target_user_id,
        payload.is_spinner_winner,
        db,
        direction=payload.direction,
    )
    if payload.is_spinner_winner:
        message = "Winner connected successfully!"
    elif result["matched"]:
        message = "Matched! Connection created."
    else:
        message = f"Swiped {payload.direction}"
    return SwipeResponse(message=message, **result)


@router.post("/connect-user", response_model=SwipeResponse, summary="Connect with a spinner winner")
async def connect_user(
    payload: ConnectUserRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SwipeResponse:
    result = await _get_matching_service().connect_user(
        current_user.user_id, payload.winner_id, db
    )
    return SwipeResponse(message="User connected successfully", **result)


@router.get("/matches", response_model=MatchListResponse, summary="Ordered match list")
async def list_matches(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MatchListResponse:
    matches = await _get_match_list_service().list_matches(current_user.user_id, db)
    return MatchListResponse(matches=matches)


@router.put("/pin-match", response_model=PinResponse, summary="Pin or unpin a match")
async def pin_match(
    payload: PinRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PinResponse:
    result = await _get_match_list_service().toggle_pin(
        current_user.user_id, payload.target_user_id, db
    )
    message = "Match pinned successfully" if result["pinned"] else "Match unpinned successfully"
    return PinResponse(message=message, **result)


@router.get("/liked-by", response_model=LikedByResponse, summary="Users who liked me")
async def liked_by(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> LikedByResponse:
    users = await _get_matching_service().liked_by(current_user.user_id, db)
    logger.info("liked_by_listed", user_id=str(current_user.user_id), count=len(users))
    return LikedByResponse(users=users)

from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator

from app.schemas.base import APIModel, SuccessResponse


class UserResponse(APIModel):
    id: UUID
    email: str
    username: str
    name: Optional[str] = None
    dob: Optional[date] = None
    gender: Optional[str] = None
    interested_in: Optional[str] = None
    bio: str = ""
    profile_picture: Optional[str] = None
    affiliation: str = ""
    swipe_limit: int
    spin_limit: int
    status: str
    is_verified: bool
    last_login: datetime
    created_at: datetime


class UserEnvelope(SuccessResponse):
    user: UserResponse


def _capitalise(value: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value:
        return value[:1].upper() + value[1:].lower()
    return value


class ProfileUpdate(APIModel):
    """Allow-listed profile fields; anything else in the body is rejected."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    dob: Optional[date] = None
    gender: Optional[Literal["Male", "Female", "Other"]] = None
    interested_in: Optional[Literal["Male", "Female", "Both"]] = None
    bio: Optional[str] = Field(None, max_length=250)
    affiliation: Optional[str] = Field(None, max_length=200)

    @field_validator("gender", "interested_in", mode="before")
    @classmethod
    def _normalise_case(cls, v):
        return _capitalise(v)

    @field_validator("name", "affiliation", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class FeedCandidate(APIModel):
    id: UUID
    name: Optional[str] = None
    profile_picture: Optional[str] = None
    dob: Optional[date] = None
    gender: Optional[str] = None
    interested_in: Optional[str] = None
    bio: str = ""
    affiliation: str = ""


class FeedResponse(SuccessResponse):
    page: int
    limit: int
    users: list[FeedCandidate]


class SpinnerCandidate(APIModel):
    id: UUID
    name: str
    profile_picture: str


class SpinnerResponse(SuccessResponse):
    users: list[SpinnerCandidate]


class LikedByItem(APIModel):
    id: UUID
    name: Optional[str] = None
    username: str
    profile_picture: Optional[str] = None


class LikedByResponse(SuccessResponse):
    users: list[LikedByItem]


class ProfileImageResponse(SuccessResponse):
    profile_image: str

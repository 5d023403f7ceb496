from uuid import UUID
from typing import Optional

from pydantic import field_validator

from app.schemas.base import APIModel, SuccessResponse


class RegisterRequest(APIModel):
    email: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None
    username: Optional[str] = None

    @field_validator("email", "username")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v


class RegisterResponse(SuccessResponse):
    token: str
    username: str
    user_id: UUID


class LoginRequest(APIModel):
    email: Optional[str] = None
    password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v


class LoginResponse(SuccessResponse):
    token: str
    username: str
    user_id: UUID
    swipe_limit: int
    spin_limit: int

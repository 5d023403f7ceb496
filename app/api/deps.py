"""
Kindred — Shared API dependencies.

``get_current_user`` is the single authentication dependency: every
protected route receives the same ``AuthenticatedUser`` identity.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.errors import AuthError
from app.utils.security import AuthenticatedUser, decode_access_token

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> AuthenticatedUser:
    """Verify the ``Authorization: Bearer <token>`` header."""
    if credentials is None or not credentials.credentials:
        raise AuthError("Access denied. No token provided.")

    identity = decode_access_token(credentials.credentials)
    structlog.contextvars.bind_contextvars(user_id=str(identity.user_id))
    return identity

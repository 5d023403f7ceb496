"""Password hashing (bcrypt) and bearer-token issuance (JWT)."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import bcrypt
import jwt

from app.config import get_settings
from app.errors import AuthError
from app.utils.clock import utcnow


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity extracted from a verified token, passed to every operation."""

    user_id: uuid.UUID


def hash_password(password: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of ``password`` (never store the plaintext)."""
    cost = rounds or get_settings().BCRYPT_ROUNDS
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(user_id: uuid.UUID, now: datetime | None = None) -> str:
    """Issue a signed token for ``user_id`` with an absolute expiry."""
    settings = get_settings()
    issued_at = now or utcnow()
    payload = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> AuthenticatedUser:
    """Verify signature and expiry and return the embedded identity.

    Raises ``AuthError`` for expired, malformed or unsigned tokens and for
    tokens whose subject is not a user id.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc

    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except ValueError as exc:
        raise AuthError("Invalid token") from exc

    return AuthenticatedUser(user_id=user_id)

"""
Kindred — Registration and login.

Handles:
  - Input validation for registration (email format, password confirmation)
  - Bounded random username generation from the email local-part
  - bcrypt password hashing and verification
  - Daily quota replenishment on the first login of a calendar day
  - Token issuance (see ``app.utils.security``)
"""

from __future__ import annotations

import random
from datetime import datetime
from typing import Any, Callable

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.errors import AuthError, ConflictError, GenerationError, ValidationError
from app.models.user import User
from app.utils.clock import as_utc, utcnow
from app.utils.security import create_access_token, hash_password, verify_password

logger = structlog.get_logger("kindred.auth_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

_MIN_PASSWORD_LENGTH = 6
_MIN_USERNAME_LENGTH = 3
_INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    """Credential service: register, log in and issue session tokens.

    Randomness and the clock are injectable so username generation and the
    daily quota reset can be tested deterministically.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.rng = rng or random.Random()
        self.clock = clock

    # ── Public API ────────────────────────────────────────────────────────

    async def register(
        self,
        email: str | None,
        password: str | None,
        confirm_password: str | None,
        username: str | None,
        db_session: AsyncSession,
    ) -> dict[str, Any]:
        """Create a user account and return a session token.

        Raises
        ------
        ValidationError
            Missing fields, malformed email, short password, mismatched
            confirmation or a too-short explicit username.
        ConflictError
            Email or explicit username already registered.
        GenerationError
            No free username found within ``USERNAME_MAX_ATTEMPTS``.
        """
        if not email or not password or not confirm_password:
            raise ValidationError(
                "Email, password, and confirmation password are required"
            )
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        if len(password) < _MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {_MIN_PASSWORD_LENGTH} characters"
            )

        try:
            email = validate_email(email, check_deliverability=False).normalized.lower()
        except EmailNotValidError as exc:
            raise ValidationError("A valid email address is required") from exc

        log = logger.bind(email=email)
        log.info("register_start")

        existing = await db_session.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            log.warning("register_duplicate_email")
            raise ConflictError("Email already exists")

        if username:
            if len(username) < _MIN_USERNAME_LENGTH:
                raise ValidationError(
                    f"Username must be at least {_MIN_USERNAME_LENGTH} characters"
                )
            if await self._username_taken(username, db_session):
                log.warning("register_duplicate_username", username=username)
                raise ConflictError("Username already exists")
            final_username = username
        else:
            final_username = await self._generate_unique_username(
                email.split("@", 1)[0], db_session
            )

        user = User(
            email=email,
            username=final_username,
            password_hash=hash_password(password, self.settings.BCRYPT_ROUNDS),
            swipe_limit=self.settings.DEFAULT_SWIPE_LIMIT,
            spin_limit=self.settings.DEFAULT_SPIN_LIMIT,
            last_login=self.clock(),
        )
        db_session.add(user)
        try:
            await db_session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration
            log.warning("register_unique_violation")
            raise ConflictError("Email or username already exists") from exc

        log.info("register_complete", user_id=str(user.id), username=final_username)
        return {
            "token": create_access_token(user.id, now=self.clock()),
            "username": final_username,
            "user_id": user.id,
        }

    async def login(
        self,
        email: str | None,
        password: str | None,
        db_session: AsyncSession,
    ) -> dict[str, Any]:
        """Verify credentials, replenish daily quotas and issue a token.

        The same message is used for an unknown email and a wrong password.
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        result = await db_session.execute(
            select(User).where(User.email == email.lower())
        )
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            logger.info("login_rejected")
            raise AuthError(_INVALID_CREDENTIALS)

        if user.status == "banned":
            logger.warning("login_banned_account", user_id=str(user.id))
            raise AuthError("Account is banned")

        now = self.clock()
        replenished = self._replenish_daily_quotas(user, now)
        if replenished:
            await db_session.flush()

        logger.info(
            "login_complete",
            user_id=str(user.id),
            replenished=replenished,
            swipe_limit=user.swipe_limit,
            spin_limit=user.spin_limit,
        )
        return {
            "token": create_access_token(user.id, now=now),
            "username": user.username,
            "user_id": user.id,
            "swipe_limit": user.swipe_limit,
            "spin_limit": user.spin_limit,
        }

    # ── Helpers ──────────────────────────────────────────────────────────

    def _replenish_daily_quotas(self, user: User, now: datetime) -> bool:
        """Raise quotas to their daily floors on the first login of the day.

        Days are compared in the server's local calendar, not as 24 h
        windows.  Quotas are only ever raised, never lowered.
        """
        last_day = as_utc(user.last_login).astimezone().date()
        today = as_utc(now).astimezone().date()
        if last_day == today:
            return False

        user.swipe_limit = max(user.swipe_limit, self.settings.DAILY_SWIPE_FLOOR)
        user.spin_limit = max(user.spin_limit, self.settings.DAILY_SPIN_FLOOR)
        user.last_login = now
        return True

    async def _username_taken(self, username: str, db_session: AsyncSession) -> bool:
        result = await db_session.execute(
            select(User.id).where(User.username == username)
        )
        return result.scalar_one_or_none() is not None

    async def _generate_unique_username(
        self,
        base_name: str,
        db_session: AsyncSession,
    ) -> str:
        """Append a random 4-digit suffix to ``base_name`` until it is free."""
        for attempt in range(1, self.settings.USERNAME_MAX_ATTEMPTS + 1):
            candidate = f"{base_name}_{self.rng.randint(1000, 9999)}"
            if not await self._username_taken(candidate, db_session):
                return candidate
            logger.debug("username_collision", candidate=candidate, attempt=attempt)

        logger.error(
            "username_generation_exhausted",
            base_name=base_name,
            attempts=self.settings.USERNAME_MAX_ATTEMPTS,
        )
        raise GenerationError()

"""Unit tests for AuthService — registration, username generation and login."""
import re
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.config import get_settings
from app.errors import AuthError, ConflictError, GenerationError, ValidationError
from app.models.user import User
from app.services.auth_service import AuthService
from app.utils.clock import utcnow
from app.utils.security import decode_access_token


class _SequenceRandom:
    """Stand-in RNG returning a fixed sequence of suffixes."""

    def __init__(self, values):
        self._values = iter(values)

    def randint(self, low, high):
        return next(self._values)


@pytest.fixture
def auth_service(seeded_rng):
    return AuthService(rng=seeded_rng)


async def _register(service, db_session, email="alice@kindred.app", password="secret1", username=None):
    return await service.register(email, password, password, username, db_session)


class TestRegister:
    """Tests for account creation."""

    async def test_generated_username_from_email(self, auth_service, db_session):
        result = await _register(auth_service, db_session)

        assert re.fullmatch(r"alice_\d{4}", result["username"])
        assert decode_access_token(result["token"]).user_id == result["user_id"]

    async def test_password_is_hashed(self, auth_service, db_session):
        result = await _register(auth_service, db_session)
        user = (await db_session.execute(select(User).where(User.id == result["user_id"]))).scalar_one()

        assert user.password_hash != "secret1"
        assert user.swipe_limit == 10
        assert user.spin_limit == 5
        assert user.status == "inactive"

    async def test_explicit_username_kept(self, auth_service, db_session):
        result = await _register(auth_service, db_session, username="alice")
        assert result["username"] == "alice"

    async def test_username_collision_retries_with_new_suffix(self, db_session, make_user):
        await make_user(username="bob_1111")
        service = AuthService(rng=_SequenceRandom([1111, 2222]))

        result = await _register(service, db_session, email="bob@kindred.app")

        assert result["username"] == "bob_2222"

    async def test_username_generation_is_bounded(self, db_session, make_user):
        await make_user(username="bob_1111")
        settings = get_settings().model_copy(update={"USERNAME_MAX_ATTEMPTS": 3})
        service = AuthService(settings=settings, rng=_SequenceRandom([1111] * 10))

        with pytest.raises(GenerationError):
            await _register(service, db_session, email="bob@kindred.app")

    async def test_email_is_case_insensitive(self, auth_service, db_session):
        await _register(auth_service, db_session, email="Alice@Kindred.app")
        with pytest.raises(ConflictError, match="Email already exists"):
            await _register(auth_service, db_session, email="alice@kindred.app")

    async def test_duplicate_explicit_username(self, auth_service, db_session):
        await _register(auth_service, db_session, username="alice")
        with pytest.raises(ConflictError):
            await _register(auth_service, db_session, email="other@kindred.app", username="alice")

    @pytest.mark.parametrize(
        "email,password,confirm,username,message",
        [
            ("", "secret1", "secret1", None, "required"),
            ("a@kindred.app", "secret1", "secret2", None, "do not match"),
            ("a@kindred.app", "short", "short", None, "at least 6"),
            ("not-an-email", "secret1", "secret1", None, "valid email"),
            ("a@kindred.app", "secret1", "secret1", "ab", "at least 3"),
        ],
    )
    async def test_validation_errors(self, auth_service, db_session, email, password, confirm, username, message):
        with pytest.raises(ValidationError, match=message):
            await auth_service.register(email, password, confirm, username, db_session)

        users = (await db_session.execute(select(User))).scalars().all()
        assert users == []


class TestLogin:
    """Tests for credential checks and the daily quota reset."""

    async def test_login_returns_token_and_quotas(self, auth_service, db_session):
        registered = await _register(auth_service, db_session)

        result = await auth_service.login("alice@kindred.app", "secret1", db_session)

        assert result["user_id"] == registered["user_id"]
        assert result["username"] == registered["username"]
        assert decode_access_token(result["token"]).user_id == registered["user_id"]

    async def test_unknown_email_and_wrong_password_look_the_same(self, auth_service, db_session):
        await _register(auth_service, db_session)

        with pytest.raises(AuthError) as wrong_password:
            await auth_service.login("alice@kindred.app", "wrong-pass", db_session)
        with pytest.raises(AuthError) as unknown_email:
            await auth_service.login("nobody@kindred.app", "secret1", db_session)

        assert wrong_password.value.message == unknown_email.value.message

    async def test_banned_account_cannot_log_in(self, auth_service, db_session):
        registered = await _register(auth_service, db_session)
        user = await db_session.get(User, registered["user_id"])
        user.status = "banned"

        with pytest.raises(AuthError, match="banned"):
            await auth_service.login("alice@kindred.app", "secret1", db_session)

    async def test_first_login_of_day_raises_quotas_to_floor(self, db_session):
        now = utcnow()
        service = AuthService(clock=lambda: now)
        registered = await _register(service, db_session)
        user = await db_session.get(User, registered["user_id"])
        user.last_login = now - timedelta(days=2)
        user.swipe_limit = 3
        user.spin_limit = 0

        result = await service.login("alice@kindred.app", "secret1", db_session)

        assert result["swipe_limit"] == 20
        assert result["spin_limit"] == 1
        assert user.last_login == now

    async def test_replenish_never_lowers_quota(self, db_session):
        now = utcnow()
        service = AuthService(clock=lambda: now)
        registered = await _register(service, db_session)
        user = await db_session.get(User, registered["user_id"])
        user.last_login = now - timedelta(days=2)
        user.swipe_limit = 45
        user.spin_limit = 4

        result = await service.login("alice@kindred.app", "secret1", db_session)

        assert result["swipe_limit"] == 45
        assert result["spin_limit"] == 4

    async def test_same_day_login_changes_nothing(self, db_session):
        now = utcnow()
        service = AuthService(clock=lambda: now)
        registered = await _register(service, db_session)
        user = await db_session.get(User, registered["user_id"])
        user.swipe_limit = 3

        result = await service.login("alice@kindred.app", "secret1", db_session)

        assert result["swipe_limit"] == 3

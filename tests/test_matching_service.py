"""Unit tests for MatchingService — swipes, spins, connects and match creation."""
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.errors import (
    ConflictError,
    MatchInconsistencyError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from app.models.match import Match, Swipe, ordered_pair
from app.models.user import User
from app.services.matching_service import MatchingService
from app.utils.locks import pair_lock_name


@pytest.fixture
def matching_service():
    return MatchingService()


@pytest.fixture
async def alice(make_user):
    return await make_user(name="Alice", gender="Female", interested_in="Male")


@pytest.fixture
async def bob(make_user):
    return await make_user(name="Bob", gender="Male", interested_in="Female")


async def _swipes(db_session):
    result = await db_session.execute(select(Swipe))
    return {(s.swiper_id, s.target_id): s.direction for s in result.scalars().all()}


async def _matches(db_session):
    result = await db_session.execute(select(Match))
    return list(result.scalars().all())


async def _limits(db_session, user_id):
    result = await db_session.execute(
        select(User.swipe_limit, User.spin_limit).where(User.id == user_id)
    )
    return tuple(result.one())


class TestSwipe:
    """Tests for the swipe state machine."""

    async def test_left_swipe_records_dislike_and_decrements(self, matching_service, db_session, alice, bob):
        result = await matching_service.swipe(alice.id, bob.id, "left", db_session)

        assert result == {"matched": False, "swipe_limit": 9}
        assert await _swipes(db_session) == {(alice.id, bob.id): "left"}

    async def test_right_swipe_without_reciprocation(self, matching_service, db_session, alice, bob):
        result = await matching_service.swipe(alice.id, bob.id, "right", db_session)

        assert result["matched"] is False
        assert await _swipes(db_session) == {(alice.id, bob.id): "right"}
        assert await _matches(db_session) == []

    async def test_mutual_like_creates_single_symmetric_match(self, matching_service, db_session, alice, bob):
        await matching_service.swipe(alice.id, bob.id, "right", db_session)
        result = await matching_service.swipe(bob.id, alice.id, "right", db_session)

        assert result == {"matched": True, "swipe_limit": 9}
        matches = await _matches(db_session)
        assert len(matches) == 1
        assert (matches[0].user_a_id, matches[0].user_b_id) == ordered_pair(alice.id, bob.id)
        assert matches[0].source == "swipe"
        # Both intent rows are cleared once matched
        assert await _swipes(db_session) == {}

    async def test_changing_mind_moves_between_sets(self, matching_service, db_session, alice, bob):
        """A target is never both liked and disliked."""
        await matching_service.swipe(alice.id, bob.id, "left", db_session)
        await matching_service.swipe(alice.id, bob.id, "right", db_session)

        assert await _swipes(db_session) == {(alice.id, bob.id): "right"}

        await matching_service.swipe(alice.id, bob.id, "left", db_session)

        assert await _swipes(db_session) == {(alice.id, bob.id): "left"}

    async def test_left_after_like_received_does_not_match(self, matching_service, db_session, alice, bob):
        await matching_service.swipe(bob.id, alice.id, "right", db_session)
        result = await matching_service.swipe(alice.id, bob.id, "left", db_session)

        assert result["matched"] is False
        assert await _matches(db_session) == []

    async def test_already_matched_is_a_noop(self, matching_service, db_session, alice, bob):
        await matching_service.swipe(alice.id, bob.id, "right", db_session)
        await matching_service.swipe(bob.id, alice.id, "right", db_session)

        result = await matching_service.swipe(alice.id, bob.id, "left", db_session)

        assert result == {"matched": True, "swipe_limit": 9}
        assert len(await _matches(db_session)) == 1
        assert await _swipes(db_session) == {}

    async def test_no_swipes_left(self, matching_service, db_session, make_user, bob):
        broke = await make_user(swipe_limit=0)

        with pytest.raises(QuotaExceededError):
            await matching_service.swipe(broke.id, bob.id, "right", db_session)
        assert await _swipes(db_session) == {}

    @pytest.mark.parametrize("direction", ["up", "", None])
    async def test_bad_direction(self, matching_service, db_session, alice, bob, direction):
        with pytest.raises(ValidationError):
            await matching_service.swipe(alice.id, bob.id, direction, db_session)

    async def test_self_swipe(self, matching_service, db_session, alice):
        with pytest.raises(ValidationError):
            await matching_service.swipe(alice.id, alice.id, "right", db_session)

    async def test_unknown_target(self, matching_service, db_session, alice):
        with pytest.raises(NotFoundError):
            await matching_service.swipe(alice.id, uuid.uuid4(), "right", db_session)


class TestSpinResolve:
    """Tests for spinner outcomes."""

    async def test_winner_matched_without_likes(self, matching_service, db_session, alice, bob):
        await matching_service.swipe(alice.id, bob.id, "left", db_session)

        result = await matching_service.spin_resolve(alice.id, bob.id, True, db_session)

        assert result == {"matched": True, "spin_limit": 4}
        matches = await _matches(db_session)
        assert len(matches) == 1 and matches[0].source == "spin"
        assert await _swipes(db_session) == {}

    async def test_winner_needs_spins(self, matching_service, db_session, make_user, bob):
        broke = await make_user(spin_limit=0)

        with pytest.raises(QuotaExceededError):
            await matching_service.spin_resolve(broke.id, bob.id, True, db_session)
        assert await _matches(db_session) == []

    async def test_non_winner_swipes_without_using_quota(self, matching_service, db_session, alice, bob):
        result = await matching_service.spin_resolve(alice.id, bob.id, False, db_session, direction="right")

        assert result["matched"] is False
        assert await _swipes(db_session) == {(alice.id, bob.id): "right"}
        assert await _limits(db_session, alice.id) == (10, 5)

    async def test_non_winner_can_complete_mutual_like(self, matching_service, db_session, alice, bob):
        await matching_service.swipe(bob.id, alice.id, "right", db_session)

        result = await matching_service.spin_resolve(alice.id, bob.id, False, db_session, direction="right")

        assert result["matched"] is True
        assert len(await _matches(db_session)) == 1

    async def test_non_winner_requires_direction(self, matching_service, db_session, alice, bob):
        with pytest.raises(ValidationError):
            await matching_service.spin_resolve(alice.id, bob.id, False, db_session)


class TestConnectAndLikedBy:

    async def test_connect_is_symmetric_and_idempotent(self, matching_service, db_session, alice, bob):
        first = await matching_service.connect_user(alice.id, bob.id, db_session)
        again = await matching_service.connect_user(bob.id, alice.id, db_session)

        matches = await _matches(db_session)
        assert len(matches) == 1
        assert matches[0].source == "connect"
        assert first == {"matched": True, "spin_limit": 4}
        # The existing match is returned without charging Bob a spin
        assert again == {"matched": True, "spin_limit": 5}

    async def test_connect_needs_spins(self, matching_service, db_session, make_user, bob):
        broke = await make_user(spin_limit=0, swipe_limit=0)

        for _ in range(3):
            with pytest.raises(QuotaExceededError):
                await matching_service.connect_user(broke.id, bob.id, db_session)

        assert await _matches(db_session) == []
        assert await _limits(db_session, broke.id) == (0, 0)

    async def test_liked_by_skips_banned_admirers(self, matching_service, db_session, make_user, alice, bob):
        banned = await make_user(name="Mallory", gender="Male", status="banned")
        await matching_service.swipe(bob.id, alice.id, "right", db_session)
        await matching_service.swipe(banned.id, alice.id, "right", db_session)

        admirers = await matching_service.liked_by(alice.id, db_session)

        assert [a["id"] for a in admirers] == [bob.id]

    async def test_connect_unknown_user(self, matching_service, db_session, alice):
        with pytest.raises(NotFoundError):
            await matching_service.connect_user(alice.id, uuid.uuid4(), db_session)

    async def test_liked_by_lists_admirers(self, matching_service, db_session, make_user, alice, bob):
        carol = await make_user(name="Carol", gender="Male")
        await matching_service.swipe(bob.id, alice.id, "right", db_session)
        await matching_service.swipe(carol.id, alice.id, "left", db_session)

        admirers = await matching_service.liked_by(alice.id, db_session)

        assert [a["id"] for a in admirers] == [bob.id]
        assert admirers[0]["username"] == bob.username

    async def test_liked_by_empty(self, matching_service, db_session, alice):
        assert await matching_service.liked_by(alice.id, db_session) == []


class TestEstablishMatch:
    """Tests for locking and conflict handling around match creation."""

    @staticmethod
    def _redis(acquired=True):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=acquired)
        lock.release = AsyncMock()
        redis = MagicMock()
        redis.lock = MagicMock(return_value=lock)
        return redis, lock

    async def test_pair_lock_taken_and_released(self, db_session, alice, bob):
        redis, lock = self._redis()
        service = MatchingService(redis_client=redis)

        await service.connect_user(alice.id, bob.id, db_session)

        name = redis.lock.call_args.args[0]
        assert name == pair_lock_name(bob.id, alice.id)
        lock.acquire.assert_awaited_once()
        lock.release.assert_awaited_once()

    @staticmethod
    def _recording_service(events):
        """Service whose pair lock, row lock and reverse-like lookup append
        to ``events`` in the order they happen."""
        lock = MagicMock()

        async def _acquire():
            events.append("pair_lock")
            return True

        async def _release():
            events.append("pair_unlock")

        lock.acquire = AsyncMock(side_effect=_acquire)
        lock.release = AsyncMock(side_effect=_release)
        redis = MagicMock()
        redis.lock = MagicMock(return_value=lock)
        return MatchingService(redis_client=redis), lock

    async def test_reverse_like_checked_under_pair_lock(self, db_session, alice, bob):
        events = []
        service, _ = self._recording_service(events)
        real_lock_rows = MatchingService._lock_user_rows
        real_has_liked = MatchingService._has_liked

        async def _lock_rows(*args):
            events.append("row_lock")
            return await real_lock_rows(*args)

        async def _has_liked(*args):
            events.append("reverse_check")
            return await real_has_liked(*args)

        with patch.object(MatchingService, "_lock_user_rows", staticmethod(_lock_rows)), \
                patch.object(MatchingService, "_has_liked", staticmethod(_has_liked)):
            result = await service.swipe(alice.id, bob.id, "right", db_session)

        assert result["matched"] is False
        assert events == ["pair_lock", "row_lock", "reverse_check", "pair_unlock"]

    async def test_mutual_like_takes_pair_lock_once(self, db_session, alice, bob):
        events = []
        service, lock = self._recording_service(events)
        await service.swipe(bob.id, alice.id, "right", db_session)
        events.clear()

        result = await service.swipe(alice.id, bob.id, "right", db_session)

        assert result["matched"] is True
        assert events == ["pair_lock", "pair_unlock"]
        assert len(await _matches(db_session)) == 1

    async def test_lock_contention_is_a_conflict(self, db_session, alice, bob):
        redis, lock = self._redis(acquired=False)
        service = MatchingService(redis_client=redis)

        with pytest.raises(ConflictError):
            await service.connect_user(alice.id, bob.id, db_session)
        lock.release.assert_not_awaited()

    async def test_persistent_conflict_is_reported(self, matching_service, db_session, alice, bob):
        conflict = IntegrityError("INSERT INTO matches", {}, Exception("duplicate key"))
        insert = AsyncMock(side_effect=conflict)

        with patch.object(MatchingService, "_insert_match_if_absent", insert):
            with pytest.raises(MatchInconsistencyError):
                await matching_service.connect_user(alice.id, bob.id, db_session)

        assert insert.await_count == 3

    async def test_transient_conflict_is_retried(self, matching_service, db_session, alice, bob):
        conflict = IntegrityError("INSERT INTO matches", {}, Exception("duplicate key"))
        real_insert = MatchingService._insert_match_if_absent
        calls = []

        async def _flaky(*args):
            calls.append(args)
            if len(calls) == 1:
                raise conflict
            return await real_insert(*args)

        with patch.object(MatchingService, "_insert_match_if_absent", staticmethod(_flaky)):
            result = await matching_service.connect_user(alice.id, bob.id, db_session)

        assert result == {"matched": True, "spin_limit": 4}
        assert len(calls) == 2
        assert len(await _matches(db_session)) == 1

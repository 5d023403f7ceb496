"""Unit tests for MatchListService — pin toggling and match-list ordering."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.errors import NotFoundError, ValidationError
from app.models.match import Match, ordered_pair
from app.services.chat_service import ChatService
from app.services.match_list_service import MatchListService
from app.services.matching_service import MatchingService

_MATCHED_AT = datetime(2026, 2, 1, tzinfo=timezone.utc)


@pytest.fixture
def match_list_service():
    return MatchListService()


@pytest.fixture
async def network(make_user, db_session):
    """Alice matched with Bob, Carol and Dan, in that order; Erin unmatched."""
    alice = await make_user(name="Alice")
    others = {}
    for name in ("Bob", "Carol", "Dan", "Erin"):
        others[name] = await make_user(name=name, gender="Male", interested_in="Female")

    matching = MatchingService()
    for offset, name in enumerate(("Bob", "Carol", "Dan")):
        await matching.connect_user(alice.id, others[name].id, db_session)
        low, high = ordered_pair(alice.id, others[name].id)
        match = (
            await db_session.execute(
                select(Match).where(Match.user_a_id == low, Match.user_b_id == high)
            )
        ).scalar_one()
        match.created_at = _MATCHED_AT + timedelta(minutes=offset)
    await db_session.flush()
    return alice, others


def _names(entries):
    return [e["name"] for e in entries]


class TestListMatches:
    """Tests for the two-stage match ordering."""

    async def test_match_order_without_messages(self, match_list_service, db_session, network):
        alice, _ = network

        entries = await match_list_service.list_matches(alice.id, db_session)

        assert _names(entries) == ["Bob", "Carol", "Dan"]
        assert all(e["last_message"] is None for e in entries)
        assert not any(e["is_pinned"] for e in entries)

    async def test_pinned_first_when_no_messages(self, match_list_service, db_session, network):
        alice, others = network
        await match_list_service.toggle_pin(alice.id, others["Dan"].id, db_session)

        entries = await match_list_service.list_matches(alice.id, db_session)

        assert _names(entries) == ["Dan", "Bob", "Carol"]
        assert entries[0]["is_pinned"] is True

    async def test_recent_message_beats_pin(self, match_list_service, db_session, network):
        alice, others = network
        await match_list_service.toggle_pin(alice.id, others["Dan"].id, db_session)
        chats = ChatService()
        chat = await chats.start_or_get_chat(alice.id, others["Carol"].id, db_session)
        await chats.post_message(chat.id, others["Carol"].id, "hey you", db_session)

        entries = await match_list_service.list_matches(alice.id, db_session)

        assert _names(entries) == ["Carol", "Dan", "Bob"]
        assert entries[0]["last_message"]["content"] == "hey you"
        assert entries[0]["last_message"]["sender_id"] == others["Carol"].id

    async def test_newest_conversation_first(self, match_list_service, db_session, network):
        alice, others = network
        chats = ChatService()
        for name in ("Dan", "Bob"):
            chat = await chats.start_or_get_chat(alice.id, others[name].id, db_session)
            await chats.post_message(chat.id, alice.id, f"hi {name}", db_session)

        entries = await match_list_service.list_matches(alice.id, db_session)

        assert _names(entries) == ["Bob", "Dan", "Carol"]

    async def test_symmetric_for_the_other_side(self, match_list_service, db_session, network):
        alice, others = network

        entries = await match_list_service.list_matches(others["Bob"].id, db_session)

        assert [e["id"] for e in entries] == [alice.id]

    async def test_unknown_user(self, match_list_service, db_session):
        with pytest.raises(NotFoundError):
            await match_list_service.list_matches(uuid.uuid4(), db_session)


class TestTogglePin:
    """Tests for pinning and unpinning."""

    async def test_toggle_twice_restores_pins(self, match_list_service, db_session, network):
        alice, others = network
        await match_list_service.toggle_pin(alice.id, others["Bob"].id, db_session)

        pinned = await match_list_service.toggle_pin(alice.id, others["Carol"].id, db_session)
        assert pinned == {"pinned": True, "pinned_matches": [others["Bob"].id, others["Carol"].id]}

        unpinned = await match_list_service.toggle_pin(alice.id, others["Carol"].id, db_session)
        assert unpinned == {"pinned": False, "pinned_matches": [others["Bob"].id]}

    async def test_only_matches_can_be_pinned(self, match_list_service, db_session, network):
        alice, others = network

        with pytest.raises(ValidationError):
            await match_list_service.toggle_pin(alice.id, others["Erin"].id, db_session)

    async def test_pin_is_per_user(self, match_list_service, db_session, network):
        alice, others = network
        await match_list_service.toggle_pin(alice.id, others["Bob"].id, db_session)

        entries = await match_list_service.list_matches(others["Bob"].id, db_session)

        assert entries[0]["is_pinned"] is False

    async def test_unknown_target(self, match_list_service, db_session, network):
        alice, _ = network

        with pytest.raises(NotFoundError):
            await match_list_service.toggle_pin(alice.id, uuid.uuid4(), db_session)

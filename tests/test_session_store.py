"""Tests for SessionStore."""

import asyncio

import pytest

from newsrag.src.core.exceptions import SessionNotFound
from newsrag.src.database.session_store import SessionStore, session_key


def test_create_allocates_empty_session(sessions, kv_store):
    session = asyncio.run(sessions.create())

    assert session.id
    assert session.messages == []
    assert session.message_count == 0
    assert session_key(session.id) in kv_store.data
    assert kv_store.ttls[session_key(session.id)] == 120


def test_create_returns_unique_ids(sessions):
    ids = {asyncio.run(sessions.create()).id for _ in range(5)}
    assert len(ids) == 5


def test_append_turn_records_user_then_bot(sessions):
    session = asyncio.run(sessions.create())
    asyncio.run(sessions.append_turn(session.id, "What happened today?", "A budget vote."))

    history = asyncio.run(sessions.history(session.id))
    assert [message.role for message in history.messages] == ["user", "bot"]
    assert [message.content for message in history.messages] == ["What happened today?", "A budget vote."]
    assert history.message_count == 2
    assert history.last_activity >= session.last_activity


def test_append_turn_without_bot_message(sessions):
    session = asyncio.run(sessions.create())
    updated = asyncio.run(sessions.append_turn(session.id, "Hello"))
    assert updated.message_count == 1
    assert updated.messages[0].role == "user"


def test_message_count_matches_messages_after_many_turns(sessions):
    session = asyncio.run(sessions.create())
    for i in range(3):
        asyncio.run(sessions.append_turn(session.id, f"q{i}", f"a{i}"))
    history = asyncio.run(sessions.history(session.id))
    assert history.message_count == len(history.messages) == 6


def test_clear_keeps_id_and_empties_history(sessions):
    session = asyncio.run(sessions.create())
    asyncio.run(sessions.append_turn(session.id, "q", "a"))

    cleared = asyncio.run(sessions.clear(session.id))
    assert cleared.id == session.id
    assert cleared.messages == []
    assert asyncio.run(sessions.history(session.id)).message_count == 0


@pytest.mark.parametrize("operation", ["history", "clear"])
def test_unknown_session_raises(sessions, operation):
    with pytest.raises(SessionNotFound) as exc_info:
        asyncio.run(getattr(sessions, operation)("missing"))
    assert exc_info.value.session_id == "missing"


def test_append_to_expired_session_raises(sessions, kv_store):
    session = asyncio.run(sessions.create())
    kv_store.expire(session_key(session.id))
    with pytest.raises(SessionNotFound):
        asyncio.run(sessions.append_turn(session.id, "q", "a"))


def test_every_mutation_refreshes_full_ttl(kv_store):
    sessions = SessionStore(kv_store, ttl=300)
    session = asyncio.run(sessions.create())
    writes = kv_store.writes
    asyncio.run(sessions.append_turn(session.id, "q", "a"))

    assert kv_store.writes == writes + 1
    assert kv_store.ttls[session_key(session.id)] == 300


def test_concurrent_appends_to_same_session_last_write_wins(sessions):
    session = asyncio.run(sessions.create())

    async def race():
        await asyncio.gather(sessions.append_turn(session.id, "first", "a1"), sessions.append_turn(session.id, "second", "a2"))

    asyncio.run(race())
    history = asyncio.run(sessions.history(session.id))

    # Both appends read the empty history; one turn is lost
    assert history.message_count == 2
    assert history.messages[0].content in {"first", "second"}


def test_different_sessions_do_not_interfere(sessions):
    one = asyncio.run(sessions.create())
    two = asyncio.run(sessions.create())

    async def both():
        await asyncio.gather(sessions.append_turn(one.id, "q1", "a1"), sessions.append_turn(two.id, "q2", "a2"))

    asyncio.run(both())
    assert [m.content for m in asyncio.run(sessions.history(one.id)).messages] == ["q1", "a1"]
    assert [m.content for m in asyncio.run(sessions.history(two.id)).messages] == ["q2", "a2"]

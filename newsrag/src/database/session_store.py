"""
NewsRAG - Session Store
========================
Owns all conversational state.  Each session lives under ``session:<id>``
as a JSON document with a sliding TTL: every mutation re-applies the full
``SESSION_TTL``.

Lifecycle::

    nonexistent ──create()──▶ active ──append_turn()/clear()──▶ active (refreshed)
                                 │
                                 └──── TTL elapses ────▶ expired (== nonexistent)

Concurrency
-----------
Updates are read-modify-write with no optimistic locking.  Two turns
appended concurrently to the *same* session both read the same prior
history and the later write wins, dropping the other turn.  History is
advisory context, not an audit log, so this is accepted.  Different
sessions never interfere: there is no shared in-process state.
"""

from __future__ import annotations

import uuid

from newsrag.config.settings import settings
from newsrag.src.core.exceptions import SessionNotFound
from newsrag.src.core.models import ChatMessage, Session, utc_now
from newsrag.src.database.kv_store import KeyValueStore
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "session:"


def session_key(session_id: str) -> str:
    return f"{KEY_PREFIX}{session_id}"


class SessionStore:
    """
    Session CRUD over an expiring key-value store.

    Parameters
    ----------
    store
        Any ``KeyValueStore``.
    ttl
        Sliding lifetime in seconds.  Defaults to ``settings.SESSION_TTL``.
    """

    __slots__ = ("_store", "_ttl")

    def __init__(self, store: KeyValueStore, ttl: int | None = None) -> None:
        self._store = store
        self._ttl = ttl or settings.SESSION_TTL


    @property
    def ttl(self) -> int:
        return self._ttl


    async def create(self) -> Session:
        """Allocate a new session id with an empty history."""
        session = Session(id=str(uuid.uuid4()))
        await self._save(session)
        logger.info("[SESSION] Created '%s' (ttl=%ds).", session.id, self._ttl)
        return session


    async def history(self, session_id: str) -> Session:
        """Return the full session, or raise ``SessionNotFound``."""
        return await self._load(session_id)


    async def append_turn(self, session_id: str, user_message: str, bot_message: str | None = None) -> Session:
        """
        Append a user message and, optionally, the bot reply.

        Raises
        ------
        SessionNotFound
            If the session is absent or expired.
        """
        session = await self._load(session_id)
        session.messages.append(ChatMessage(role="user", content=user_message))
        if bot_message is not None:
            session.messages.append(ChatMessage(role="bot", content=bot_message))
        session.message_count = len(session.messages)
        session.last_activity = utc_now()
        await self._save(session)
        logger.debug("[SESSION] '%s' now has %d message(s).", session_id, session.message_count)
        return session


    async def clear(self, session_id: str) -> Session:
        """Reset the history to empty, keeping the same id."""
        session = await self._load(session_id)
        session.messages = []
        session.message_count = 0
        session.last_activity = utc_now()
        await self._save(session)
        logger.info("[SESSION] Cleared '%s'.", session_id)
        return session


    async def _load(self, session_id: str) -> Session:
        raw = await self._store.get(session_key(session_id))
        if raw is None:
            raise SessionNotFound(session_id)
        return Session.model_validate_json(raw)


    async def _save(self, session: Session) -> None:
        await self._store.set(session_key(session.id), session.model_dump_json(by_alias=True), self._ttl)

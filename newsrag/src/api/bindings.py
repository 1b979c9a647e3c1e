"""
NewsRAG - Session Binding Registry
===================================
Tracks which live socket connection currently owns each session id.

Rules:
  • At most one connection is bound to a session.  Binding a new
    connection evicts the previous one, so a stale tab stops receiving
    answers for that session.
  • A connection is bound to at most one session.  Joining another
    session releases the old binding.
  • A disconnecting connection releases everything it held.

The registry is owned by the transport layer and injected where needed.
It is only touched from the event-loop thread, so it needs no locking.
"""

from __future__ import annotations

from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)


class SessionBindingRegistry:
    """Bidirectional ``session id ↔ connection id`` map."""

    __slots__ = ("_by_session", "_by_connection")

    def __init__(self) -> None:
        self._by_session: dict[str, str] = {}
        self._by_connection: dict[str, str] = {}


    def bind(self, session_id: str, conn_id: str) -> str | None:
        """
        Bind ``conn_id`` to ``session_id``.

        Returns
        -------
        str | None
            The connection id that was evicted, if another connection held
            the session.
        """
        previous_session = self._by_connection.get(conn_id)
        if previous_session is not None and previous_session != session_id:
            self.unbind(previous_session, conn_id)

        evicted = self._by_session.get(session_id)
        if evicted == conn_id:
            return None
        if evicted is not None:
            self._by_connection.pop(evicted, None)
            logger.info("[SOCKET] Replacing connection %s for session %s.", evicted, session_id)

        self._by_session[session_id] = conn_id
        self._by_connection[conn_id] = session_id
        return evicted


    def unbind(self, session_id: str, conn_id: str | None = None) -> bool:
        """
        Release ``session_id``.  When ``conn_id`` is given, only release it if
        that connection is the current binding.
        """
        current = self._by_session.get(session_id)
        if current is None or (conn_id is not None and current != conn_id):
            return False
        del self._by_session[session_id]
        self._by_connection.pop(current, None)
        return True


    def unbind_connection(self, conn_id: str) -> str | None:
        """Release whatever session ``conn_id`` holds; returns that session id."""
        session_id = self._by_connection.get(conn_id)
        if session_id is not None:
            self.unbind(session_id, conn_id)
        return session_id


    def current_binding(self, session_id: str) -> str | None:
        return self._by_session.get(session_id)


    def session_of(self, conn_id: str) -> str | None:
        return self._by_connection.get(conn_id)


    def __len__(self) -> int:
        return len(self._by_session)

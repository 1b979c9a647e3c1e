"""
NewsRAG - Duplex Socket Channel
================================
WebSocket endpoint at ``/ws`` carrying JSON frames ``{"event": ..., "data": ...}``.

Client → server::

    join-session   "<sessionId>"  (or {"sessionId": "<sessionId>"})
    send-message   {"sessionId": ..., "message": ...}

Server → client::

    bot-response   {"id", "sessionId", "response", "timestamp"}
    error          {"message"}

A frame that is not a JSON object (bad JSON text or a binary frame) gets an
``error`` reply and the connection stays open.

Each ``send-message`` is answered in its own task, so one slow answer
never blocks other messages on the same connection.  The answer goes
only to the connection that asked, and only while that connection is
still the session's current binding (or the session has no binding).
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Protocol

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from newsrag.config.prompt_templates import SOCKET_ERROR_MESSAGE
from newsrag.src.api.bindings import SessionBindingRegistry
from newsrag.src.api.dependencies import get_socket_services
from newsrag.src.core.models import utc_now
from newsrag.src.core.rag_engine import RAGOrchestrator
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

socket_router = APIRouter()


class Connection(Protocol):
    """One live duplex connection."""

    id: str

    async def send_json(self, data: Any) -> None: ...


class WebSocketConnection:
    """Adapts a Starlette ``WebSocket`` to ``Connection``; sends are serialised."""

    __slots__ = ("id", "_websocket", "_lock")

    def __init__(self, websocket: WebSocket, conn_id: str | None = None) -> None:
        self.id = conn_id or uuid.uuid4().hex
        self._websocket = websocket
        self._lock = asyncio.Lock()


    async def send_json(self, data: Any) -> None:
        async with self._lock:
            await self._websocket.send_json(data)


class ChatSocketHandler:
    """
    Event handlers for the duplex channel.

    Parameters
    ----------
    orchestrator
        Answers ``send-message`` events.
    bindings
        Registry enforcing one live connection per session id.
    """

    __slots__ = ("_orchestrator", "_bindings", "_tasks")

    def __init__(self, orchestrator: RAGOrchestrator, bindings: SessionBindingRegistry) -> None:
        self._orchestrator = orchestrator
        self._bindings = bindings
        self._tasks: set[asyncio.Task[None]] = set()


    async def dispatch(self, conn: Connection, frame: Any) -> None:
        """Route one inbound frame to its handler."""
        if not isinstance(frame, dict):
            await self._emit(conn, "error", {"message": "Malformed frame"})
            return
        event, data = frame.get("event"), frame.get("data")
        if event == "join-session":
            await self.handle_join(conn, data)
        elif event == "send-message":
            self.handle_send(conn, data)
        else:
            logger.debug("[SOCKET] Ignoring unknown event %r from %s.", event, conn.id)


    async def handle_join(self, conn: Connection, data: Any) -> None:
        session_id = data.get("sessionId") if isinstance(data, dict) else data
        if not isinstance(session_id, str) or not session_id.strip():
            await self._emit(conn, "error", {"message": "sessionId is required"})
            return
        evicted = self._bindings.bind(session_id, conn.id)
        logger.info("[SOCKET] %s joined session %s%s.", conn.id, session_id, f" (evicted {evicted})" if evicted else "")


    def handle_send(self, conn: Connection, data: Any) -> asyncio.Task[None]:
        """Answer one message in a background task and return that task."""
        task = asyncio.create_task(self._answer(conn, data if isinstance(data, dict) else {}))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


    def handle_disconnect(self, conn: Connection) -> None:
        session_id = self._bindings.unbind_connection(conn.id)
        logger.info("[SOCKET] %s disconnected%s.", conn.id, f" (released session {session_id})" if session_id else "")


    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


    async def _answer(self, conn: Connection, data: dict[str, Any]) -> None:
        session_id, message = data.get("sessionId"), data.get("message")
        if not (isinstance(session_id, str) and session_id.strip() and isinstance(message, str) and message.strip()):
            await self._emit(conn, "error", {"message": "Message and sessionId are required"})
            return

        try:
            response = await self._orchestrator.answer(session_id, message)
        except Exception:
            logger.exception("[SOCKET] Answer failed for session '%s'.", session_id)
            await self._emit(conn, "error", {"message": SOCKET_ERROR_MESSAGE})
            return

        binding = self._bindings.current_binding(session_id)
        if binding is not None and binding != conn.id:
            logger.info("[SOCKET] Dropping answer for %s: session %s is now bound to %s.", conn.id, session_id, binding)
            return

        payload = {"id": uuid.uuid4().hex, "sessionId": session_id, "response": response.model_dump(mode="json", by_alias=True), "timestamp": utc_now().isoformat()}
        await self._emit(conn, "bot-response", payload)


    async def _emit(self, conn: Connection, event: str, data: dict[str, Any]) -> None:
        try:
            await conn.send_json({"event": event, "data": data})
        except Exception:
            logger.warning("[SOCKET] Could not deliver '%s' to %s.", event, conn.id, exc_info=True)


@socket_router.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    services = get_socket_services(websocket)
    handler: ChatSocketHandler = websocket.app.state.socket_handler
    await websocket.accept()
    conn = WebSocketConnection(websocket)
    logger.info("[SOCKET] %s connected.", conn.id)
    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except (ValueError, KeyError):
                await handler.dispatch(conn, None)
                continue
            await handler.dispatch(conn, frame)
    except WebSocketDisconnect:
        pass
    finally:
        handler.handle_disconnect(conn)
        logger.debug("[SOCKET] %d session binding(s) remain.", len(services.bindings))

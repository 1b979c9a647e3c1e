"""
NewsRAG - HTTP Routes
======================
Request/response surface of the pipeline:

    POST   /api/chat/message            one-shot answer
    POST   /api/chat/stream             answer streamed as text fragments
    POST   /api/session/create          new session id
    GET    /api/session/{id}/history    full history
    DELETE /api/session/{id}            clear history (same id)
    DELETE /api/cache                   drop every cached answer
    GET    /api/cache/stats             cached answer count
    GET    /health                      store reachability

Every JSON body carries ``success`` (``status`` for ``/health``); failures
never expose internal error details.  The ``/api`` routers count each
request against the caller's IP (see ``rate_limit``).
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from newsrag.src.api.dependencies import Services, get_services
from newsrag.src.api.rate_limit import enforce_rate_limit
from newsrag.src.core.exceptions import SessionNotFound
from newsrag.src.core.models import utc_now
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

chat_router = APIRouter(prefix="/api/chat", tags=["chat"], dependencies=[Depends(enforce_rate_limit)])
session_router = APIRouter(prefix="/api/session", tags=["session"], dependencies=[Depends(enforce_rate_limit)])
cache_router = APIRouter(prefix="/api/cache", tags=["cache"], dependencies=[Depends(enforce_rate_limit)])
health_router = APIRouter(tags=["health"])


class ChatRequest(BaseModel):
    """Body of the chat endpoints.  Both fields are checked by the handler."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str | None = None
    session_id: str | None = None
    top_k: int | None = Field(default=None, ge=1, le=50)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _missing_fields(body: ChatRequest) -> bool:
    return not (body.message and body.message.strip() and body.session_id and body.session_id.strip())


def _iso(value: datetime) -> str:
    return value.isoformat()


# ══════════════════════════════════════════════════════════════════════
#  CHAT
# ══════════════════════════════════════════════════════════════════════

@chat_router.post("/message")
async def send_message(body: ChatRequest, services: Annotated[Services, Depends(get_services)]):
    """Answer one message for a session."""
    if _missing_fields(body):
        return _error(400, "Message and sessionId are required")

    try:
        response = await services.orchestrator.answer(body.session_id, body.message, body.top_k)
    except Exception:
        logger.exception("[API] Chat message failed for session '%s'.", body.session_id)
        return _error(500, "Failed to process message")

    return {"success": True, "response": response.model_dump(mode="json", by_alias=True), "sessionId": body.session_id, "timestamp": _iso(utc_now())}


@chat_router.post("/stream")
async def stream_message(body: ChatRequest, services: Annotated[Services, Depends(get_services)]):
    """
    Stream the answer as ``text/plain`` fragments.

    The first fragment is awaited before the response starts, so failures
    in the cache / embedding / retrieval steps still produce a JSON 500.
    """
    if _missing_fields(body):
        return _error(400, "Message and sessionId are required")

    fragments = services.orchestrator.answer_stream(body.session_id, body.message, body.top_k)
    try:
        first = await anext(fragments)
    except StopAsyncIteration:
        first = ""
    except Exception:
        logger.exception("[API] Chat stream failed for session '%s'.", body.session_id)
        await fragments.aclose()
        return _error(500, "Failed to process message")

    async def body_iter():
        if first:
            yield first
        async for fragment in fragments:
            yield fragment

    return StreamingResponse(body_iter(), media_type="text/plain; charset=utf-8")


# ══════════════════════════════════════════════════════════════════════
#  SESSIONS
# ══════════════════════════════════════════════════════════════════════

@session_router.post("/create")
async def create_session(services: Annotated[Services, Depends(get_services)]):
    try:
        session = await services.sessions.create()
    except Exception:
        logger.exception("[API] Session creation failed.")
        return _error(500, "Failed to create session")
    return {"success": True, "sessionId": session.id, "expiresIn": services.sessions.ttl}


@session_router.get("/{session_id}/history")
async def get_history(session_id: str, services: Annotated[Services, Depends(get_services)]):
    try:
        session = await services.sessions.history(session_id)
    except SessionNotFound:
        return _error(404, "Session not found or expired")
    except Exception:
        logger.exception("[API] History lookup failed for session '%s'.", session_id)
        return _error(500, "Failed to get session history")

    return {"success": True, "history": [message.model_dump(mode="json", by_alias=True) for message in session.messages], "messageCount": session.message_count, "lastActivity": _iso(session.last_activity)}


@session_router.delete("/{session_id}")
async def clear_session(session_id: str, services: Annotated[Services, Depends(get_services)]):
    try:
        await services.sessions.clear(session_id)
    except SessionNotFound:
        return _error(404, "Session not found or expired")
    except Exception:
        logger.exception("[API] Clearing session '%s' failed.", session_id)
        return _error(500, "Failed to clear session")
    return {"success": True, "message": "Session cleared successfully"}


# ══════════════════════════════════════════════════════════════════════
#  CACHE ADMINISTRATION
# ══════════════════════════════════════════════════════════════════════

@cache_router.delete("")
async def clear_cache(services: Annotated[Services, Depends(get_services)]):
    """Drop every cached answer; sessions are untouched."""
    try:
        removed = await services.cache.clear()
    except Exception:
        logger.exception("[API] Clearing the answer cache failed.")
        return _error(500, "Failed to clear cache")
    return {"success": True, "cleared": removed}


@cache_router.get("/stats")
async def cache_stats(services: Annotated[Services, Depends(get_services)]):
    try:
        stats = await services.cache.stats()
    except Exception:
        logger.exception("[API] Reading cache stats failed.")
        return _error(500, "Failed to get cache stats")
    return {"success": True, "stats": stats}


# ══════════════════════════════════════════════════════════════════════
#  HEALTH
# ══════════════════════════════════════════════════════════════════════

@health_router.get("/health")
async def health(services: Annotated[Services, Depends(get_services)]):
    """Report whether the key-value store and the vector table are reachable."""
    try:
        cache_ok = await services.kv_store.ping()
        vector_ok = await services.vector_store.ping()
    except Exception:
        logger.exception("[API] Health check failed.")
        return JSONResponse(status_code=500, content={"status": "ERROR", "error": "Service health check failed"})

    return {"status": "OK", "timestamp": _iso(utc_now()), "services": {"cacheStoreOk": bool(cache_ok), "vectorStoreOk": bool(vector_ok)}}

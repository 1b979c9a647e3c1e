"""End-to-end tests of the HTTP and socket surface with in-memory services."""

import pytest
from fastapi.testclient import TestClient

from conftest import TestConstants
from newsrag.config.prompt_templates import NO_CONTEXT_RESPONSE
from newsrag.src.api.dependencies import Services
from newsrag.src.api.rate_limit import RATE_LIMIT_MESSAGE, RateLimiter
from newsrag.src.core.rag_engine import RAGOrchestrator
from newsrag.src.main import create_app


@pytest.fixture
def services(kv_store, vector_store, sessions, orchestrator, cache):
    return Services(kv_store, vector_store, sessions, orchestrator, cache=cache)


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as client:
        yield client


def _create_session(client):
    body = client.post("/api/session/create").json()
    assert body["success"] is True
    return body["sessionId"]


# ── Chat ──────────────────────────────────────────────────────────────


def test_message_then_history_has_user_and_bot_turns(client):
    session_id = _create_session(client)

    response = client.post("/api/chat/message", json={"message": TestConstants.QUERY, "sessionId": session_id})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sessionId"] == session_id
    assert isinstance(body["response"]["answer"], str) and body["response"]["answer"]
    assert isinstance(body["response"]["sources"], list)
    assert isinstance(body["response"]["hasRelevantContext"], bool)
    assert body["response"]["fromCache"] is False

    history = client.get(f"/api/session/{session_id}/history").json()
    assert history["messageCount"] == 2
    assert [message["role"] for message in history["history"]] == ["user", "bot"]
    assert history["history"][0]["content"] == TestConstants.QUERY


def test_repeated_message_is_served_from_cache(client):
    session_id = _create_session(client)
    client.post("/api/chat/message", json={"message": "Ukraine War?", "sessionId": session_id})
    second = client.post("/api/chat/message", json={"message": " ukraine war? ", "sessionId": session_id}).json()
    assert second["response"]["fromCache"] is True
    assert second["response"]["cachedAt"]

    history = client.get(f"/api/session/{session_id}/history").json()
    assert history["messageCount"] == 4


@pytest.mark.parametrize(
    "payload",
    [
        {"sessionId": "abc"},
        {"message": "hello"},
        {"message": "   ", "sessionId": "abc"},
        {},
    ],
)
def test_message_requires_message_and_session(client, payload):
    response = client.post("/api/chat/message", json=payload)
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Message and sessionId are required"}


def test_malformed_body_is_rejected_with_400(client):
    response = client.post("/api/chat/message", json={"message": "hi", "sessionId": "abc", "topK": 0})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_unexpected_failure_returns_500_without_details(client, monkeypatch):
    async def explode(self, session_id, query, top_k=None):
        raise RuntimeError("secret internal detail")

    monkeypatch.setattr(RAGOrchestrator, "answer", explode)
    response = client.post("/api/chat/message", json={"message": "hi", "sessionId": "abc"})
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to process message"}


def test_vector_store_down_still_answers(client, vector_store):
    vector_store.down = True
    body = client.post("/api/chat/message", json={"message": TestConstants.QUERY, "sessionId": _create_session(client)}).json()
    assert body["success"] is True
    assert body["response"]["hasRelevantContext"] is False
    assert body["response"]["answer"] == NO_CONTEXT_RESPONSE


def test_stream_returns_full_answer_as_text(client):
    session_id = _create_session(client)
    response = client.post("/api/chat/stream", json={"message": TestConstants.QUERY, "sessionId": session_id})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == TestConstants.ANSWER


def test_stream_requires_fields(client):
    response = client.post("/api/chat/stream", json={"message": "hi"})
    assert response.status_code == 400


# ── Sessions ──────────────────────────────────────────────────────────


def test_create_session_reports_ttl(client, sessions):
    body = client.post("/api/session/create").json()
    assert body["expiresIn"] == sessions.ttl


def test_clear_session_resets_history(client):
    session_id = _create_session(client)
    client.post("/api/chat/message", json={"message": TestConstants.QUERY, "sessionId": session_id})

    response = client.delete(f"/api/session/{session_id}")
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert client.get(f"/api/session/{session_id}/history").json()["messageCount"] == 0


def test_clear_unknown_session_returns_404(client):
    response = client.delete("/api/session/does-not-exist")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_history_of_unknown_session_returns_404(client):
    response = client.get("/api/session/does-not-exist/history")
    assert response.status_code == 404
    assert response.json()["success"] is False


# ── Health ────────────────────────────────────────────────────────────


def test_health_ok(client):
    body = client.get("/health").json()
    assert body["status"] == "OK"
    assert body["services"] == {"cacheStoreOk": True, "vectorStoreOk": True}


def test_health_reports_store_failure(client, kv_store):
    kv_store.fail = True
    response = client.get("/health")
    assert response.status_code == 500
    assert response.json()["status"] == "ERROR"


# ── Socket ────────────────────────────────────────────────────────────


def test_socket_join_and_answer(client):
    session_id = _create_session(client)
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "join-session", "data": session_id})
        websocket.send_json({"event": "send-message", "data": {"sessionId": session_id, "message": TestConstants.QUERY}})
        frame = websocket.receive_json()

    assert frame["event"] == "bot-response"
    assert frame["data"]["sessionId"] == session_id
    assert frame["data"]["response"]["answer"] == TestConstants.ANSWER


def test_socket_binary_frame_is_rejected_and_connection_survives(client):
    session_id = _create_session(client)
    with client.websocket_connect("/ws") as websocket:
        websocket.send_bytes(b"\x00\x01not json")
        error = websocket.receive_json()
        websocket.send_text("{not json")
        second_error = websocket.receive_json()

        websocket.send_json({"event": "join-session", "data": session_id})
        websocket.send_json({"event": "send-message", "data": {"sessionId": session_id, "message": TestConstants.QUERY}})
        frame = websocket.receive_json()

    assert error == {"event": "error", "data": {"message": "Malformed frame"}}
    assert second_error == error
    assert frame["event"] == "bot-response"


# ── Cache administration ──────────────────────────────────────────────


def test_cache_stats_and_clear(client, kv_store):
    session_id = _create_session(client)
    client.post("/api/chat/message", json={"message": TestConstants.QUERY, "sessionId": session_id})

    assert client.get("/api/cache/stats").json() == {"success": True, "stats": {"entries": 1, "ttlSeconds": 60}}

    response = client.delete("/api/cache")
    assert response.status_code == 200
    assert response.json() == {"success": True, "cleared": 1}
    assert client.get("/api/cache/stats").json()["stats"]["entries"] == 0
    assert client.get(f"/api/session/{session_id}/history").json()["messageCount"] == 2

    again = client.post("/api/chat/message", json={"message": TestConstants.QUERY, "sessionId": session_id}).json()
    assert again["response"]["fromCache"] is False


def test_cache_clear_failure_returns_500(client, kv_store):
    kv_store.fail = True
    response = client.delete("/api/cache")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to clear cache"}


# ── Rate limiting ─────────────────────────────────────────────────────


def test_requests_over_the_limit_get_429(kv_store, vector_store, sessions, orchestrator):
    services = Services(kv_store, vector_store, sessions, orchestrator, rate_limiter=RateLimiter(limit=3, window=60))
    with TestClient(create_app(services)) as client:
        statuses = [client.post("/api/session/create").status_code for _ in range(3)]
        limited = client.post("/api/chat/message", json={"message": "hi", "sessionId": "abc"})
        health = client.get("/health")

    assert statuses == [200, 200, 200]
    assert limited.status_code == 429
    assert limited.json() == {"success": False, "error": RATE_LIMIT_MESSAGE}
    assert 1 <= int(limited.headers["Retry-After"]) <= 60
    assert health.status_code == 200

"""Service container built once at startup and handed to route handlers."""

from __future__ import annotations

from fastapi import Request, WebSocket

from newsrag.config.settings import settings
from newsrag.src.api.bindings import SessionBindingRegistry
from newsrag.src.api.rate_limit import RateLimiter
from newsrag.src.core.embeddings import EmbeddingGateway
from newsrag.src.core.generation import GenerationGateway
from newsrag.src.core.rag_engine import RAGOrchestrator
from newsrag.src.database.cache import ResponseCache
from newsrag.src.database.kv_store import KeyValueStore, MongoKeyValueStore
from newsrag.src.database.session_store import SessionStore
from newsrag.src.database.vector_store import NewsVectorStore
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)


class Services:
    """Every long-lived collaborator of the HTTP and socket transports."""

    __slots__ = ("kv_store", "vector_store", "sessions", "orchestrator", "bindings", "cache", "rate_limiter")

    def __init__(self, kv_store: KeyValueStore, vector_store: NewsVectorStore, sessions: SessionStore, orchestrator: RAGOrchestrator, bindings: SessionBindingRegistry | None = None, cache: ResponseCache | None = None, rate_limiter: RateLimiter | None = None) -> None:
        self.kv_store = kv_store
        self.vector_store = vector_store
        self.sessions = sessions
        self.orchestrator = orchestrator
        self.bindings = bindings or SessionBindingRegistry()
        self.cache = cache or ResponseCache(kv_store)
        self.rate_limiter = rate_limiter or RateLimiter()


async def build_services() -> Services:
    """Construct the production gateways and stores from ``settings``."""
    kv_store = MongoKeyValueStore()
    await kv_store.ensure_indexes()

    vector_store = NewsVectorStore()
    await vector_store.ensure_collection(settings.LANCEDB_TABLE_NAME, settings.EMBEDDING_DIMENSION, "cosine")

    sessions = SessionStore(kv_store)
    cache = ResponseCache(kv_store)
    orchestrator = RAGOrchestrator(embedding=EmbeddingGateway(), vector_store=vector_store, cache=cache, sessions=sessions, generation=GenerationGateway())
    logger.info("Services ready (cache scope=%s, top_k=%d, threshold=%.2f).", settings.CACHE_SCOPE, settings.SEARCH_TOP_K, settings.SIMILARITY_THRESHOLD)
    return Services(kv_store, vector_store, sessions, orchestrator, cache=cache)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_socket_services(websocket: WebSocket) -> Services:
    return websocket.app.state.services

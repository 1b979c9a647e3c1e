"""Test configuration and fixtures for NewsRAG tests.

Fixtures are organized by functionality:
- Environment defaults (set before any ``newsrag`` import)
- In-memory key-value store
- Fake embedding model, vector store and chat model
- Gateway, store and orchestrator fixtures
- FastAPI test client
"""

import asyncio
import hashlib
import os
from datetime import datetime, timedelta, timezone

# Settings are instantiated at import time and require these values
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")

import pytest  # noqa: E402
from langchain_core.messages import AIMessage, AIMessageChunk  # noqa: E402

from newsrag.src.core.embeddings import EmbeddingGateway  # noqa: E402
from newsrag.src.core.exceptions import RetrievalError  # noqa: E402
from newsrag.src.core.generation import GenerationGateway, RetryPolicy  # noqa: E402
from newsrag.src.core.models import ArticlePayload, DocumentHit  # noqa: E402
from newsrag.src.core.rag_engine import RAGOrchestrator  # noqa: E402
from newsrag.src.database.cache import ResponseCache  # noqa: E402
from newsrag.src.database.session_store import SessionStore  # noqa: E402


class TestConstants:
    """Centralized test constants."""

    DIMENSION = 8
    QUERY = "What happened today?"
    ANSWER = "Parliament passed the budget after a late-night vote."


# ── Key-value store ───────────────────────────────────────────────────


class InMemoryKeyValueStore:
    """Expiring dict honouring the ``KeyValueStore`` protocol.

    ``get`` yields to the event loop once, so concurrent read-modify-write
    sequences interleave the way they would against a real store.
    """

    def __init__(self) -> None:
        self.data: dict[str, tuple[str, datetime]] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False
        self.writes = 0

    async def get(self, key):
        if self.fail:
            raise ConnectionError("store unavailable")
        entry = self.data.get(key)
        await asyncio.sleep(0)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= datetime.now(timezone.utc):
            return None
        return value

    async def set(self, key, value, ttl):
        if self.fail:
            raise ConnectionError("store unavailable")
        self.writes += 1
        self.ttls[key] = ttl
        self.data[key] = (value, datetime.now(timezone.utc) + timedelta(seconds=ttl))

    async def ping(self):
        if self.fail:
            raise ConnectionError("store unavailable")
        return True

    async def delete_prefix(self, prefix):
        if self.fail:
            raise ConnectionError("store unavailable")
        doomed = [key for key in self.data if key.startswith(prefix)]
        for key in doomed:
            del self.data[key]
        return len(doomed)

    async def count_prefix(self, prefix):
        if self.fail:
            raise ConnectionError("store unavailable")
        now = datetime.now(timezone.utc)
        return sum(1 for key, (_, expires_at) in self.data.items() if key.startswith(prefix) and expires_at > now)

    def expire(self, key):
        value, _ = self.data[key]
        self.data[key] = (value, datetime.now(timezone.utc) - timedelta(seconds=1))

    def close(self):
        pass


# ── Embeddings ────────────────────────────────────────────────────────


def deterministic_vector(text, dimension=TestConstants.DIMENSION):
    digest = hashlib.sha256(text.lower().encode("utf-8")).digest()
    return [(byte / 255.0) - 0.5 for byte in digest[:dimension]]


class FakeEmbedder:
    """Hash-based stand-in for ``GoogleGenerativeAIEmbeddings``."""

    def __init__(self, dimension=TestConstants.DIMENSION) -> None:
        self.dimension = dimension
        self.query_calls = 0
        self.document_calls = []
        self.error = None
        self.drop_last = False

    async def aembed_query(self, text):
        self.query_calls += 1
        if self.error is not None:
            raise self.error
        return deterministic_vector(text, self.dimension)

    async def aembed_documents(self, texts):
        self.document_calls.append(list(texts))
        if self.error is not None:
            raise self.error
        vectors = [deterministic_vector(text, self.dimension) for text in texts]
        return vectors[:-1] if self.drop_last else vectors


# ── Vector store ──────────────────────────────────────────────────────


def make_hit(index, score, summary=None):
    payload = ArticlePayload(title=f"Article {index}", summary=summary if summary is not None else f"Summary of article {index}.", content=f"Full content of article {index}.", url=f"https://news.example.com/{index}", source="Example News")
    return DocumentHit(id=f"id-{index}", score=score, payload=payload)


class FakeVectorStore:
    """Returns scripted hits, or raises ``RetrievalError`` when ``down``."""

    def __init__(self, hits=None) -> None:
        self.hits = list(hits or [])
        self.down = False
        self.calls = []

    async def search(self, vector, k, score_threshold=None):
        self.calls.append((list(vector), k, score_threshold))
        if self.down:
            raise RetrievalError("vector store unreachable")
        hits = [hit for hit in self.hits if score_threshold is None or hit.score >= score_threshold]
        return sorted(hits, key=lambda hit: hit.score, reverse=True)[:k]

    async def ping(self):
        return not self.down


# ── Chat model ────────────────────────────────────────────────────────


class FakeLLM:
    """Scripted stand-in for ``ChatGoogleGenerativeAI``.

    ``responses`` items are returned (str) or raised (Exception) in order by
    ``ainvoke``; ``fragments`` are streamed by ``astream``, and
    ``stream_error`` is raised after they are exhausted.
    """

    def __init__(self, responses=None, fragments=None, stream_error=None) -> None:
        self.responses = list(responses or [TestConstants.ANSWER])
        self.fragments = list(fragments if fragments is not None else ["Parliament passed ", "the budget after ", "a late-night vote."])
        self.stream_error = stream_error
        self.invoke_calls = 0
        self.stream_calls = 0
        self.prompts = []

    async def ainvoke(self, input):
        self.invoke_calls += 1
        self.prompts.append(input)
        item = self.responses[min(self.invoke_calls, len(self.responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return AIMessage(content=item)

    async def astream(self, input):
        self.stream_calls += 1
        self.prompts.append(input)
        for fragment in self.fragments:
            await asyncio.sleep(0)
            yield AIMessageChunk(content=fragment)
        if self.stream_error is not None:
            raise self.stream_error


class StatusError(Exception):
    """Exception carrying an HTTP-like status code, as SDK errors do."""

    def __init__(self, message, code) -> None:
        super().__init__(message)
        self.code = code


async def no_sleep(_delay):
    return None


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def embedding(embedder):
    return EmbeddingGateway(embedder=embedder, dimension=TestConstants.DIMENSION, timeout=1.0, batch_size=2)


@pytest.fixture
def vector_store():
    return FakeVectorStore(hits=[make_hit(1, 0.91), make_hit(2, 0.82), make_hit(3, 0.40)])


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def generation(llm):
    return GenerationGateway(llm=llm, retry_policy=RetryPolicy(max_attempts=3, base_delay=0.0), timeout=1.0, sleep=no_sleep)


@pytest.fixture
def cache(kv_store):
    return ResponseCache(kv_store, ttl=60)


@pytest.fixture
def sessions(kv_store):
    return SessionStore(kv_store, ttl=120)


@pytest.fixture
def orchestrator(embedding, vector_store, cache, sessions, generation):
    return RAGOrchestrator(embedding, vector_store, cache, sessions, generation, top_k=5, score_threshold=0.5, max_context_chars=4000, cache_scope="session")

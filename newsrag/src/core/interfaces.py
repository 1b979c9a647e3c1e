"""
NewsRAG - Capability Protocols
===============================
The narrow interfaces the ``RAGOrchestrator`` depends on.  Concrete
gateways and stores are constructed once at startup and injected; tests
inject in-memory fakes that satisfy the same protocols.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from newsrag.src.core.models import CachedAnswer, DocumentHit, Session


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


@runtime_checkable
class VectorSearcher(Protocol):
    async def search(self, vector: list[float], k: int, score_threshold: float | None = None) -> list[DocumentHit]: ...


@runtime_checkable
class AnswerCache(Protocol):
    def make_key(self, query: str, session_id: str | None = None) -> str: ...

    async def get(self, key: str) -> CachedAnswer | None: ...

    async def set(self, key: str, answer: CachedAnswer, ttl: int | None = None) -> bool: ...


@runtime_checkable
class SessionHistory(Protocol):
    async def append_turn(self, session_id: str, user_message: str, bot_message: str | None = None) -> Session: ...


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...

    def generate_stream(self, prompt: str) -> AsyncIterator[str]: ...

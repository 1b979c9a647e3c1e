"""
NewsRAG - RAG Engine
=====================
Orchestrates the retrieval-augmented query pipeline over injected
capabilities: embedding, vector search, answer cache, session history and
text generation.

Flow (``answer``)
-----------------
    1. Normalise query → cache lookup (hit → append the turn to the
       session and return, no embedding or model call)
    2. Embed query (failure → plain-language apology)
    3. Vector search, top-k above the similarity threshold
       (store unreachable → treated as zero hits)
    4. Zero hits → fixed "no relevant information" answer, no model call
    5. Build bounded context (title + summary, descending score)
    6. Grounding prompt → generation (the gateway always returns text)
    7. Cache the answer; append user + bot messages to the session
       (best-effort: an expired session does not fail the answer)
    8. Return ``RAGResponse``

``answer_stream`` runs steps 1–5 identically, then drives the model's
fragment stream from a background producer task.  Fragments are
forwarded as they arrive; the accumulated text is cached and appended to
the session once the stream ends.  If the consumer disconnects, the
producer still runs to completion and still records the full answer.

The orchestrator is the error boundary of the query path: no upstream
exception escapes ``answer`` or ``answer_stream``.

Usage:
    rag = RAGOrchestrator(embedding, vector_store, cache, sessions, generation)
    response = await rag.answer(session_id, "What happened today?")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from typing import NamedTuple

from newsrag.config.prompt_templates import CONTEXT_BLOCK_TEMPLATE, CONTEXT_SEPARATOR, GENERATION_FALLBACK, NO_CONTEXT_RESPONSE, PIPELINE_ERROR_RESPONSE, RAG_PROMPT_TEMPLATE, SYSTEM_INSTRUCTIONS
from newsrag.config.settings import settings
from newsrag.src.core.exceptions import EmbeddingError, RetrievalError, SessionNotFound
from newsrag.src.core.interfaces import AnswerCache, EmbeddingProvider, SessionHistory, TextGenerator, VectorSearcher
from newsrag.src.core.models import CachedAnswer, DocumentHit, RAGResponse, Source
from newsrag.src.utils.logger import get_logger
from newsrag.src.utils.text_utils import normalize_query, truncate

logger = get_logger(__name__)

_STREAM_END = object()


class _Prepared(NamedTuple):
    """Outcome of steps 1–5: either a final response, or a prompt to generate from."""

    cache_key: str
    response: RAGResponse | None
    prompt: str
    sources: list[Source]


class RAGOrchestrator:
    """
    Retrieval-augmented answering over injected gateways.

    Parameters
    ----------
    embedding
        ``EmbeddingProvider`` for the query vector.
    vector_store
        ``VectorSearcher`` returning ranked article hits.
    cache
        ``AnswerCache`` for generated answers.
    sessions
        ``SessionHistory`` receiving each completed turn.
    generation
        ``TextGenerator`` for one-shot and streaming answers.
    top_k, score_threshold, max_context_chars, cache_scope
        Override the corresponding settings.
    """

    __slots__ = ("_embedding", "_store", "_cache", "_sessions", "_generation", "_top_k", "_threshold", "_max_context_chars", "_cache_scope", "_background")

    def __init__(self, embedding: EmbeddingProvider, vector_store: VectorSearcher, cache: AnswerCache, sessions: SessionHistory, generation: TextGenerator, top_k: int | None = None, score_threshold: float | None = None, max_context_chars: int | None = None, cache_scope: str | None = None) -> None:
        self._embedding = embedding
        self._store = vector_store
        self._cache = cache
        self._sessions = sessions
        self._generation = generation
        self._top_k = top_k or settings.SEARCH_TOP_K
        self._threshold = settings.SIMILARITY_THRESHOLD if score_threshold is None else score_threshold
        self._max_context_chars = max_context_chars or settings.MAX_CONTEXT_CHARS
        self._cache_scope = cache_scope or settings.CACHE_SCOPE
        self._background: set[asyncio.Task[None]] = set()

    # ══════════════════════════════════════════════════════════════════
    #  SYNCHRONOUS (REQUEST / RESPONSE) ANSWER
    # ══════════════════════════════════════════════════════════════════

    async def answer(self, session_id: str, query: str, top_k: int | None = None) -> RAGResponse:
        """Answer ``query`` for ``session_id``; never raises for upstream failures."""
        t_start = time.perf_counter()
        prepared = await self._prepare(session_id, query, top_k)
        if prepared.response is not None:
            return prepared.response

        t_llm = time.perf_counter()
        answer = await self._generation.generate(prepared.prompt)
        llm_ms = (time.perf_counter() - t_llm) * 1000

        await self._record(session_id, query, prepared.cache_key, answer, prepared.sources)

        logger.info("[RAG] Pipeline total: %.1fms (llm=%.1fms, sources=%d)", (time.perf_counter() - t_start) * 1000, llm_ms, len(prepared.sources))
        return RAGResponse(answer=answer, sources=prepared.sources, has_relevant_context=True, from_cache=False)

    # ══════════════════════════════════════════════════════════════════
    #  STREAMING ANSWER
    # ══════════════════════════════════════════════════════════════════

    async def answer_stream(self, session_id: str, query: str, top_k: int | None = None) -> AsyncIterator[str]:
        """
        Yield answer fragments as the model produces them.

        Cached and degraded answers (no context, embedding failure) are
        yielded as a single fragment.
        """
        prepared = await self._prepare(session_id, query, top_k)
        if prepared.response is not None:
            yield prepared.response.answer
            return

        queue: asyncio.Queue[object] = asyncio.Queue()
        producer = asyncio.create_task(self._produce(session_id, query, prepared, queue))
        # Keep a strong reference: the producer must outlive a disconnected consumer
        self._background.add(producer)
        producer.add_done_callback(self._background.discard)

        while True:
            fragment = await queue.get()
            if fragment is _STREAM_END:
                break
            yield fragment  # type: ignore[misc]


    async def _produce(self, session_id: str, query: str, prepared: _Prepared, queue: asyncio.Queue[object]) -> None:
        """Pull fragments from the model, forward them, then record the full answer."""
        t_llm = time.perf_counter()
        parts: list[str] = []
        try:
            async for fragment in self._generation.generate_stream(prepared.prompt):
                parts.append(fragment)
                queue.put_nowait(fragment)

            answer = "".join(parts).strip()
            if not answer:
                logger.warning("[RAG] Stream produced no text, emitting fallback.")
                answer = GENERATION_FALLBACK
                queue.put_nowait(answer)

            logger.info("[RAG] Stream complete: %d fragment(s), %d chars in %.1fms.", len(parts), len(answer), (time.perf_counter() - t_llm) * 1000)
            await self._record(session_id, query, prepared.cache_key, answer, prepared.sources)
        except Exception:
            logger.exception("[RAG] Streaming producer failed.")
        finally:
            queue.put_nowait(_STREAM_END)


    async def drain(self) -> None:
        """Wait for in-flight streaming producers (used at shutdown)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ══════════════════════════════════════════════════════════════════
    #  SHARED STEPS 1–5
    # ══════════════════════════════════════════════════════════════════

    async def _prepare(self, session_id: str, query: str, top_k: int | None) -> _Prepared:
        normalized = normalize_query(query)
        if not normalized:
            raise ValueError("query must not be empty")
        k = top_k or self._top_k
        cache_key = self._cache.make_key(normalized, session_id if self._cache_scope == "session" else None)

        # ── 1. Cache lookup ───────────────────────────────────────────
        cached = await self._cache.get(cache_key)
        if cached is not None:
            logger.info("[RAG] ⚡ Cache hit for session '%s'.", session_id)
            response = RAGResponse(answer=cached.answer, sources=cached.sources, has_relevant_context=True, from_cache=True, cached_at=cached.timestamp)
            await self._append_history(session_id, query, cached.answer)
            return _Prepared(cache_key, response, "", cached.sources)

        # ── 2. Embed query ────────────────────────────────────────────
        t_embed = time.perf_counter()
        try:
            query_vector = await self._embedding.embed(query)
        except EmbeddingError:
            logger.exception("[RAG] Query embedding failed.")
            response = RAGResponse(answer=PIPELINE_ERROR_RESPONSE, sources=[], has_relevant_context=False)
            await self._append_history(session_id, query, response.answer)
            return _Prepared(cache_key, response, "", [])
        embed_ms = (time.perf_counter() - t_embed) * 1000

        # ── 3. Retrieve ───────────────────────────────────────────────
        t_search = time.perf_counter()
        try:
            hits = await self._store.search(query_vector, k, self._threshold)
        except RetrievalError:
            logger.warning("[RAG] Vector store unavailable, answering without context.", exc_info=True)
            hits = []
        search_ms = (time.perf_counter() - t_search) * 1000
        logger.info("[RAG] Embed %.1fms, search %.1fms → %d hit(s).", embed_ms, search_ms, len(hits))

        # ── 4. No context → fixed answer, skip the model ──────────────
        if not hits:
            response = RAGResponse(answer=NO_CONTEXT_RESPONSE, sources=[], has_relevant_context=False)
            await self._append_history(session_id, query, response.answer)
            return _Prepared(cache_key, response, "", [])

        # ── 5. Context + prompt ───────────────────────────────────────
        context, used = self.build_context(hits, self._max_context_chars)
        sources = [Source(title=hit.payload.title, url=hit.payload.url) for hit in used]
        prompt = RAG_PROMPT_TEMPLATE.format(instructions=SYSTEM_INSTRUCTIONS, context=context, question=query.strip())
        return _Prepared(cache_key, None, prompt, sources)

    # ══════════════════════════════════════════════════════════════════
    #  CONTEXT
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def build_context(hits: list[DocumentHit], max_chars: int) -> tuple[str, list[DocumentHit]]:
        """
        Concatenate hits (highest score first) into a context block of at
        most ``max_chars`` characters.

        Returns the context and the hits that made it in.  The first hit is
        always included, truncated if it alone exceeds the budget.
        """
        ranked = sorted(hits, key=lambda hit: hit.score, reverse=True)
        blocks: list[str] = []
        used: list[DocumentHit] = []
        length = 0

        for hit in ranked:
            payload = hit.payload
            summary = payload.summary or truncate(payload.content, 500)
            block = CONTEXT_BLOCK_TEMPLATE.format(index=len(blocks) + 1, title=payload.title or "Untitled", source=payload.source or "unknown", summary=summary)
            extra = len(block) + (len(CONTEXT_SEPARATOR) if blocks else 0)

            if length + extra > max_chars:
                if not blocks:
                    blocks.append(truncate(block, max_chars))
                    used.append(hit)
                break

            blocks.append(block)
            used.append(hit)
            length += extra

        return CONTEXT_SEPARATOR.join(blocks), used

    # ══════════════════════════════════════════════════════════════════
    #  CACHE + SESSION WRITE-BACK
    # ══════════════════════════════════════════════════════════════════

    async def _record(self, session_id: str, query: str, cache_key: str, answer: str, sources: list[Source]) -> None:
        """Step 7: cache a generated answer, then append the turn to the session."""
        if answer != GENERATION_FALLBACK:
            await self._cache.set(cache_key, CachedAnswer(answer=answer, sources=sources))
        await self._append_history(session_id, query, answer)


    async def _append_history(self, session_id: str, query: str, answer: str) -> None:
        try:
            await self._sessions.append_turn(session_id, query, answer)
        except SessionNotFound:
            logger.info("[RAG] Session '%s' not found or expired, history not updated.", session_id)
        except Exception:
            logger.exception("[RAG] Failed to update history for session '%s'.", session_id)

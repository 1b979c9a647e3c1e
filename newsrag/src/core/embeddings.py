"""
NewsRAG - Embedding Gateway
============================
Turns free text into fixed-dimension vectors via the Gemini embedding
model (``GoogleGenerativeAIEmbeddings``).

Contract
--------
``embed(text)``
    One vector, or ``EmbeddingError`` when the upstream call fails,
    times out, or returns an empty / malformed / wrong-size vector.
``embed_batch(texts)``
    One vector per input, in input order.  Texts are sent upstream in
    sub-batches of ``EMBED_BATCH_SIZE``; if any sub-batch comes back with
    a different number of vectors than it was sent, the *whole* call
    fails; vectors are never zipped onto texts by position when the
    counts disagree.

No retry happens here; callers decide what a failure means.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Protocol, runtime_checkable

from newsrag.config.settings import settings
from newsrag.src.core.exceptions import EmbeddingError
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible async embedding model."""

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]: ...

    async def aembed_query(self, text: str) -> list[float]: ...


def _init_embedder() -> Embedder:
    """Initialise the Gemini embedding model via LangChain."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("Embedder initialised: %s (dimension=%d)", settings.EMBEDDING_MODEL, settings.EMBEDDING_DIMENSION)
    return embedder


class EmbeddingGateway:
    """
    Async embedding client with per-call timeout and strict validation.

    Parameters
    ----------
    embedder
        Any ``Embedder``; defaults to ``GoogleGenerativeAIEmbeddings``.
    dimension
        Expected vector length.  Defaults to ``settings.EMBEDDING_DIMENSION``.
    timeout
        Seconds allowed per upstream call.
    batch_size
        Maximum number of texts per upstream batch call.
    """

    __slots__ = ("_embedder", "_dimension", "_timeout", "_batch_size")

    def __init__(self, embedder: Embedder | None = None, dimension: int | None = None, timeout: float | None = None, batch_size: int | None = None) -> None:
        self._embedder = embedder if embedder is not None else _init_embedder()
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self._timeout = timeout or settings.EMBEDDING_TIMEOUT
        self._batch_size = batch_size or settings.EMBED_BATCH_SIZE


    @property
    def dimension(self) -> int:
        return self._dimension


    async def embed(self, text: str) -> list[float]:
        """Embed a single query text."""
        t_start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(self._embedder.aembed_query(text), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[EMBED] Query embedding timed out after %.1fs.", self._timeout)
            raise EmbeddingError(f"Embedding timed out after {self._timeout}s") from exc
        except Exception as exc:
            logger.error("[EMBED] Query embedding failed: %s", exc)
            raise EmbeddingError("Embedding generation failed") from exc

        vector = self._validate(raw)
        logger.debug("[EMBED] Query embedded in %.1fms.", (time.perf_counter() - t_start) * 1000)
        return vector


    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed many texts, preserving order.

        Raises
        ------
        EmbeddingError
            If any upstream call fails, or any batch returns a vector
            count different from the number of texts sent.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = texts[i : i + self._batch_size]
            try:
                raw_batch = await asyncio.wait_for(self._embedder.aembed_documents(batch), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                logger.error("[EMBED] Batch %d–%d timed out after %.1fs.", i, i + len(batch) - 1, self._timeout)
                raise EmbeddingError(f"Batch embedding timed out after {self._timeout}s") from exc
            except Exception as exc:
                logger.error("[EMBED] Batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise EmbeddingError("Batch embedding failed") from exc

            if raw_batch is None or len(raw_batch) != len(batch):
                returned = 0 if raw_batch is None else len(raw_batch)
                logger.error("[EMBED] Cardinality mismatch: sent %d texts, received %d vectors.", len(batch), returned)
                raise EmbeddingError(f"Embedding count mismatch: expected {len(batch)}, got {returned}")

            vectors.extend(self._validate(raw) for raw in raw_batch)
            logger.info("[EMBED] Embedded batch %d (%d texts).", i // self._batch_size + 1, len(batch))

        return vectors


    def _validate(self, raw: object) -> list[float]:
        """Coerce an upstream result into ``list[float]`` of the configured size."""
        if raw is None or isinstance(raw, (str, bytes)):
            raise EmbeddingError("Embedding result is empty or malformed")
        try:
            vector = [float(value) for value in raw]  # type: ignore[union-attr]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("Embedding result is not a numeric vector") from exc

        if not vector:
            raise EmbeddingError("Embedding result is empty")
        if len(vector) != self._dimension:
            raise EmbeddingError(f"Embedding dimension mismatch: expected {self._dimension}, got {len(vector)}")
        if not all(math.isfinite(value) for value in vector):
            raise EmbeddingError("Embedding contains non-finite values")
        return vector

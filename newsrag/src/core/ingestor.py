"""
NewsRAG - ArticleIngestor
==========================
Writes already-extracted news articles into the vector index:
clean → build embedding text → embed (batched, strict cardinality) → upsert.

Feed parsing, article extraction and resume bookkeeping live outside
this package; callers hand over ``ArticlePayload`` objects.

Key design decisions:
    • **Dependency Injection** – receives ``EmbeddingGateway`` + ``NewsVectorStore``.
    • **Stable ids** – each article id is a UUID5 of its URL (or of its
      title + source when the URL is missing), so re-ingesting an
      article overwrites it instead of duplicating it.
    • **All-or-nothing batches** – if the embedding batch comes back
      with the wrong number of vectors, nothing is written.

Usage:
    from newsrag.src.core.ingestor import ArticleIngestor
    ingestor = ArticleIngestor(embedding, vector_store)
    stored = await ingestor.store_articles(articles)
"""

from __future__ import annotations

import time
import uuid

from newsrag.src.core.interfaces import EmbeddingProvider
from newsrag.src.core.models import ArticlePayload, VectorPoint
from newsrag.src.database.vector_store import NewsVectorStore
from newsrag.src.utils.logger import get_logger
from newsrag.src.utils.text_utils import article_embedding_text

logger = get_logger(__name__)

_ARTICLE_NAMESPACE = uuid.UUID("6f1c3c1e-5d0b-4a53-9a7e-0d4f1b8c2e77")


def article_id(payload: ArticlePayload) -> str:
    """Deterministic point id for an article."""
    basis = payload.url or f"{payload.source}|{payload.title}"
    return str(uuid.uuid5(_ARTICLE_NAMESPACE, basis))


class ArticleIngestor:
    """
    Embeds and stores article payloads.

    Parameters
    ----------
    embedding
        ``EmbeddingProvider`` used for ``embed_batch``.
    vector_store
        Initialised ``NewsVectorStore``.
    """

    __slots__ = ("_embedding", "_store")

    def __init__(self, embedding: EmbeddingProvider, vector_store: NewsVectorStore) -> None:
        self._embedding = embedding
        self._store = vector_store


    async def store_articles(self, articles: list[ArticlePayload]) -> int:
        """
        Embed and upsert ``articles``.

        Articles with no usable text are skipped.

        Returns
        -------
        int
            Number of articles written.

        Raises
        ------
        EmbeddingError
            If the embedding batch fails or its cardinality is wrong.
        """
        t_start = time.perf_counter()
        usable: list[tuple[ArticlePayload, str]] = []
        for article in articles:
            text = article_embedding_text(article.model_dump())
            if not text:
                logger.warning("Skipping article without text: %s", article.url or "<no url>")
                continue
            usable.append((article, text))

        if not usable:
            logger.info("No articles to store.")
            return 0

        vectors = await self._embedding.embed_batch([text for _, text in usable])

        points = [VectorPoint(id=article_id(article), vector=vector, payload=article) for (article, _), vector in zip(usable, vectors, strict=True)]
        stored = await self._store.upsert(points)

        logger.info("Stored %d article(s) in %.2fs.", stored, time.perf_counter() - t_start)
        return stored

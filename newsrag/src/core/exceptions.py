"""
NewsRAG - Error Taxonomy
=========================
Exceptions raised at the gateway / adapter boundaries.

How each one is handled is decided by ``RAGOrchestrator``, which is the
error boundary for the whole query path:

``EmbeddingError``
    Surfaced to the user as a generic apology; never retried.
``RetrievalError``
    Degrades to "no context available"; never fails the request.
``GenerationError``
    Internal to ``GenerationGateway``, which always resolves to text.
``SessionNotFound``
    Ignored by the best-effort history append; 404 on direct
    history / clear requests.
"""

from __future__ import annotations


class NewsRAGError(Exception):
    """Base class for every NewsRAG error."""


class EmbeddingError(NewsRAGError):
    """The embedding model call failed or returned a malformed result."""


class RetrievalError(NewsRAGError):
    """The vector store could not be reached or timed out."""


class GenerationError(NewsRAGError):
    """The language model call failed or returned no text."""


class SessionNotFound(NewsRAGError):
    """The session key is absent or expired."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' not found or expired")
        self.session_id = session_id

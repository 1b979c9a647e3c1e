"""
NewsRAG - Data Models
======================
Pydantic models shared by the stores, the orchestrator and the HTTP /
socket transports.  Field names are snake_case in Python and camelCase
on the wire (``by_alias=True``), matching the persisted JSON layout of
``session:<id>`` and ``query:<...>`` keys.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Retrieval ─────────────────────────────────────────────────────────

class ArticlePayload(_WireModel):
    """Stored metadata of one news article.  Unknown keys are kept."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    title: str = ""
    content: str = ""
    summary: str = ""
    url: str = ""
    source: str = ""
    published_at: str = ""


class VectorPoint(BaseModel):
    """An ``(id, vector, payload)`` tuple written to the vector index."""

    id: str
    vector: list[float]
    payload: ArticlePayload


class DocumentHit(BaseModel):
    """A retrieved article with its cosine similarity (higher = closer)."""

    id: str
    score: float
    payload: ArticlePayload


class Source(_WireModel):
    title: str
    url: str


# ── Answers ───────────────────────────────────────────────────────────

class CachedAnswer(_WireModel):
    answer: str
    sources: list[Source] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class RAGResponse(_WireModel):
    answer: str
    sources: list[Source] = Field(default_factory=list)
    has_relevant_context: bool
    from_cache: bool = False
    cached_at: datetime | None = None


# ── Sessions ──────────────────────────────────────────────────────────

Role = Literal["user", "bot"]


class ChatMessage(_WireModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


class Session(_WireModel):
    """
    Conversation state of one user session.

    ``message_count`` always equals ``len(messages)``; it is recomputed on
    every mutation rather than incremented.
    """

    id: str
    created_at: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)
    messages: list[ChatMessage] = Field(default_factory=list)
    message_count: int = 0

"""
NewsRAG - Response Cache
=========================
Maps a normalized query (optionally scoped to a session) to a previously
generated answer, with TTL-based expiry delegated to the key-value store.

Key layout::

    query:<sha256(normalized query)>                       # global scope
    query:<sha256(session id)>:<sha256(normalized query)>  # session scope

The cache is advisory: every read or write failure (store errors and
corrupt entries alike) is logged and degrades to a miss / no-op.
``clear`` and ``stats`` are administrative and let store errors propagate.
"""

from __future__ import annotations

from pydantic import ValidationError

from newsrag.config.settings import settings
from newsrag.src.core.models import CachedAnswer
from newsrag.src.database.kv_store import KeyValueStore
from newsrag.src.utils.logger import get_logger
from newsrag.src.utils.text_utils import normalize_query, query_digest

logger = get_logger(__name__)

KEY_PREFIX = "query:"


class ResponseCache:
    """
    Answer cache over an expiring key-value store.

    Parameters
    ----------
    store
        Any ``KeyValueStore``.
    ttl
        Default lifetime in seconds.  Defaults to ``settings.CACHE_TTL``.
    """

    __slots__ = ("_store", "_ttl")

    def __init__(self, store: KeyValueStore, ttl: int | None = None) -> None:
        self._store = store
        self._ttl = ttl or settings.CACHE_TTL


    @staticmethod
    def make_key(query: str, session_id: str | None = None) -> str:
        """Derive the store key for ``query``; case and whitespace are ignored."""
        digest = query_digest(normalize_query(query))
        if session_id:
            return f"{KEY_PREFIX}{query_digest(session_id)}:{digest}"
        return f"{KEY_PREFIX}{digest}"


    async def get(self, key: str) -> CachedAnswer | None:
        try:
            raw = await self._store.get(key)
        except Exception:
            logger.exception("[CACHE] Read failed for '%s', treating as miss.", key)
            return None

        if raw is None:
            logger.debug("[CACHE] Miss: %s", key)
            return None

        try:
            cached = CachedAnswer.model_validate_json(raw)
        except ValidationError:
            logger.warning("[CACHE] Corrupt entry at '%s', treating as miss.", key)
            return None

        logger.info("[CACHE] Hit: %s (cached at %s)", key, cached.timestamp.isoformat())
        return cached


    async def set(self, key: str, answer: CachedAnswer, ttl: int | None = None) -> bool:
        """Write ``answer`` under ``key``, replacing any previous entry.  Returns success."""
        try:
            await self._store.set(key, answer.model_dump_json(by_alias=True), ttl or self._ttl)
        except Exception:
            logger.exception("[CACHE] Write failed for '%s', continuing without cache.", key)
            return False
        logger.debug("[CACHE] Stored: %s (ttl=%ds)", key, ttl or self._ttl)
        return True

    # ── Administration ────────────────────────────────────────────────

    async def clear(self) -> int:
        """Drop every cached answer (all ``query:`` keys).  Store errors propagate."""
        removed = await self._store.delete_prefix(KEY_PREFIX)
        logger.info("[CACHE] Cleared %d entr%s.", removed, "y" if removed == 1 else "ies")
        return removed


    async def stats(self) -> dict[str, int]:
        """Live entry count and the default TTL.  Store errors propagate."""
        return {"entries": await self._store.count_prefix(KEY_PREFIX), "ttlSeconds": self._ttl}

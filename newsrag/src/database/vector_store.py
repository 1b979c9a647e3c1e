"""
NewsRAG - NewsVectorStore
==========================
Thin async adapter over a LanceDB table of news articles:
  • Idempotent collection setup with a fixed-dimension vector column
  • Batched upsert of ``(id, vector, payload)`` points, merged on ``id``
  • Cosine similarity search returning ranked ``DocumentHit`` objects

Design decisions:
  • **Singleton DB connection per path**: ``_get_connection()`` caches
    the ``lancedb.DBConnection`` to avoid file-lock contention.
  • **Off-loop I/O**: LanceDB's client is synchronous, so every call
    runs in a worker thread via ``asyncio.to_thread`` and is bounded by
    ``SEARCH_TIMEOUT``; the event loop is never blocked.
  • **One metric, one dimension**: the table schema pins the vector
    size; only cosine distance is supported, and ``score = 1 - distance``.
  • **Threshold in the adapter**: hits under ``score_threshold`` never
    leave this module.

Usage:
    store = NewsVectorStore()
    await store.ensure_collection()
    await store.upsert([VectorPoint(id=..., vector=[...], payload=ArticlePayload(...))])
    hits = await store.search(query_vector, k=5, score_threshold=0.5)
"""

from __future__ import annotations

import asyncio
import json
import threading

import lancedb
import pyarrow as pa

from newsrag.config.settings import settings
from newsrag.src.core.exceptions import RetrievalError
from newsrag.src.core.models import ArticlePayload, DocumentHit, VectorPoint
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
ArticleRecord = dict[str, str | list[float]]

# ── Constants ──────────────────────────────────────────────────────────
_SUPPORTED_DISTANCES = {"cosine"}
_PAYLOAD_COLUMNS = ("title", "summary", "content", "url", "source", "published_at")
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def article_schema(dimension: int) -> pa.Schema:
    """LanceDB table schema: id, fixed-size vector, payload columns, extra JSON."""
    return pa.schema([
        pa.field("id", pa.utf8()),
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        *(pa.field(column, pa.utf8()) for column in _PAYLOAD_COLUMNS),
        pa.field("extra", pa.utf8()),
    ])


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *db_path*.

    Thread-safe via ``_DB_LOCK`` (calls arrive from worker threads).
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def _to_record(point: VectorPoint) -> ArticleRecord:
    payload = point.payload.model_dump(by_alias=False)
    record: ArticleRecord = {"id": point.id, "vector": [float(v) for v in point.vector]}
    for column in _PAYLOAD_COLUMNS:
        record[column] = str(payload.pop(column, "") or "")
    record["extra"] = json.dumps(payload, default=str) if payload else ""
    return record


def _to_hit(row: dict[str, object]) -> DocumentHit:
    fields: dict[str, object] = {column: row.get(column) or "" for column in _PAYLOAD_COLUMNS}
    extra = row.get("extra")
    if extra:
        try:
            fields.update(json.loads(str(extra)))
        except json.JSONDecodeError:
            logger.warning("[VECTOR] Ignoring malformed extra payload for '%s'.", row.get("id"))
    score = 1.0 - float(row.get("_distance", 1.0))  # type: ignore[arg-type]
    return DocumentHit(id=str(row.get("id")), score=score, payload=ArticlePayload(**fields))


class NewsVectorStore:
    """
    High-level async abstraction over the LanceDB articles table.

    Parameters
    ----------
    db_path
        Database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Table (collection) name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    dimension
        Vector size.  Defaults to ``settings.EMBEDDING_DIMENSION``.
    timeout
        Seconds allowed per search.  Defaults to ``settings.SEARCH_TIMEOUT``.
    batch_size
        Points per upsert call.  Defaults to ``settings.UPSERT_BATCH_SIZE``.
    """

    __slots__ = ("_db_path", "_table_name", "_dimension", "_timeout", "_batch_size", "db", "table")

    def __init__(self, db_path: str | None = None, table_name: str | None = None, dimension: int | None = None, timeout: float | None = None, batch_size: int | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._dimension: int = dimension or settings.EMBEDDING_DIMENSION
        self._timeout: float = timeout or settings.SEARCH_TIMEOUT
        self._batch_size: int = batch_size or settings.UPSERT_BATCH_SIZE
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None


    @property
    def dimension(self) -> int:
        return self._dimension


    # ══════════════════════════════════════════════════════════════════
    #  COLLECTION SETUP
    # ══════════════════════════════════════════════════════════════════

    async def ensure_collection(self, name: str | None = None, dimension: int | None = None, distance: str = "cosine") -> None:
        """
        Open the table, creating it only if it does not exist.

        Raises
        ------
        ValueError
            If ``distance`` is unsupported, or an existing table was
            created with a different vector dimension.
        """
        if distance.lower() not in _SUPPORTED_DISTANCES:
            raise ValueError(f"Unsupported distance '{distance}'; supported: {sorted(_SUPPORTED_DISTANCES)}")
        if name:
            self._table_name = name
        if dimension:
            self._dimension = dimension
        await asyncio.to_thread(self._open_or_create)


    def _open_or_create(self) -> None:
        try:
            self.db = _get_connection(self._db_path)
        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise

        try:
            table = self.db.open_table(self._table_name)
        except (ValueError, FileNotFoundError):
            # LanceDB reports a missing table this way; anything else propagates
            self.table = self.db.create_table(self._table_name, schema=article_schema(self._dimension))
            logger.info("Created new table '%s' (dimension=%d, distance=cosine).", self._table_name, self._dimension)
            return

        existing_dimension = table.schema.field("vector").type.list_size
        if existing_dimension != self._dimension:
            raise ValueError(f"Table '{self._table_name}' stores {existing_dimension}-d vectors, expected {self._dimension}")
        self.table = table
        logger.info("Opened existing table '%s' (%d rows).", self._table_name, table.count_rows())


    # ══════════════════════════════════════════════════════════════════
    #  WRITE
    # ══════════════════════════════════════════════════════════════════

    async def upsert(self, points: list[VectorPoint]) -> int:
        """
        Insert or replace points by ``id``, in batches of ``UPSERT_BATCH_SIZE``.

        Returns
        -------
        int
            Number of points written.

        Raises
        ------
        ValueError
            If any vector does not match the table dimension.
        RuntimeError
            If the table has not been initialised.
        """
        table = self._require_table()
        for point in points:
            if len(point.vector) != self._dimension:
                raise ValueError(f"Point '{point.id}' has {len(point.vector)}-d vector, expected {self._dimension}")

        # Last write wins for duplicate ids inside one call
        unique = list({point.id: point for point in points}.values())

        for i in range(0, len(unique), self._batch_size):
            records = [_to_record(point) for point in unique[i : i + self._batch_size]]
            await asyncio.to_thread(self._merge, table, records)
            logger.info("[VECTOR] Upserted batch %d (%d points).", i // self._batch_size + 1, len(records))

        return len(unique)


    @staticmethod
    def _merge(table: lancedb.table.Table, records: list[ArticleRecord]) -> None:
        table.merge_insert("id").when_matched_update_all().when_not_matched_insert_all().execute(records)


    # ══════════════════════════════════════════════════════════════════
    #  SEARCH
    # ══════════════════════════════════════════════════════════════════

    async def search(self, vector: list[float], k: int, score_threshold: float | None = None) -> list[DocumentHit]:
        """
        Return at most ``k`` hits in descending similarity.

        Raises
        ------
        RetrievalError
            On connection failure, timeout, or an uninitialised table.
        """
        if self.table is None:
            raise RetrievalError("Vector table is not initialised. Call ensure_collection() first.")

        try:
            rows = await asyncio.wait_for(asyncio.to_thread(self._query, self.table, vector, k), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[VECTOR] Search timed out after %.1fs.", self._timeout)
            raise RetrievalError(f"Vector search timed out after {self._timeout}s") from exc
        except Exception as exc:
            logger.error("[VECTOR] Search failed: %s", exc)
            raise RetrievalError("Vector search failed") from exc

        hits = [_to_hit(row) for row in rows]
        if score_threshold is not None:
            hits = [hit for hit in hits if hit.score >= score_threshold]
        hits.sort(key=lambda hit: hit.score, reverse=True)

        logger.info("[VECTOR] Search returned %d/%d hit(s) (k=%d, threshold=%s).", len(hits), len(rows), k, score_threshold)
        return hits[:k]


    @staticmethod
    def _query(table: lancedb.table.Table, vector: list[float], k: int) -> list[dict[str, object]]:
        return table.search(vector).distance_type("cosine").limit(k).to_list()


    # ══════════════════════════════════════════════════════════════════
    #  MAINTENANCE
    # ══════════════════════════════════════════════════════════════════

    async def count(self) -> int:
        """Return the total number of rows in the table."""
        if self.table is None:
            return 0
        return await asyncio.to_thread(self.table.count_rows)


    async def ping(self) -> bool:
        """True if the table is open and readable."""
        if self.table is None:
            return False
        await asyncio.wait_for(asyncio.to_thread(self.table.count_rows), timeout=self._timeout)
        return True


    async def drop(self) -> None:
        """Drop the table (used before a clean re-ingestion)."""
        db = self.db or _get_connection(self._db_path)
        try:
            await asyncio.to_thread(db.drop_table, self._table_name)
            logger.info("Dropped table '%s'.", self._table_name)
        except (ValueError, FileNotFoundError):
            logger.warning("Table '%s' does not exist, nothing to drop.", self._table_name)
        self.table = None


    def _require_table(self) -> lancedb.table.Table:
        if self.table is None:
            raise RuntimeError("Vector table is not initialised. Call ensure_collection() first.")
        return self.table


    def __repr__(self) -> str:
        return f"NewsVectorStore(db='{self._db_path}', table='{self._table_name}', dimension={self._dimension})"

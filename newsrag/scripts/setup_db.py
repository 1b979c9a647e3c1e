"""
NewsRAG - Store Setup & Article Loading Script
===============================================
CLI entry point that:
    1. Validates configuration (fail-fast on a missing ``.env`` value).
    2. Opens (or creates) the LanceDB articles table, optionally dropping it.
    3. Ensures the MongoDB TTL index behind the cache and sessions.
    4. Optionally loads pre-extracted articles from a JSONL file.
    5. Prints a summary with a timing breakdown.

Each JSONL line is one article object
(``title``, ``content``, ``summary``, ``url``, ``source``, ``publishedAt``, ...).

Usage:
    python -m newsrag.scripts.setup_db                         # Ensure stores only
    python -m newsrag.scripts.setup_db --drop                  # Drop + recreate the table
    python -m newsrag.scripts.setup_db --ingest articles.jsonl # Load articles
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="NewsRAG: initialise the vector table and key-value store, optionally loading articles.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the LanceDB table before recreating it.")
    parser.add_argument("--ingest", type=Path, default=None, metavar="PATH", help="JSONL file of articles to embed and store.")
    return parser.parse_args(argv)


def load_articles(path: Path) -> list:
    """Read one ``ArticlePayload`` per non-blank JSONL line; malformed lines are skipped."""
    from newsrag.src.core.models import ArticlePayload
    from newsrag.src.utils.logger import get_logger

    logger = get_logger(__name__)
    articles = []
    with path.open(encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                articles.append(ArticlePayload.model_validate(json.loads(line)))
            except ValueError as exc:
                logger.warning("Skipping malformed line %d in %s: %s", line_no, path.name, exc)
    return articles


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from newsrag.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error, check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from newsrag.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Settings loaded in %.1fms", settings_ms)

    _print_header(settings)

    if args.ingest is not None and not args.ingest.is_file():
        logger.error("Article file not found: %s", args.ingest)
        sys.exit(1)

    try:
        summary = asyncio.run(_run(args, settings))
    except Exception:
        logger.exception("Setup failed.")
        sys.exit(1)

    _print_footer(summary, time.perf_counter() - t_start, settings_ms)


async def _run(args: argparse.Namespace, settings: object) -> dict[str, float]:
    from newsrag.src.core.embeddings import EmbeddingGateway
    from newsrag.src.core.ingestor import ArticleIngestor
    from newsrag.src.database.kv_store import MongoKeyValueStore
    from newsrag.src.database.vector_store import NewsVectorStore
    from newsrag.src.utils.logger import get_logger

    logger = get_logger(__name__)
    summary: dict[str, float] = {"loaded": 0, "stored": 0}

    # ── 1. LanceDB table (timed) ───────────────────────────────────────
    t_lancedb = time.perf_counter()
    store = NewsVectorStore()
    if args.drop:
        logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)  # type: ignore[attr-defined]
        await store.drop()
    await store.ensure_collection()
    summary["lancedb_ms"] = (time.perf_counter() - t_lancedb) * 1000

    # ── 2. MongoDB TTL index (timed) ───────────────────────────────────
    t_mongo = time.perf_counter()
    kv_store = MongoKeyValueStore()
    try:
        await kv_store.ensure_indexes()
    finally:
        kv_store.close()
    summary["mongo_ms"] = (time.perf_counter() - t_mongo) * 1000

    # ── 3. Optional article load ───────────────────────────────────────
    t_ingest = time.perf_counter()
    if args.ingest is not None:
        articles = load_articles(args.ingest)
        summary["loaded"] = len(articles)
        ingestor = ArticleIngestor(EmbeddingGateway(), store)
        summary["stored"] = await ingestor.store_articles(articles)
    summary["ingest_s"] = time.perf_counter() - t_ingest
    summary["rows"] = await store.count()
    return summary


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object) -> None:
    api_key_val = settings.GOOGLE_API_KEY.get_secret_value()  # type: ignore[attr-defined]
    masked = f"****{api_key_val[-4:]}" if len(api_key_val) > 4 else "****"

    mongo_uri_val = settings.MONGO_URI.get_secret_value()  # type: ignore[attr-defined]
    mongo_masked = mongo_uri_val.split("@")[-1] if "@" in mongo_uri_val else mongo_uri_val

    print()
    print("=" * 60)
    print("  NEWSRAG: Store Setup & Article Loading")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL} ({settings.EMBEDDING_DIMENSION}-d)")  # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")          # type: ignore[attr-defined]
    print(f"  Table        : {settings.LANCEDB_TABLE_NAME}")    # type: ignore[attr-defined]
    print(f"  MongoDB      : {mongo_masked} (db: {settings.MONGO_DB_NAME})")  # type: ignore[attr-defined]
    print(f"  API Key      : {masked}")
    print("=" * 60)
    print()


def _print_footer(summary: dict[str, float], elapsed: float, settings_ms: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Articles read        : {int(summary['loaded'])}")
    print(f"  Articles stored      : {int(summary['stored'])}")
    print(f"  Rows in table        : {int(summary['rows'])}")
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  LanceDB setup        : {summary['lancedb_ms']:>8.1f}ms")
    print(f"  MongoDB TTL index    : {summary['mongo_ms']:>8.1f}ms")
    print(f"  Article loading      : {summary['ingest_s']:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()

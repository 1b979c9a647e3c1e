"""
NewsRAG - Centralized Configuration
====================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.
- ``MONGO_URI`` is also ``SecretStr``; connection strings contain
  credentials and must never leak into logs.

Timeouts
--------
Every external call (embedding, vector search, generation) is bounded by
its own timeout.  There is no umbrella timeout over a whole query, so the
worst-case latency of one answer is the sum of the three.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required**: the app will refuse
    to start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini embeddings + generation).
    MONGO_URI : SecretStr
        MongoDB connection string backing the response cache and sessions.
    EMBEDDING_DIMENSION : int
        Vector size produced by ``EMBEDDING_MODEL``; fixed for the index.
    SIMILARITY_THRESHOLD : float
        Minimum cosine similarity for a retrieved article to count as context.
    CACHE_SCOPE : Literal["session", "global"]
        Whether cached answers are shared across sessions.
    CACHE_TTL, SESSION_TTL : int
        Expiry in seconds; the session TTL slides on every mutation.
    RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW : int
        Requests allowed per client IP within each window of seconds.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (REQUIRED, no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── MongoDB (REQUIRED, no default) ────────────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "newsrag"
    MONGO_KV_COLLECTION: str = "kv_store"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/text-embedding-004"
    EMBEDDING_DIMENSION: int = 768
    EMBED_BATCH_SIZE: int = 100
    LLM_MODEL: str = "gemini-1.5-flash"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_OUTPUT_TOKENS: int = 1024

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "news_articles"
    UPSERT_BATCH_SIZE: int = 64

    # ── Retrieval ──────────────────────────────────────────────────────
    SEARCH_TOP_K: int = 5
    SIMILARITY_THRESHOLD: float = 0.5
    MAX_CONTEXT_CHARS: int = 4000

    # ── Cache & Sessions ───────────────────────────────────────────────
    CACHE_TTL: int = 3600
    CACHE_SCOPE: Literal["session", "global"] = "session"
    SESSION_TTL: int = 86400

    # ── Timeouts & Retry ───────────────────────────────────────────────
    EMBEDDING_TIMEOUT: float = 10.0
    SEARCH_TIMEOUT: float = 10.0
    GENERATION_TIMEOUT: float = 30.0
    GENERATION_MAX_ATTEMPTS: int = 3
    GENERATION_BACKOFF_BASE: float = 1.0

    # ── HTTP Server ────────────────────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:3000"
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # ── Rate Limiting (per client IP, fixed window) ───────────────────
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW: int = 900

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("EMBEDDING_DIMENSION", "EMBED_BATCH_SIZE", "UPSERT_BATCH_SIZE", "SEARCH_TOP_K", "MAX_CONTEXT_CHARS", "CACHE_TTL", "SESSION_TTL", "RATE_LIMIT_REQUESTS", "RATE_LIMIT_WINDOW")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("SIMILARITY_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float) -> float:
        if not -1.0 <= v <= 1.0:
            raise ValueError(f"SIMILARITY_THRESHOLD must be within [-1, 1], got {v}")
        return v


    @field_validator("GENERATION_MAX_ATTEMPTS")
    @classmethod
    def _attempts_range(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError(f"GENERATION_MAX_ATTEMPTS must be 1–10, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from newsrag.config.settings import settings
settings = Settings()

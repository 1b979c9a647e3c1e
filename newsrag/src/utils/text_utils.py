"""
NewsRAG - Text Utilities
=========================
Helper functions for query normalisation, cache-key encoding, text
cleaning, and building the text that represents an article in the
vector space.

These utilities are stateless and side-effect-free.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
from collections.abc import Mapping

# ── Non-printable character pattern ────────────────────────────────────
# Matches control characters (C0/C1), except \n, \r, \t which we handle
# separately. Also catches BOM, zero-width chars, soft hyphens, etc.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")
_WHITESPACE_RE = re.compile(r"\s+")

# Characters of article content appended to title + summary for embedding
ARTICLE_EXCERPT_CHARS = 1000


def normalize_query(query: str) -> str:
    """
    Canonical form of a user query, used for cache lookups.

    Lowercases, trims, and collapses internal whitespace runs so that
    ``"Ukraine War?"`` and ``"  ukraine   war? "`` compare equal.
    """
    return _WHITESPACE_RE.sub(" ", query).strip().lower()


def query_digest(normalized_query: str) -> str:
    """Return a fixed-length, key-safe digest (SHA-256 hex) of a normalized query."""
    return hashlib.sha256(normalized_query.encode("utf-8")).hexdigest()


def clean_text(text: str) -> str:
    """
    Sanitise raw article text for embedding.

    Steps:
        1. Unicode NFC normalisation (canonical composition).
        2. Strip non-printable / zero-width characters and formatting
           artifacts (BOM, soft hyphens, directional marks).
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.

    Args:
        text: Raw text from an article field.

    Returns:
        Cleaned, normalised text.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def article_embedding_text(payload: Mapping[str, object], excerpt_chars: int = ARTICLE_EXCERPT_CHARS) -> str:
    """
    Build the text that stands for an article in the vector space:
    title, summary and the first ``excerpt_chars`` characters of content.

    Empty fields are skipped.
    """
    title = clean_text(str(payload.get("title") or ""))
    summary = clean_text(str(payload.get("summary") or ""))
    content = clean_text(str(payload.get("content") or ""))[:excerpt_chars]
    return "\n\n".join(part for part in (title, summary, content) if part)


def truncate(text: str, limit: int, suffix: str = "…") -> str:
    """Cut ``text`` to at most ``limit`` characters, marking the cut with ``suffix``."""
    if len(text) <= limit:
        return text
    if limit <= len(suffix):
        return text[:limit]
    return text[: limit - len(suffix)].rstrip() + suffix

"""
NewsRAG - Logging
==================
Logger factory shared by every NewsRAG module.  Each named logger gets
one stdout handler with the format::

    2024-05-01 10:00:00 | INFO     | newsrag.src.core.rag_engine | [RAG] ...

Verbosity follows ``settings.ENV``:
  • ``"dev"``  → DEBUG
  • ``"prod"`` → WARNING

Client libraries used on the query path (pymongo, httpx, the Google
client) log every request at INFO / DEBUG; the first call to
``get_logger`` caps them at WARNING so the ``[TAG]`` lines stay readable.

Usage:
    from newsrag.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[CACHE] Hit: %s", key)
"""

import logging
import sys

from newsrag.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NOISY_LIBRARIES = ("pymongo", "motor", "httpx", "httpcore", "google_genai", "langchain_google_genai", "lancedb")
_libraries_quieted = False


def _quiet_libraries() -> None:
    global _libraries_quieted
    if _libraries_quieted:
        return
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    _libraries_quieted = True


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return a named logger with the NewsRAG formatter attached.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level; defaults to the ``settings.ENV`` mapping.

    Returns:
        The configured ``logging.Logger``.
    """
    _quiet_libraries()
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    # Handlers are attached once per name; later calls only reuse the logger
    if not logger.handlers:
        logger.setLevel(resolved_level)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(resolved_level)
        handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)

        logger.propagate = False

    return logger
